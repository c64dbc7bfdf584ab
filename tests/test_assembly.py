"""Tests for the dataset assembler."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from suicidality_ml.assembly import DatasetAssembler, missingness_report
from suicidality_ml.io import read_table, write_table
from suicidality_ml.outcomes import OutcomeLabelBuilder
from suicidality_ml.predictors import PredictorTableBuilder

EVENTS = ["baseline_year_1_arm_1", "1_year_follow_up_y_arm_1"]


def make_observations() -> pd.DataFrame:
    return pd.DataFrame({
        "subject_id": ["S1", "S1", "S2", "S2"],
        "event_name": EVENTS * 2,
        "site_id_l": ["site01", "site01", "site02", "site02"],
        "cbcl_scr_syn_anxdep_r": [4.0, 600.0, -1.0, 2.0],
        "demo_sex_v2": [2.0, 2.0, 1.0, np.nan],
        "kbi_gender": [2.0, 2.0, 3.0, 1.0],
        "kbi_y_sex_orient": [1.0, 4.0, 3.0, 2.0],
        "famhx_ss_momdad_scd_p": [1.0, np.nan, np.nan, np.nan],
        "ideation": pd.array([False, True, False, pd.NA], dtype="boolean"),
        "action": pd.array([False, False, False, pd.NA], dtype="boolean"),
    })


def test_sanitize_replaces_out_of_range_values() -> None:
    out = DatasetAssembler().sanitize(make_observations())
    values = out["cbcl_scr_syn_anxdep_r"]
    assert values.iloc[0] == 4.0
    assert np.isnan(values.iloc[1])
    assert np.isnan(values.iloc[2])
    assert out["site_id_l"].tolist() == ["site01", "site01", "site02", "site02"]


def test_gender_categories_swapped_and_orientation_capped() -> None:
    out = DatasetAssembler().recode_categories(make_observations())
    assert out["kbi_gender"].tolist() == [3.0, 3.0, 2.0, 1.0]
    assert np.isnan(out["kbi_y_sex_orient"].iloc[1])
    assert out["kbi_y_sex_orient"].iloc[2] == 3.0


def test_aggregation_rederive_and_recast() -> None:
    asm = DatasetAssembler()
    subjects = asm.aggregate_subjects(asm.sanitize(make_observations()))

    assert "event_name" not in subjects.columns
    assert "site_id_l" not in subjects.columns
    assert subjects["subject_id"].tolist() == ["S1", "S2"]
    assert subjects.loc[0, "cbcl_scr_syn_anxdep_r"] == 4.0
    assert subjects.loc[1, "cbcl_scr_syn_anxdep_r"] == 2.0
    assert np.isnan(subjects.loc[1, "famhx_ss_momdad_scd_p"])

    subjects = asm.recast_binary(asm.rederive_fields(subjects))

    # sex 2 -> female (1 -> True), 1 -> male (0 -> False)
    assert subjects["demo_sex_v2"].tolist() == [True, False]
    # ideation at any event counts
    assert subjects["ideation"].tolist() == [True, False]
    assert str(subjects["ideation"].dtype) == "boolean"


def test_problem_fields_default_to_no_problem() -> None:
    df = pd.DataFrame({
        "subject_id": ["S1", "S2"],
        "famhx_ss_momdad_scd_p": pd.array([True, pd.NA], dtype="boolean"),
    })
    out = DatasetAssembler().remediate_problem_fields(df)
    assert out["famhx_ss_momdad_scd_p"].tolist() == [True, False]


def test_teacher_report_family_dropped() -> None:
    df = pd.DataFrame({"subject_id": ["S1"], "bpm_t_scr_attention_r": [1.0],
                       "bpm_y_scr_attention_r": [2.0]})
    out = DatasetAssembler().drop_teacher_report(df)
    assert list(out.columns) == ["subject_id", "bpm_y_scr_attention_r"]


def test_row_filter_uses_missing_threshold() -> None:
    df = pd.DataFrame({"subject_id": ["S1", "S2"]})
    for i in range(10):
        df[f"x{i}"] = [1.0, 1.0]
    df.loc[1, ["x0", "x1"]] = np.nan  # 20% missing
    df.loc[0, "x0"] = np.nan  # 10% missing

    out = DatasetAssembler().filter_rows(df)
    assert out["subject_id"].tolist() == ["S1"]


def test_final_table_respects_missingness_invariants(raw_exports, tmp_path: Path) -> None:
    raw_dir, _ = raw_exports
    predictors = PredictorTableBuilder().build(raw_dir)
    outcomes = OutcomeLabelBuilder().build_from_dir(raw_dir)

    observations, subjects = DatasetAssembler().assemble(predictors, outcomes)

    assert len(observations) == len(predictors)
    assert len(subjects) > 0
    data = subjects.drop(columns=["subject_id"])
    assert (data.isna().mean(axis=1) <= 0.15).all()
    assert (missingness_report(subjects, exclude=["subject_id"]) <= 0.15).all()
    assert not any(c.startswith("bpm_t_") for c in subjects.columns)
    assert "cbcl_scr_syn_totprob_r" not in subjects.columns
    numeric = data.select_dtypes(include=[np.number])
    assert ((numeric.fillna(0) >= 0) & (numeric.fillna(0) <= 500)).all().all()

    path = write_table(subjects, tmp_path / "subjects.csv")
    reloaded = read_table(path, binary_columns=["ideation", "action", "demo_sex_v2"])
    assert str(reloaded["ideation"].dtype) == "boolean"
    assert reloaded["ideation"].tolist() == subjects["ideation"].tolist()
