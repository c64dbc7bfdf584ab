"""Shared fixtures: synthetic questionnaire and interview exports."""

from __future__ import annotations

from pathlib import Path
from typing import Dict

import matplotlib
import numpy as np
import pandas as pd
import pytest

from suicidality_ml.config import OUTCOME_CONFIG
from suicidality_ml.io import KEY_COLUMNS
from suicidality_ml.predictors import PREDICTOR_SOURCES, SourceSchema

matplotlib.use("Agg")

EVENTS = ["baseline_year_1_arm_1", "1_year_follow_up_y_arm_1"]


def _column_values(col: str, rng: np.random.Generator, latent: np.ndarray):
    n = len(latent)
    if col == "demo_sex_v2":
        return rng.integers(1, 3, n)
    if col == "kbi_gender":
        return rng.integers(1, 4, n)
    if col in ("kbi_y_trans_id", "kbi_y_sex_orient"):
        return rng.integers(1, 5, n)
    if col == "site_id_l":
        return [f"site{i:02d}" for i in rng.integers(1, 22, n)]
    if col.startswith("famhx_"):
        return rng.integers(0, 2, n)
    if col.startswith("school_"):
        return rng.integers(1, 6, n)
    if col.startswith("screen") and col.endswith("_wkdy_y"):
        return rng.integers(0, 6, n)
    if col == "screentime_sm_min":
        return rng.choice([0, 30, 60, 120, 999], n)
    if col == "demo_comb_income_v2":
        return rng.choice([1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 999], n)
    if col == "interview_age":
        return rng.integers(108, 156, n)
    if col == "ple_y_ss_total_number":
        return rng.integers(1, 11, n)
    if col == "ple_y_ss_total_bad":
        return rng.integers(0, 2, n)
    if col == "ple_y_ss_total_noanswer":
        return rng.integers(0, 6, n)
    return np.round(np.clip(10 + 3 * latent + rng.normal(0, 1, n), 0, None), 1)


def make_source_frame(schema: SourceSchema, subjects, latent: np.ndarray,
                      rng: np.random.Generator) -> pd.DataFrame:
    events = EVENTS[:1] if schema.name == "family_history" else EVENTS
    rows = [(s, e) for s in subjects for e in events]
    df = pd.DataFrame(rows, columns=KEY_COLUMNS)
    z = np.repeat(latent, len(events))
    for col in schema.required_columns():
        df[col] = _column_values(col, rng, z)
    return df


def make_interview_frame(subjects, latent: np.ndarray, suffix: str,
                         rng: np.random.Generator) -> pd.DataFrame:
    prefix = OUTCOME_CONFIG["item_prefix"]
    rows = [(s, e) for s in subjects for e in EVENTS]
    df = pd.DataFrame(rows, columns=KEY_COLUMNS)
    z = np.repeat(latent, len(EVENTS))
    for code in OUTCOME_CONFIG["ideation_codes"]:
        value = 2 if code in OUTCOME_CONFIG["no_is_two_codes"] else 0
        df[f"{prefix}{code}{suffix}"] = value
    noise = rng.normal(0, 0.3, len(df))
    df.loc[z + noise > 0.6, f"{prefix}822{suffix}"] = 1
    df.loc[z + noise > 1.2, f"{prefix}839{suffix}"] = 1
    # a few unanswered items
    df.loc[rng.random(len(df)) < 0.05, f"{prefix}824{suffix}"] = np.nan
    return df


def write_raw_exports(raw_dir: Path, n_subjects: int = 200, seed: int = 7) -> Dict[str, pd.DataFrame]:
    rng = np.random.default_rng(seed)
    raw_dir.mkdir(parents=True, exist_ok=True)
    subjects = [f"NDAR_INV{i:05d}" for i in range(n_subjects)]
    latent = rng.normal(0, 1, n_subjects)

    frames = {}
    for schema in PREDICTOR_SOURCES:
        df = make_source_frame(schema, subjects, latent, rng)
        df.to_csv(raw_dir / schema.filename, index=False)
        frames[schema.name] = df

    frames["parent"] = make_interview_frame(subjects, latent, OUTCOME_CONFIG["parent_suffix"], rng)
    frames["youth"] = make_interview_frame(subjects, latent, OUTCOME_CONFIG["youth_suffix"], rng)
    frames["parent"].to_csv(raw_dir / OUTCOME_CONFIG["parent_file"], index=False)
    frames["youth"].to_csv(raw_dir / OUTCOME_CONFIG["youth_file"], index=False)
    return frames


@pytest.fixture
def raw_exports(tmp_path: Path):
    raw_dir = tmp_path / "raw"
    frames = write_raw_exports(raw_dir)
    return raw_dir, frames


@pytest.fixture(scope="module")
def module_raw_dir(tmp_path_factory) -> Path:
    raw_dir = tmp_path_factory.mktemp("exports") / "raw"
    write_raw_exports(raw_dir)
    return raw_dir
