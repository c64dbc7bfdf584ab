"""End-to-end tests for the staged analysis pipeline."""

from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest

from suicidality_ml.io import write_table
from suicidality_ml.pipeline import STAGES, AnalysisPipeline

FAMILIES = ["random_forest", "knn", "svm_linear"]

OVERRIDES = {
    "model": {
        "models_to_train": FAMILIES,
        "n_resamples": 2,
        "cv_folds": 3,
        "n_iter": 2,
        "rf_trees": 30,
        "param_grids": {"knn": {"clf__n_neighbors": [3, 5]}, "svm_linear": {"clf__C": [0.1, 1.0]}},
        "imputation": {"n_estimators": 3, "max_iter": 2},
        "boruta": {"n_estimators": 30, "max_iter": 5, "alpha": 0.05},
    },
}


def make_pipeline(raw_dir: Path, output_dir: Path, **kwargs) -> AnalysisPipeline:
    return AnalysisPipeline(raw_dir=raw_dir, output_dir=output_dir,
                            config_overrides=OVERRIDES, **kwargs)


@pytest.fixture(scope="module")
def finished_pipeline(module_raw_dir: Path, tmp_path_factory) -> AnalysisPipeline:
    pipeline = make_pipeline(module_raw_dir, tmp_path_factory.mktemp("out"))
    pipeline.run()
    return pipeline


def test_run_writes_every_stage_output(finished_pipeline: AnalysisPipeline) -> None:
    p = finished_pipeline
    for key in ("predictors_file", "outcomes_file", "observations_file", "subjects_file",
                "train_file", "test_file", "imputer_file", "resamples_file",
                "predictions_file", "metrics_file"):
        assert p.path(key).exists(), key
    for k in p.resample_ids:
        assert p.feature_path(k).exists()
        for family in FAMILIES:
            assert p.model_path(family, k).exists()
    assert (p.path("figure_dir") / "model_comparison.png").exists()


def test_train_and_test_subjects_disjoint(finished_pipeline: AnalysisPipeline) -> None:
    p = finished_pipeline
    train = pd.read_csv(p.path("train_file"), dtype={"subject_id": str})
    test = pd.read_csv(p.path("test_file"), dtype={"subject_id": str})
    assert set(train["subject_id"]).isdisjoint(test["subject_id"])
    assert not train.drop(columns=["subject_id"]).isna().any().any()

    with open(p.path("resamples_file")) as f:
        membership = json.load(f)
    assert sorted(membership) == ["1", "2"]
    for ids in membership.values():
        assert set(ids) <= set(train["subject_id"])


def test_predictions_cover_test_set_per_resample(finished_pipeline: AnalysisPipeline) -> None:
    p = finished_pipeline
    predictions = p.predict()
    test = pd.read_csv(p.path("test_file"), dtype={"subject_id": str})

    assert len(predictions) == 2 * len(test)
    assert sorted(predictions["resample"].unique()) == [1, 2]
    for family in FAMILIES:
        assert family in predictions.columns
        assert predictions[family].notna().all()


def test_metrics_table(finished_pipeline: AnalysisPipeline) -> None:
    metrics = finished_pipeline.evaluate()
    assert set(FAMILIES) <= set(metrics["model"])
    for col in ("accuracy", "sensitivity", "specificity", "auc", "auc_severe"):
        assert col in metrics.columns
    assert metrics["accuracy"].between(0, 1).all()
    assert metrics.loc[metrics["model"] == "svm_linear", "threshold"].isna().all()
    assert metrics.loc[metrics["model"] == "random_forest", "threshold"].notna().all()


def test_boruta_selection_persisted(finished_pipeline: AnalysisPipeline) -> None:
    p = finished_pipeline
    with open(p.feature_path(1)) as f:
        record = json.load(f)
    assert set(record) == {"selected", "decisions", "final_decisions", "iterations"}
    assert set(record["selected"]) <= set(record["final_decisions"])
    assert "ideation" not in record["final_decisions"]
    assert "subject_id" not in record["final_decisions"]


def test_sex_at_birth_keeps_both_levels(finished_pipeline: AnalysisPipeline) -> None:
    subjects = pd.read_csv(finished_pipeline.path("subjects_file"), dtype={"subject_id": str})
    assert sorted(subjects["demo_sex_v2"].dropna().unique().tolist()) == [0, 1]

    predictors = finished_pipeline.build_predictors()
    assert set(predictors["demo_sex_v2"].dropna().unique()) == {1, 2}


def test_existing_stage_output_is_reused(module_raw_dir: Path, tmp_path: Path) -> None:
    pipeline = make_pipeline(module_raw_dir, tmp_path)
    built = pipeline.build_predictors()

    marker = built.head(3)
    write_table(marker, pipeline.path("predictors_file"))

    assert len(pipeline.build_predictors()) == 3
    assert len(pipeline.build_predictors(force=True)) == len(built)


def test_run_rejects_unknown_stage(tmp_path: Path) -> None:
    pipeline = make_pipeline(tmp_path / "raw", tmp_path / "out")
    with pytest.raises(ValueError, match="Unknown stages"):
        pipeline.run(stages=["predictors", "publish"])
    assert "evaluate" == STAGES[-1]
