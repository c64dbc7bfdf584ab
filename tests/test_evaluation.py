"""Tests for cutoff calibration and model evaluation."""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from suicidality_ml.evaluation import (
    ModelEvaluator,
    find_optimal_threshold,
    severe_subgroup_mask,
)


def make_predictions() -> pd.DataFrame:
    ideation = np.array([0, 0, 0, 0, 1, 1, 1, 1] * 2, dtype=bool)
    action = np.array([0, 0, 0, 0, 1, 0, 1, 0] * 2, dtype=bool)
    return pd.DataFrame({
        "subject_id": [f"S{i}" for i in range(16)],
        "ideation": pd.array(ideation, dtype="boolean"),
        "action": pd.array(action, dtype="boolean"),
        "resample": [1] * 8 + [2] * 8,
        "random_forest": [0.1, 0.2, 0.3, 0.4, 0.6, 0.7, 0.8, 0.9] * 2,
        "svm_linear": [0, 0, 1, 0, 1, 1, 0, 1] * 2,
        "knn_boruta": [np.nan] * 16,
    })


def test_youden_cutoff_on_separable_scores() -> None:
    y = np.array([0, 0, 0, 1, 1, 1])
    scores = np.array([0.1, 0.2, 0.3, 0.7, 0.8, 0.9])

    threshold, j = find_optimal_threshold(y, scores)

    assert j == pytest.approx(1.0)
    assert 0.3 < threshold <= 0.7
    metrics = ModelEvaluator().calculate_metrics(y, (scores >= threshold).astype(int), scores)
    assert metrics["sensitivity"] == 1.0
    assert metrics["specificity"] == 1.0
    assert metrics["auc"] == 1.0


def test_cutoff_needs_both_classes() -> None:
    with pytest.raises(ValueError, match="both outcome classes"):
        find_optimal_threshold(np.zeros(4), np.array([0.1, 0.2, 0.3, 0.4]))


def test_severe_mask_excludes_ideation_without_action() -> None:
    mask = severe_subgroup_mask(np.array([0, 1, 1]), np.array([0, 1, 0]))
    assert mask.tolist() == [True, True, False]


def test_metrics_counts() -> None:
    metrics = ModelEvaluator().calculate_metrics(
        np.array([1, 1, 0, 0]), np.array([1, 0, 0, 1]))
    assert metrics["accuracy"] == 0.5
    assert metrics["sensitivity"] == 0.5
    assert metrics["specificity"] == 0.5
    assert "auc" not in metrics
    assert (metrics["true_positives"], metrics["false_negatives"]) == (1, 1)


def test_evaluate_predictions_pools_resamples() -> None:
    predictions = make_predictions()
    evaluator = ModelEvaluator()

    metrics = evaluator.evaluate_predictions(predictions).set_index("model")

    # all-missing column is skipped
    assert list(metrics.index) == ["random_forest", "svm_linear"]
    rf = metrics.loc["random_forest"]
    assert rf["n"] == 16
    assert rf["auc"] == 1.0
    assert rf["auc_severe"] == 1.0
    assert rf["sensitivity"] == 1.0 and rf["specificity"] == 1.0

    svm = metrics.loc["svm_linear"]
    assert np.isnan(svm["threshold"])
    assert svm["accuracy"] == pytest.approx(0.75)
    assert svm["sensitivity"] == pytest.approx(0.75)
    assert svm["specificity"] == pytest.approx(0.75)
    assert svm["variant"] == "all"


def test_evaluation_plots_saved(tmp_path: Path) -> None:
    predictions = make_predictions()
    evaluator = ModelEvaluator()
    metrics = evaluator.evaluate_predictions(predictions)

    figures = evaluator.generate_evaluation_plots(predictions, metrics, save_dir=tmp_path)

    assert len(figures) == 2 * len(metrics) + 1
    assert (tmp_path / "random_forest_roc_curve.png").exists()
    assert (tmp_path / "svm_linear_confusion_matrix.png").exists()
    assert (tmp_path / "model_comparison.png").exists()
    plt.close("all")
