"""Tests for Boruta feature selection."""

from __future__ import annotations

import numpy as np
import pandas as pd

from suicidality_ml.feature_selection import CONFIRMED, REJECTED, TENTATIVE, BorutaSelector


def make_selection_data(n: int = 300, seed: int = 0):
    rng = np.random.default_rng(seed)
    y = rng.integers(0, 2, n)
    X = pd.DataFrame({
        "signal_a": rng.normal(3.0 * y, 1.0),
        "signal_b": rng.normal(-3.0 * y, 1.0),
    })
    for j in range(4):
        X[f"noise_{j}"] = rng.normal(0, 1, n)
    return X, y


def test_informative_features_confirmed() -> None:
    X, y = make_selection_data()
    selector = BorutaSelector(n_estimators=100, max_iter=30, alpha=0.05, random_state=0).fit(X, y)

    assert selector.decisions_["signal_a"] == CONFIRMED
    assert selector.decisions_["signal_b"] == CONFIRMED
    assert {"signal_a", "signal_b"} <= set(selector.selected_features_)
    assert set(selector.decisions_.values()) <= {CONFIRMED, REJECTED, TENTATIVE}


def test_final_decisions_resolve_every_feature() -> None:
    X, y = make_selection_data(seed=1)
    selector = BorutaSelector(n_estimators=50, max_iter=5, alpha=0.01, random_state=1).fit(X, y)

    assert set(selector.final_decisions_) == set(X.columns)
    assert set(selector.final_decisions_.values()) <= {CONFIRMED, REJECTED}
    assert selector.n_iter_ <= 5
    assert selector.importance_history_.shape == (selector.n_iter_, X.shape[1])
    assert len(selector.shadow_max_history_) == selector.n_iter_
    assert list(selector.transform(X).columns) == selector.selected_features_


def test_selection_is_reproducible() -> None:
    X, y = make_selection_data(seed=2)
    first = BorutaSelector(n_estimators=30, max_iter=8, random_state=4).fit(X, y)
    second = BorutaSelector(n_estimators=30, max_iter=8, random_state=4).fit(X, y)
    assert first.final_decisions_ == second.final_decisions_
