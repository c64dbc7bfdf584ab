"""
Boruta Feature Selection

All-relevant feature selection: every real feature competes against
permuted ("shadow") copies of all features over repeated random-forest
fits. Features that beat the best shadow significantly often are
confirmed, features that significantly rarely do are rejected, and the
remaining tentative features are settled by comparing their median
importance with the median best-shadow importance.
"""

import logging
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from scipy.stats import binom
from sklearn.ensemble import RandomForestClassifier

logger = logging.getLogger(__name__)

CONFIRMED = 'confirmed'
REJECTED = 'rejected'
TENTATIVE = 'tentative'


class BorutaSelector:
    """Shadow-feature importance test around a random forest."""

    def __init__(self, n_estimators: int = 500, max_iter: int = 100,
                 alpha: float = 0.01, random_state: Optional[int] = None):
        self.n_estimators = n_estimators
        self.max_iter = max_iter
        self.alpha = alpha
        self.random_state = random_state

        self.decisions_: Dict[str, str] = {}
        self.final_decisions_: Dict[str, str] = {}
        self.selected_features_: List[str] = []
        self.importance_history_: Optional[pd.DataFrame] = None
        self.shadow_max_history_: List[float] = []
        self.n_iter_ = 0

    def fit(self, X: pd.DataFrame, y) -> 'BorutaSelector':
        """
        Run the iterative shadow-feature test.

        Args:
            X: Numeric predictors
            y: Binary outcome

        Returns:
            self
        """
        rng = np.random.default_rng(self.random_state)
        features = list(X.columns)
        n_features = len(features)
        values = X.to_numpy(dtype=float)
        y = np.asarray(y)

        decision = np.array([TENTATIVE] * n_features, dtype=object)
        hits = np.zeros(n_features, dtype=int)
        history = []
        shadow_max = []
        threshold = self.alpha / max(n_features, 1)

        for it in range(1, self.max_iter + 1):
            active = decision != REJECTED
            real = values[:, active]
            shadow = np.column_stack([rng.permutation(real[:, j]) for j in range(real.shape[1])])

            forest = RandomForestClassifier(
                n_estimators=self.n_estimators,
                random_state=int(rng.integers(np.iinfo(np.int32).max)),
                n_jobs=-1,
            )
            forest.fit(np.hstack([real, shadow]), y)
            importance = forest.feature_importances_
            real_imp = importance[:real.shape[1]]
            best_shadow = float(importance[real.shape[1]:].max())

            row = np.full(n_features, np.nan)
            row[active] = real_imp
            history.append(row)
            shadow_max.append(best_shadow)
            hits[active] += real_imp > best_shadow

            # One-sided binomial tests (upper tail accepts, lower tail rejects), Bonferroni corrected
            tentative = decision == TENTATIVE
            p_accept = binom.sf(hits - 1, it, 0.5)
            p_reject = binom.cdf(hits, it, 0.5)
            decision[tentative & (p_accept < threshold)] = CONFIRMED
            decision[tentative & (p_reject < threshold)] = REJECTED

            self.n_iter_ = it
            if not (decision == TENTATIVE).any():
                break

        self.importance_history_ = pd.DataFrame(history, columns=features)
        self.shadow_max_history_ = shadow_max
        self.decisions_ = dict(zip(features, decision.tolist()))

        final = decision.copy()
        unresolved = final == TENTATIVE
        if unresolved.any():
            medians = np.nanmedian(np.vstack(history), axis=0)
            shadow_median = float(np.median(shadow_max))
            final[unresolved & (medians > shadow_median)] = CONFIRMED
            final[unresolved & ~(medians > shadow_median)] = REJECTED

        self.final_decisions_ = dict(zip(features, final.tolist()))
        self.selected_features_ = [f for f in features if self.final_decisions_[f] == CONFIRMED]

        counts = pd.Series(self.decisions_).value_counts().to_dict()
        logger.info(f"Boruta finished after {self.n_iter_} iterations: {counts}; "
                    f"{len(self.selected_features_)} of {n_features} features selected")
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        return X[self.selected_features_]
