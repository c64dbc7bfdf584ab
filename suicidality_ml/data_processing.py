"""
Data Processing Module

Train/test splitting, bagged-tree imputation, class-balanced resampling and
design-matrix construction for the suicidality models.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from sklearn.ensemble import BaggingRegressor
from sklearn.experimental import enable_iterative_imputer  # noqa: F401
from sklearn.impute import IterativeImputer

from .config import DATA_CONFIG, MODEL_CONFIG, OUTCOME_CONFIG, SEEDS

logger = logging.getLogger(__name__)

SUBJECT = DATA_CONFIG['subject_column']
IDEATION = OUTCOME_CONFIG['ideation_column']
ACTION = OUTCOME_CONFIG['action_column']
NON_PREDICTORS = [SUBJECT, IDEATION, ACTION]


def predictor_columns(df: pd.DataFrame) -> List[str]:
    return [c for c in df.columns if c not in NON_PREDICTORS]


class BaggedTreeImputer:
    """
    Bagged regression-tree imputation of predictor columns.

    Each column with missing cells is modelled from the others by a bagging
    ensemble of regression trees. Binary columns are imputed as continuous
    values and thresholded at 0.5. Only missing cells are filled; observed
    values are returned unchanged.
    """

    def __init__(self, n_estimators: int = 25, max_iter: int = 5,
                 random_state: Optional[int] = None):
        self.n_estimators = n_estimators
        self.max_iter = max_iter
        self.random_state = random_state
        self.imputer_ = None
        self.feature_names_: List[str] = []
        self.binary_columns_: List[str] = []

    @staticmethod
    def _as_float(X: pd.DataFrame) -> pd.DataFrame:
        out = X.copy()
        for col in out.columns:
            if pd.api.types.is_bool_dtype(out[col]):
                out[col] = out[col].astype('Float64')
        return out.astype(float)

    def fit(self, X: pd.DataFrame) -> 'BaggedTreeImputer':
        """
        Fit the imputation models on training predictors.

        Args:
            X: Training predictors (no outcome or id columns)

        Returns:
            self
        """
        self.feature_names_ = list(X.columns)
        self.binary_columns_ = [c for c in X.columns if pd.api.types.is_bool_dtype(X[c])]

        self.imputer_ = IterativeImputer(
            estimator=BaggingRegressor(n_estimators=self.n_estimators,
                                       random_state=self.random_state),
            max_iter=self.max_iter,
            random_state=self.random_state,
            keep_empty_features=True,
        )
        self.imputer_.fit(self._as_float(X))
        logger.info(f"Fitted bagged-tree imputer on {X.shape[0]} rows, {X.shape[1]} predictors")
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Fill missing cells of X without refitting."""
        if self.imputer_ is None:
            raise ValueError("Imputer has not been fitted")
        missing = [c for c in self.feature_names_ if c not in X.columns]
        if missing:
            raise ValueError(f"Columns missing for imputation: {missing}")

        X = X[self.feature_names_]
        filled = pd.DataFrame(
            self.imputer_.transform(self._as_float(X)),
            columns=self.feature_names_,
            index=X.index,
        )

        result = X.copy()
        for col in self.feature_names_:
            if col in self.binary_columns_:
                result[col] = X[col].fillna(filled[col] >= 0.5).astype('boolean')
            else:
                result[col] = X[col].fillna(filled[col])
        return result

    def fit_transform(self, X: pd.DataFrame) -> pd.DataFrame:
        return self.fit(X).transform(X)


class DataProcessor:
    """Main class for preparing the modeling table for training."""

    def __init__(self, train_fraction: float = MODEL_CONFIG['train_fraction'],
                 n_resamples: int = MODEL_CONFIG['n_resamples'],
                 imputation_config: Optional[Dict] = None,
                 seeds: Optional[Dict[str, int]] = None):
        """
        Initialize DataProcessor.

        Args:
            train_fraction: Probability that a subject is assigned to training
            n_resamples: Number of disjoint majority-class partitions
            imputation_config: Bagged imputer settings (n_estimators, max_iter)
            seeds: Per-stage seeds, keys 'split', 'resample', 'imputation'
        """
        self.train_fraction = train_fraction
        self.n_resamples = n_resamples
        self.imputation_config = {**MODEL_CONFIG['imputation'], **(imputation_config or {})}
        self.seeds = {**SEEDS, **(seeds or {})}
        self.imputer: Optional[BaggedTreeImputer] = None

    def drop_unlabelled(self, df: pd.DataFrame) -> pd.DataFrame:
        """Remove subjects without an outcome; outcomes are never imputed."""
        unlabelled = df[IDEATION].isna()
        if unlabelled.any():
            logger.info(f"Dropping {int(unlabelled.sum())} subjects without an ideation outcome")
        return df.loc[~unlabelled].reset_index(drop=True)

    def split_subjects(self, df: pd.DataFrame,
                       rng: Optional[np.random.Generator] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Assign each subject to training with an independent Bernoulli draw.

        Args:
            df: Per-subject table
            rng: Random generator (seeded from SEEDS['split'] when omitted)

        Returns:
            (train, test)
        """
        rng = rng if rng is not None else np.random.default_rng(self.seeds['split'])
        in_train = rng.random(len(df)) < self.train_fraction
        train = df.loc[in_train].reset_index(drop=True)
        test = df.loc[~in_train].reset_index(drop=True)

        logger.info(f"Training set: {len(train)} subjects ({int(train[IDEATION].sum())} with ideation)")
        logger.info(f"Testing set: {len(test)} subjects ({int(test[IDEATION].sum())} with ideation)")
        return train, test

    def fit_imputer(self, train: pd.DataFrame) -> BaggedTreeImputer:
        """Fit the imputer on training predictors only."""
        self.imputer = BaggedTreeImputer(
            n_estimators=int(self.imputation_config['n_estimators']),
            max_iter=int(self.imputation_config['max_iter']),
            random_state=self.seeds['imputation'],
        )
        self.imputer.fit(train[predictor_columns(train)])
        return self.imputer

    def impute(self, df: pd.DataFrame, imputer: Optional[BaggedTreeImputer] = None) -> pd.DataFrame:
        """Fill missing predictor cells with a fitted imputer; outcome columns are untouched."""
        imputer = imputer if imputer is not None else self.imputer
        if imputer is None:
            raise ValueError("No fitted imputer available")
        out = df.copy()
        cols = imputer.feature_names_
        out[cols] = imputer.transform(df[cols])
        return out

    def make_balanced_resamples(self, train: pd.DataFrame,
                                rng: Optional[np.random.Generator] = None) -> List[pd.DataFrame]:
        """
        Pair each disjoint partition of the majority class with the whole minority class.

        Args:
            train: Imputed training table
            rng: Random generator (seeded from SEEDS['resample'] when omitted)

        Returns:
            List of n_resamples balanced training tables
        """
        rng = rng if rng is not None else np.random.default_rng(self.seeds['resample'])
        positive = train[IDEATION].astype(bool)
        minority = train.loc[positive]
        majority = train.loc[~positive]
        if len(majority) < self.n_resamples:
            raise ValueError(f"Cannot split {len(majority)} majority rows into {self.n_resamples} partitions")

        parts = np.array_split(rng.permutation(len(majority)), self.n_resamples)
        resamples = [
            pd.concat([majority.iloc[np.sort(part)], minority]).reset_index(drop=True)
            for part in parts
        ]
        logger.info(f"Built {len(resamples)} balanced resamples: {len(minority)} minority + "
                    f"{[len(p) for p in parts]} majority rows")
        return resamples


def design_matrix(df: pd.DataFrame,
                  features: Optional[Sequence[str]] = None) -> Tuple[pd.DataFrame, Optional[pd.Series]]:
    """
    Numeric predictors and ideation outcome for model fitting.

    Args:
        df: Subject table (imputed)
        features: Restrict predictors to these columns

    Returns:
        X with booleans as 0/1, and y as 0/1 (None when no outcome column)
    """
    cols = list(features) if features is not None else predictor_columns(df)
    X = df[cols].copy()
    for col in X.columns:
        if pd.api.types.is_bool_dtype(X[col]):
            X[col] = X[col].astype(int)
    X = X.astype(float)
    y = df[IDEATION].astype(int) if IDEATION in df.columns else None
    return X, y


def create_sample_data(n_subjects: int = 400, n_features: int = 8,
                       prevalence: float = 0.2, missing_rate: float = 0.05,
                       seed: int = 42) -> pd.DataFrame:
    """
    Create a synthetic per-subject modeling table.

    Args:
        n_subjects: Number of subjects
        n_features: Number of continuous predictors
        prevalence: Proportion of subjects with ideation
        missing_rate: Fraction of predictor cells set to missing
        seed: Random seed

    Returns:
        Table with subject_id, predictors, a binary predictor, ideation and action
    """
    rng = np.random.default_rng(seed)
    ideation = rng.random(n_subjects) < prevalence
    action = ideation & (rng.random(n_subjects) < 0.4)

    data = {SUBJECT: [f"NDAR_INV{i:05d}" for i in range(n_subjects)]}
    for j in range(n_features):
        shift = 1.0 if j < n_features // 2 else 0.0
        data[f'feature_{j}'] = rng.normal(10 + shift * ideation, 2.0)
    df = pd.DataFrame(data)
    df['binary_feature'] = pd.array(rng.random(n_subjects) < 0.5, dtype='boolean')

    mask = rng.random((n_subjects, n_features)) < missing_rate
    feature_cols = [f'feature_{j}' for j in range(n_features)]
    df[feature_cols] = df[feature_cols].mask(mask)

    df[IDEATION] = pd.array(ideation, dtype='boolean')
    df[ACTION] = pd.array(action, dtype='boolean')
    return df
