"""
Model Training Module

Fits the eight classifier families compared in the analysis. Each family
has its own tuning strategy; all cross-validated searches use stratified
k-fold CV scored by classification accuracy.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import joblib
import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy.stats import loguniform
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.model_selection import GridSearchCV, RandomizedSearchCV, StratifiedKFold
from sklearn.neighbors import KNeighborsClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import SVC
from xgboost import XGBClassifier

from .config import MODEL_CONFIG, SEEDS
from .data_processing import design_matrix

logger = logging.getLogger(__name__)

MODEL_FAMILIES = list(MODEL_CONFIG['models_to_train'])

# Support-vector families are fit without probability estimates and
# predict hard class labels
LABEL_FAMILIES = {'svm_linear', 'svm_radial', 'svm_poly'}

BORUTA_SUFFIX = '_boruta'


def model_column(family: str, boruta: bool = False) -> str:
    """Prediction-table column for a family / feature-set variant."""
    return f"{family}{BORUTA_SUFFIX if boruta else ''}"


def artifact_name(family: str, resample: int, boruta: bool = False) -> str:
    return f"{model_column(family, boruta)}_r{resample}"


def family_of(column: str) -> str:
    return column[:-len(BORUTA_SUFFIX)] if column.endswith(BORUTA_SUFFIX) else column


def _with_intercept(X: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    design = X[list(columns)].astype(float).copy()
    design.insert(0, 'const', 1.0)
    return design


class StepwiseLogisticRegression(ClassifierMixin, BaseEstimator):
    """Logistic regression with AIC-based backward stepwise elimination."""

    def __init__(self, maxiter: int = 500):
        self.maxiter = maxiter

    def _fit_logit(self, X: pd.DataFrame, y: np.ndarray, columns: Sequence[str]):
        return sm.Logit(y, _with_intercept(X, columns)).fit(
            disp=0, method='lbfgs', maxiter=self.maxiter)

    def fit(self, X: pd.DataFrame, y):
        y = np.asarray(y, dtype=float)
        selected = list(X.columns)
        best = self._fit_logit(X, y, selected)
        self.aic_path_ = [best.aic]

        while selected:
            candidates = []
            for col in selected:
                remaining = [c for c in selected if c != col]
                candidates.append((self._fit_logit(X, y, remaining).aic, col))
            aic, col = min(candidates)
            if aic >= best.aic:
                break
            selected.remove(col)
            best = self._fit_logit(X, y, selected)
            self.aic_path_.append(best.aic)
            logger.debug(f"Stepwise: removed {col}, AIC={aic:.2f}")

        self.selected_features_ = selected
        self.result_ = best
        self.classes_ = np.array([0, 1])
        logger.info(f"Stepwise logistic regression kept {len(selected)} of {X.shape[1]} predictors "
                    f"(AIC {self.aic_path_[0]:.2f} -> {self.aic_path_[-1]:.2f})")
        return self

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        p = np.asarray(self.result_.predict(_with_intercept(X, self.selected_features_)))
        return np.column_stack([1 - p, p])

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        return (self.predict_proba(X)[:, 1] >= 0.5).astype(int)


class ModelTrainer:
    """Main class for model training."""

    def __init__(self, random_state: int = SEEDS['model'],
                 cv_folds: int = MODEL_CONFIG['cv_folds'],
                 n_iter: int = MODEL_CONFIG['n_iter'],
                 rf_trees: int = MODEL_CONFIG['rf_trees'],
                 param_grids: Optional[Dict[str, Dict[str, List]]] = None,
                 scoring: str = MODEL_CONFIG['scoring_metric']):
        """
        Initialize ModelTrainer.

        Args:
            random_state: Random seed for model fitting and CV folds
            cv_folds: Number of cross-validation folds
            n_iter: Candidates drawn by randomized searches
            rf_trees: Tree count of the random forest
            param_grids: Per-family grid overrides
            scoring: Search scoring metric
        """
        self.random_state = random_state
        self.cv_folds = cv_folds
        self.n_iter = n_iter
        self.rf_trees = rf_trees
        self.scoring = scoring
        self.param_grids = {**MODEL_CONFIG['param_grids'], **(param_grids or {})}
        self.search_results: Dict[str, Dict[str, Any]] = {}

    def _cv(self) -> StratifiedKFold:
        return StratifiedKFold(n_splits=self.cv_folds, shuffle=True, random_state=self.random_state)

    def _grid(self, estimator, family: str, refit: bool = True) -> GridSearchCV:
        return GridSearchCV(estimator, self.param_grids[family], scoring=self.scoring,
                            cv=self._cv(), refit=refit, n_jobs=-1)

    def _randomized(self, estimator, distributions: Dict[str, Any]) -> RandomizedSearchCV:
        return RandomizedSearchCV(estimator, distributions, n_iter=self.n_iter,
                                  scoring=self.scoring, cv=self._cv(),
                                  random_state=self.random_state, n_jobs=-1)

    def build_estimator(self, family: str) -> Any:
        """
        Unfitted estimator (or search) for a model family.

        Args:
            family: One of MODEL_FAMILIES

        Returns:
            scikit-learn compatible estimator
        """
        rs = self.random_state
        if family == 'random_forest':
            return RandomForestClassifier(n_estimators=self.rf_trees, random_state=rs, n_jobs=-1)
        if family == 'logistic_regression':
            return StepwiseLogisticRegression()
        if family == 'elastic_net':
            pipe = Pipeline([
                ('scale', StandardScaler()),
                ('clf', LogisticRegression(penalty='elasticnet', solver='saga',
                                           max_iter=5000, random_state=rs)),
            ])
            return self._grid(pipe, family)
        if family == 'gradient_boosting':
            xgb = XGBClassifier(learning_rate=0.1, eval_metric='logloss', random_state=rs)
            return self._grid(xgb, family, refit=False)
        if family == 'knn':
            pipe = Pipeline([('scale', StandardScaler()), ('clf', KNeighborsClassifier())])
            return self._grid(pipe, family)
        if family == 'svm_linear':
            pipe = Pipeline([('scale', StandardScaler()), ('clf', SVC(kernel='linear'))])
            return self._grid(pipe, family)
        if family == 'svm_radial':
            pipe = Pipeline([('scale', StandardScaler()), ('clf', SVC(kernel='rbf'))])
            return self._randomized(pipe, {
                'clf__C': loguniform(1e-2, 1e2),
                'clf__gamma': loguniform(1e-4, 1e0),
            })
        if family == 'svm_poly':
            pipe = Pipeline([('scale', StandardScaler()), ('clf', SVC(kernel='poly'))])
            return self._randomized(pipe, {
                'clf__C': loguniform(1e-2, 1e2),
                'clf__degree': [2, 3],
                'clf__gamma': loguniform(1e-3, 1e0),
                'clf__coef0': [0.0, 1.0],
            })
        raise ValueError(f"Unknown model family: {family}")

    def fit_model(self, data: pd.DataFrame, family: str,
                  features: Optional[Sequence[str]] = None) -> Any:
        """
        Train one model family on a (balanced) training table.

        Subject id and the action flag are never predictors; the outcome is ideation.

        Args:
            data: Imputed training table
            family: Model family name
            features: Optional feature subset

        Returns:
            Fitted model
        """
        X, y = design_matrix(data, features)
        logger.info(f"Training {family} on {X.shape[0]} rows, {X.shape[1]} predictors...")
        estimator = self.build_estimator(family)
        estimator.fit(X, y)

        if family == 'gradient_boosting':
            params = estimator.best_params_
            self.search_results[family] = {'params': params, 'cv_score': estimator.best_score_}
            model = XGBClassifier(learning_rate=0.1, eval_metric='logloss',
                                  random_state=self.random_state, **params)
            model.fit(X, y)
        elif isinstance(estimator, (GridSearchCV, RandomizedSearchCV)):
            self.search_results[family] = {'params': estimator.best_params_,
                                           'cv_score': estimator.best_score_}
            model = estimator.best_estimator_
        else:
            model = estimator

        if family in self.search_results:
            result = self.search_results[family]
            logger.info(f"{family} - Best params: {result['params']}")
            logger.info(f"{family} - Best CV {self.scoring}: {result['cv_score']:.4f}")
        return model

    def train_all_models(self, data: pd.DataFrame,
                         model_names: Optional[List[str]] = None,
                         features: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """
        Train every requested family on one training table.

        Returns:
            Dictionary of family name -> fitted model
        """
        model_names = MODEL_FAMILIES if model_names is None else model_names
        models = {}
        for family in model_names:
            try:
                models[family] = self.fit_model(data, family, features)
            except Exception as e:
                logger.error(f"Error training {family}: {e}")
                raise
        return models

    @staticmethod
    def predict_scores(model: Any, family: str, X: pd.DataFrame) -> np.ndarray:
        """Probability of ideation, or a hard 0/1 label for label-only families."""
        if family in LABEL_FAMILIES:
            return np.asarray(model.predict(X), dtype=float)
        return model.predict_proba(X)[:, 1]

    def predict(self, model: Any, family: str, data: pd.DataFrame,
                features: Optional[Sequence[str]] = None) -> np.ndarray:
        X, _ = design_matrix(data, features)
        return self.predict_scores(model, family, X)

    def save_model(self, model: Any, file_path: Union[str, Path]):
        """
        Save trained model to disk.

        Args:
            model: Trained model
            file_path: Path to save the model
        """
        logger.info(f"Saving model to {file_path}")
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(model, file_path)

    def load_model(self, file_path: Union[str, Path]) -> Any:
        """
        Load trained model from disk.

        Args:
            file_path: Path to the saved model

        Returns:
            Loaded model
        """
        logger.info(f"Loading model from {file_path}")
        return joblib.load(file_path)
