"""
Analysis Pipeline

Runs the analysis stage by stage. Every stage writes its outputs to the
output directory; a stage whose outputs already exist is skipped and its
outputs are re-read, so a failed late stage can be rerun on its own.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import joblib
import numpy as np
import pandas as pd

from .assembly import DatasetAssembler
from .config import ASSEMBLY_CONFIG, DATA_CONFIG, MODEL_CONFIG, OUTCOME_CONFIG, SEEDS
from .data_processing import BaggedTreeImputer, DataProcessor, design_matrix
from .evaluation import RESAMPLE, ModelEvaluator
from .feature_selection import BorutaSelector
from .io import read_table, write_table
from .model import ModelTrainer, artifact_name, model_column
from .outcomes import OutcomeLabelBuilder
from .predictors import PredictorTableBuilder

logger = logging.getLogger(__name__)

STAGES = ['predictors', 'outcomes', 'assemble', 'split', 'select_features',
          'train', 'predict', 'evaluate']

SUBJECT = DATA_CONFIG['subject_column']
IDEATION = OUTCOME_CONFIG['ideation_column']
ACTION = OUTCOME_CONFIG['action_column']
BINARY_COLUMNS = list(ASSEMBLY_CONFIG['binary_columns'])


class AnalysisPipeline:
    """Orchestrates the analysis stages over persisted intermediate files."""

    def __init__(self, raw_dir: Optional[Union[str, Path]] = None,
                 output_dir: Optional[Union[str, Path]] = None,
                 config_overrides: Optional[Dict[str, Dict[str, Any]]] = None,
                 use_boruta: Optional[bool] = None):
        """
        Initialize AnalysisPipeline.

        Args:
            raw_dir: Directory of raw exports (default DATA_CONFIG['raw_data_dir'])
            output_dir: Directory for outputs (default DATA_CONFIG['output_dir'])
            config_overrides: Optional 'model', 'assembly' and 'seeds' override mappings
            use_boruta: Train the Boruta-selected variant (default MODEL_CONFIG['use_boruta'])
        """
        overrides = config_overrides or {}
        self.raw_dir = Path(raw_dir or DATA_CONFIG['raw_data_dir'])
        self.output_dir = Path(output_dir or DATA_CONFIG['output_dir'])
        self.model_config = {**MODEL_CONFIG, **overrides.get('model', {})}
        self.assembly_config = {**ASSEMBLY_CONFIG, **overrides.get('assembly', {})}
        self.seeds = {**SEEDS, **overrides.get('seeds', {})}
        self.use_boruta = self.model_config['use_boruta'] if use_boruta is None else use_boruta

        self.processor = DataProcessor(
            train_fraction=self.model_config['train_fraction'],
            n_resamples=self.model_config['n_resamples'],
            imputation_config=self.model_config['imputation'],
            seeds=self.seeds,
        )
        self.trainer = ModelTrainer(
            random_state=self.seeds['model'],
            cv_folds=self.model_config['cv_folds'],
            n_iter=self.model_config['n_iter'],
            rf_trees=self.model_config['rf_trees'],
            param_grids=self.model_config['param_grids'],
            scoring=self.model_config['scoring_metric'],
        )
        self.evaluator = ModelEvaluator()

    # -------------------------
    # Paths
    # -------------------------

    def path(self, key: str) -> Path:
        return self.output_dir / DATA_CONFIG[key]

    def model_path(self, family: str, resample: int, boruta: bool = False) -> Path:
        return self.path('model_dir') / f"{artifact_name(family, resample, boruta)}.joblib"

    def feature_path(self, resample: int) -> Path:
        return self.path('feature_dir') / f"boruta_r{resample}.json"

    @property
    def families(self) -> List[str]:
        return list(self.model_config['models_to_train'])

    @property
    def resample_ids(self) -> List[int]:
        return list(range(1, int(self.model_config['n_resamples']) + 1))

    def _read(self, key: str, binary_columns: Sequence[str] = BINARY_COLUMNS) -> pd.DataFrame:
        return read_table(self.path(key), binary_columns=binary_columns, delimiter=',',
                          skip_description_row=False)

    @staticmethod
    def _reuse(paths: Sequence[Path], force: bool) -> bool:
        return not force and all(p.exists() for p in paths)

    # -------------------------
    # Stages
    # -------------------------

    def build_predictors(self, force: bool = False) -> pd.DataFrame:
        if self._reuse([self.path('predictors_file')], force):
            logger.info("Predictor table exists, skipping")
            # raw codes, e.g. sex at birth 1/2, are recast only after aggregation
            return self._read('predictors_file', binary_columns=())
        predictors = PredictorTableBuilder().build(self.raw_dir)
        write_table(predictors, self.path('predictors_file'))
        return predictors

    def build_outcomes(self, force: bool = False) -> pd.DataFrame:
        if self._reuse([self.path('outcomes_file')], force):
            logger.info("Outcome table exists, skipping")
            return self._read('outcomes_file')
        outcomes = OutcomeLabelBuilder().build_from_dir(self.raw_dir)
        write_table(outcomes, self.path('outcomes_file'))
        return outcomes

    def assemble(self, force: bool = False) -> pd.DataFrame:
        outputs = [self.path('observations_file'), self.path('subjects_file')]
        if self._reuse(outputs, force):
            logger.info("Modeling tables exist, skipping")
            return self._read('subjects_file')
        observations, subjects = DatasetAssembler(self.assembly_config).assemble(
            self.build_predictors(), self.build_outcomes())
        write_table(observations, self.path('observations_file'))
        write_table(subjects, self.path('subjects_file'))
        return subjects

    def split(self, force: bool = False) -> Dict[str, pd.DataFrame]:
        """Split subjects, fit the imputer on training rows, build balanced resamples."""
        outputs = [self.path(k) for k in ('train_file', 'test_file', 'imputer_file', 'resamples_file')]
        if self._reuse(outputs, force):
            logger.info("Train/test split exists, skipping")
            return {'train': self._read('train_file'), 'test': self._read('test_file')}

        subjects = self.processor.drop_unlabelled(self.assemble())
        train, test = self.processor.split_subjects(subjects)
        imputer = self.processor.fit_imputer(train)
        train_imputed = self.processor.impute(train, imputer)

        write_table(train_imputed, self.path('train_file'))
        write_table(test, self.path('test_file'))
        joblib.dump(imputer, self.path('imputer_file'))

        resamples = self.processor.make_balanced_resamples(train_imputed)
        membership = {str(k): r[SUBJECT].tolist() for k, r in zip(self.resample_ids, resamples)}
        with open(self.path('resamples_file'), 'w') as f:
            json.dump(membership, f, indent=2)
        return {'train': train_imputed, 'test': test}

    def load_resamples(self) -> Dict[int, pd.DataFrame]:
        train = self.split()['train']
        with open(self.path('resamples_file')) as f:
            membership = json.load(f)
        indexed = train.set_index(SUBJECT, drop=False)
        return {int(k): indexed.loc[ids].reset_index(drop=True) for k, ids in membership.items()}

    def select_features(self, force: bool = False) -> Dict[int, List[str]]:
        """Run Boruta on every balanced resample and persist the selected feature lists."""
        resamples = self.load_resamples()
        cfg = self.model_config['boruta']
        selected = {}
        for k, data in resamples.items():
            path = self.feature_path(k)
            if self._reuse([path], force):
                with open(path) as f:
                    selected[k] = json.load(f)['selected']
                continue

            X, y = design_matrix(data)
            selector = BorutaSelector(
                n_estimators=int(cfg['n_estimators']),
                max_iter=int(cfg['max_iter']),
                alpha=float(cfg['alpha']),
                random_state=self.seeds['boruta'] + k,
            ).fit(X, y)
            selected[k] = selector.selected_features_

            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w') as f:
                json.dump({'selected': selector.selected_features_,
                           'decisions': selector.decisions_,
                           'final_decisions': selector.final_decisions_,
                           'iterations': selector.n_iter_}, f, indent=2)
            logger.info(f"Resample {k}: Boruta selected {len(selected[k])} features")
        return selected

    def train(self, force: bool = False) -> None:
        """Fit every family on every resample, and on its Boruta subset when enabled."""
        resamples = self.load_resamples()
        selected = self.select_features() if self.use_boruta else {}

        for k, data in resamples.items():
            variants = [(False, None)]
            if self.use_boruta:
                if selected.get(k):
                    variants.append((True, selected[k]))
                else:
                    logger.warning(f"Resample {k}: no Boruta features confirmed, variant skipped")

            for boruta, features in variants:
                for family in self.families:
                    path = self.model_path(family, k, boruta)
                    if self._reuse([path], force):
                        continue
                    model = self.trainer.fit_model(data, family, features)
                    self.trainer.save_model(model, path)

    def predict(self, force: bool = False) -> pd.DataFrame:
        """Score the imputed test set with every persisted artifact."""
        if self._reuse([self.path('predictions_file')], force):
            logger.info("Prediction table exists, skipping")
            return self._read('predictions_file')

        test = self.split()['test']
        imputer: BaggedTreeImputer = joblib.load(self.path('imputer_file'))
        test_imputed = self.processor.impute(test, imputer)

        selected = {}
        if self.use_boruta:
            for k in self.resample_ids:
                if self.feature_path(k).exists():
                    with open(self.feature_path(k)) as f:
                        selected[k] = json.load(f)['selected']

        frames = []
        for k in self.resample_ids:
            frame = test_imputed[[SUBJECT, IDEATION, ACTION]].copy()
            frame[RESAMPLE] = k
            for boruta in ([False, True] if self.use_boruta else [False]):
                features = selected.get(k) if boruta else None
                for family in self.families:
                    column = model_column(family, boruta)
                    path = self.model_path(family, k, boruta)
                    if not path.exists():
                        frame[column] = np.nan
                        continue
                    model = self.trainer.load_model(path)
                    frame[column] = self.trainer.predict(model, family, test_imputed, features)
            frames.append(frame)

        predictions = pd.concat(frames, ignore_index=True)
        write_table(predictions, self.path('predictions_file'))
        return predictions

    def evaluate(self, force: bool = False, plots: bool = True) -> pd.DataFrame:
        if self._reuse([self.path('metrics_file')], force):
            logger.info("Metrics exist, skipping")
            return pd.read_csv(self.path('metrics_file'))

        predictions = self.predict()
        metrics = self.evaluator.evaluate_predictions(predictions)
        write_table(metrics, self.path('metrics_file'))
        self.evaluator.print_evaluation_report(metrics)
        if plots:
            self.evaluator.generate_evaluation_plots(predictions, metrics,
                                                     save_dir=self.path('figure_dir'))
        return metrics

    def run(self, stages: Optional[Sequence[str]] = None, force: bool = False) -> None:
        """
        Run the requested stages in order.

        Args:
            stages: Stage names (default: all)
            force: Recompute stage outputs even when they exist
        """
        stages = STAGES if stages is None else list(stages)
        unknown = [s for s in stages if s not in STAGES]
        if unknown:
            raise ValueError(f"Unknown stages: {unknown}")

        actions = {
            'predictors': self.build_predictors,
            'outcomes': self.build_outcomes,
            'assemble': self.assemble,
            'split': self.split,
            'select_features': self.select_features,
            'train': self.train,
            'predict': self.predict,
            'evaluate': self.evaluate,
        }
        for stage in STAGES:
            if stage not in stages:
                continue
            if stage == 'select_features' and not self.use_boruta:
                logger.info("Boruta disabled, skipping feature selection")
                continue
            logger.info(f"=== Stage: {stage} ===")
            actions[stage](force=force)
