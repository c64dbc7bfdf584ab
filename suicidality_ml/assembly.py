"""
Dataset Assembler

Combines the predictor and outcome tables into the modeling dataset:
an un-aggregated per-observation table and a per-subject table with
sentinel sanitation, categorical recodes, mean aggregation, binary
recasting and missingness filtering applied.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .config import ASSEMBLY_CONFIG, DATA_CONFIG
from .io import KEY_COLUMNS, to_boolean
from .predictors import outer_join

logger = logging.getLogger(__name__)

SUBJECT = DATA_CONFIG['subject_column']
EVENT = DATA_CONFIG['event_column']


def missingness_report(df: pd.DataFrame, exclude: Optional[List[str]] = None) -> pd.Series:
    """Fraction of missing cells per column, highest first."""
    cols = [c for c in df.columns if c not in (exclude or [])]
    return df[cols].isna().mean().sort_values(ascending=False)


class DatasetAssembler:
    """Builds the per-observation and per-subject modeling tables."""

    def __init__(self, config: Optional[Dict] = None):
        self.config = {**ASSEMBLY_CONFIG, **(config or {})}
        self.threshold = float(self.config['missing_threshold'])

    def _numeric_predictors(self, df: pd.DataFrame) -> List[str]:
        skip = set(KEY_COLUMNS) | set(self.config['binary_columns'])
        return [c for c in df.columns
                if c not in skip
                and pd.api.types.is_numeric_dtype(df[c])
                and not pd.api.types.is_bool_dtype(df[c])]

    def join(self, predictors: pd.DataFrame, outcomes: pd.DataFrame) -> pd.DataFrame:
        joined = outer_join([predictors, outcomes])
        logger.info(f"Joined predictors and outcomes: {joined.shape[0]} observations")
        return joined

    def sanitize(self, df: pd.DataFrame) -> pd.DataFrame:
        """Replace continuous cells outside the valid range with missing."""
        lo, hi = self.config['valid_range']
        df = df.copy()
        total = 0
        for col in self._numeric_predictors(df):
            out_of_range = (df[col] < lo) | (df[col] > hi)
            n = int(out_of_range.sum())
            if n:
                df[col] = df[col].mask(out_of_range)
                total += n
                logger.debug(f"{col}: {n} values outside [{lo}, {hi}] set to missing")
        logger.info(f"Sentinel sanitation replaced {total} cells outside [{lo}, {hi}]")
        return df

    def recode_categories(self, df: pd.DataFrame) -> pd.DataFrame:
        """Swap gender identity codes and null out-of-range orientation codes."""
        df = df.copy()
        gender = self.config['gender_column']
        if gender in df.columns:
            original = df[gender].copy()
            for src, dst in self.config['gender_swap'].items():
                df.loc[original == src, gender] = dst

        cap = self.config['capped_code_max']
        for col in self.config['capped_code_columns']:
            if col in df.columns:
                df[col] = df[col].mask(df[col] > cap)
        return df

    def aggregate_subjects(self, df: pd.DataFrame) -> pd.DataFrame:
        """Average every column per subject, ignoring missing values."""
        drop = [EVENT] + [c for c in self.config['admin_columns'] if c in df.columns]
        data = df.drop(columns=drop)
        for col in data.columns:
            if col != SUBJECT and pd.api.types.is_bool_dtype(data[col]):
                data[col] = data[col].astype('Float64').astype(float)
        aggregated = data.groupby(SUBJECT, sort=True).mean(numeric_only=True).reset_index()
        logger.info(f"Aggregated {len(df)} observations to {len(aggregated)} subjects")
        return aggregated

    def rederive_fields(self, df: pd.DataFrame) -> pd.DataFrame:
        """Round and index-shift sex at birth; round gender."""
        df = df.copy()
        sex = self.config['sex_column']
        if sex in df.columns:
            df[sex] = np.round(df[sex]) + self.config['sex_shift']
        gender = self.config['gender_column']
        if gender in df.columns:
            df[gender] = np.round(df[gender])
        return df

    def recast_binary(self, df: pd.DataFrame) -> pd.DataFrame:
        """Threshold averaged binary fields back to two levels."""
        df = df.copy()
        ever = set(self.config['ever_columns'])
        for col in self.config['binary_columns']:
            if col not in df.columns:
                continue
            values = pd.to_numeric(df[col], errors='coerce')
            flags = values > 0 if col in ever else values >= 0.5
            df[col] = to_boolean(flags.astype(float).mask(values.isna()))
        return df

    def remediate_problem_fields(self, df: pd.DataFrame) -> pd.DataFrame:
        """Fill the problem fields' missing values with their "no problem" default."""
        df = df.copy()
        for col, default in self.config['problem_defaults'].items():
            if col in df.columns:
                n = int(df[col].isna().sum())
                df[col] = df[col].fillna(default)
                logger.info(f"{col}: {n} missing values set to {default}")
        return df

    def drop_teacher_report(self, df: pd.DataFrame) -> pd.DataFrame:
        prefix = self.config['teacher_prefix']
        cols = [c for c in df.columns if c.startswith(prefix)]
        logger.info(f"Dropping {len(cols)} teacher-report columns")
        return df.drop(columns=cols)

    def filter_rows(self, df: pd.DataFrame) -> pd.DataFrame:
        """Drop subjects whose fraction of missing cells exceeds the threshold."""
        frac = df.drop(columns=[SUBJECT]).isna().mean(axis=1)
        keep = frac <= self.threshold
        logger.info(f"Dropping {int((~keep).sum())} of {len(df)} subjects with more than "
                    f"{self.threshold:.0%} missing cells")
        return df.loc[keep].reset_index(drop=True)

    def report_column_missingness(self, df: pd.DataFrame) -> pd.Series:
        report = missingness_report(df, exclude=[SUBJECT])
        over = report[report > self.threshold]
        for col, frac in over.items():
            logger.info(f"{col}: {frac:.1%} missing")
        if over.empty:
            logger.info(f"No column exceeds {self.threshold:.0%} missingness")
        return report

    def drop_redundant(self, df: pd.DataFrame) -> pd.DataFrame:
        cols = [c for c in self.config['redundant_columns'] if c in df.columns]
        logger.info(f"Dropping redundant columns: {cols}")
        return df.drop(columns=cols)

    def enforce_thresholds(self, df: pd.DataFrame) -> pd.DataFrame:
        """Drop any column, then any row, still above the missingness threshold."""
        report = missingness_report(df, exclude=[SUBJECT])
        over = report[report > self.threshold].index.tolist()
        if over:
            logger.warning(f"Columns still above {self.threshold:.0%} missingness dropped: {over}")
        df = df.drop(columns=over)
        frac = df.drop(columns=[SUBJECT]).isna().mean(axis=1)
        keep = frac <= self.threshold
        if not keep.all():
            logger.warning(f"{int((~keep).sum())} subjects above {self.threshold:.0%} missingness "
                           f"after column drops removed")
        return df.loc[keep].reset_index(drop=True)

    def assemble(self, predictors: pd.DataFrame,
                 outcomes: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Run every assembly step.

        Args:
            predictors: Predictor table keyed by (subject_id, event_name)
            outcomes: Outcome table keyed by (subject_id, event_name)

        Returns:
            (per-observation table, per-subject modeling table)
        """
        observations = self.join(predictors, outcomes)
        observations = self.sanitize(observations)
        observations = self.recode_categories(observations)

        subjects = self.aggregate_subjects(observations)
        subjects = self.rederive_fields(subjects)
        subjects = self.recast_binary(subjects)
        subjects = self.remediate_problem_fields(subjects)
        subjects = self.drop_teacher_report(subjects)
        subjects = self.filter_rows(subjects)
        self.report_column_missingness(subjects)
        subjects = self.drop_redundant(subjects)
        subjects = self.enforce_thresholds(subjects)

        logger.info(f"Modeling table: {subjects.shape[0]} subjects, {subjects.shape[1]} columns")
        return observations, subjects
