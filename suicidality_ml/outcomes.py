"""
Outcome Label Builder

Derives the suicidal ideation and suicidal action flags per
(subject_id, event_name) from the parent- and youth-report structured
interview exports, then merges the two reports with a logical OR.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import pandas as pd

from .config import OUTCOME_CONFIG
from .io import KEY_COLUMNS, read_table

logger = logging.getLogger(__name__)

IDEATION = OUTCOME_CONFIG['ideation_column']
ACTION = OUTCOME_CONFIG['action_column']


@dataclass(frozen=True)
class OutcomeItemSet:
    """Item columns of one interview report."""

    report: str
    ideation_items: Tuple[str, ...]
    action_items: Tuple[str, ...]
    no_is_two_items: Tuple[str, ...] = ()

    def __post_init__(self):
        extra = set(self.action_items) - set(self.ideation_items)
        if extra:
            raise ValueError(f"{self.report}: action items {sorted(extra)} are not ideation items")
        extra = set(self.no_is_two_items) - set(self.ideation_items)
        if extra:
            raise ValueError(f"{self.report}: recoded items {sorted(extra)} are not ideation items")

    @classmethod
    def from_codes(cls, report: str, suffix: str,
                   ideation_codes: Sequence[int],
                   action_codes: Sequence[int],
                   no_is_two_codes: Sequence[int] = (),
                   prefix: str = OUTCOME_CONFIG['item_prefix']) -> 'OutcomeItemSet':
        def name(code):
            return f"{prefix}{code}{suffix}"

        return cls(
            report=report,
            ideation_items=tuple(name(c) for c in ideation_codes),
            action_items=tuple(name(c) for c in action_codes),
            no_is_two_items=tuple(name(c) for c in no_is_two_codes),
        )


PARENT_ITEMS = OutcomeItemSet.from_codes(
    'parent', OUTCOME_CONFIG['parent_suffix'],
    OUTCOME_CONFIG['ideation_codes'],
    OUTCOME_CONFIG['action_codes'],
    OUTCOME_CONFIG['no_is_two_codes'],
)
YOUTH_ITEMS = OutcomeItemSet.from_codes(
    'youth', OUTCOME_CONFIG['youth_suffix'],
    OUTCOME_CONFIG['ideation_codes'],
    OUTCOME_CONFIG['action_codes'],
    OUTCOME_CONFIG['no_is_two_codes'],
)


def derive_flags(df: pd.DataFrame, items: OutcomeItemSet) -> pd.DataFrame:
    """
    Compute ideation / action flags for one report.

    Missing responses count as "no". Items coded 2 = no are recoded to 0.

    Args:
        df: Interview export with key and item columns
        items: Item columns of this report

    Returns:
        DataFrame of keys plus boolean ``ideation`` and ``action``
    """
    missing = [c for c in KEY_COLUMNS + list(items.ideation_items) if c not in df.columns]
    if missing:
        raise ValueError(f"{items.report} interview export is missing columns: {missing}")
    dupes = df.duplicated(subset=KEY_COLUMNS)
    if dupes.any():
        raise ValueError(f"{items.report} interview export has {int(dupes.sum())} duplicate keys")

    responses = df[list(items.ideation_items)].apply(pd.to_numeric, errors='coerce')
    n_missing = int(responses.isna().sum().sum())
    if n_missing:
        logger.info(f"{items.report}: {n_missing} missing item responses treated as 'no'")
    responses = responses.fillna(0)

    for col in items.no_is_two_items:
        responses.loc[responses[col] == 2, col] = 0

    out = df[KEY_COLUMNS].copy()
    out[IDEATION] = (responses.sum(axis=1) != 0).astype('boolean')
    out[ACTION] = (responses[list(items.action_items)].sum(axis=1) != 0).astype('boolean')
    return out


def merge_reports(*reports: pd.DataFrame) -> pd.DataFrame:
    """Row-union per-report flags and OR them per (subject, event)."""
    stacked = pd.concat(reports, ignore_index=True)
    counts = stacked[[IDEATION, ACTION]].astype(int)
    counts[KEY_COLUMNS] = stacked[KEY_COLUMNS]
    merged = counts.groupby(KEY_COLUMNS, sort=True)[[IDEATION, ACTION]].sum()
    merged = (merged > 0).astype('boolean').reset_index()
    return merged[KEY_COLUMNS + [IDEATION, ACTION]]


class OutcomeLabelBuilder:
    """Builds the outcome table from the parent and youth interview exports."""

    def __init__(self, parent_items: OutcomeItemSet = PARENT_ITEMS,
                 youth_items: OutcomeItemSet = YOUTH_ITEMS,
                 delimiter: Optional[str] = None,
                 skip_description_row: Optional[bool] = None):
        self.parent_items = parent_items
        self.youth_items = youth_items
        self.delimiter = delimiter
        self.skip_description_row = skip_description_row

    def build(self, parent_df: pd.DataFrame, youth_df: pd.DataFrame) -> pd.DataFrame:
        parent = derive_flags(parent_df, self.parent_items)
        youth = derive_flags(youth_df, self.youth_items)
        outcomes = merge_reports(parent, youth)

        logger.info(f"Outcome table: {len(outcomes)} observations, "
                    f"ideation={int(outcomes[IDEATION].sum())}, action={int(outcomes[ACTION].sum())}")
        return outcomes

    def build_from_dir(self, raw_dir: Union[str, Path]) -> pd.DataFrame:
        raw_dir = Path(raw_dir)
        kwargs = dict(delimiter=self.delimiter, skip_description_row=self.skip_description_row)
        parent_df = read_table(raw_dir / OUTCOME_CONFIG['parent_file'], **kwargs)
        youth_df = read_table(raw_dir / OUTCOME_CONFIG['youth_file'], **kwargs)
        return self.build(parent_df, youth_df)
