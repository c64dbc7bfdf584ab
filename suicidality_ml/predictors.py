"""
Predictor Table Builder

Selects and derives predictor columns from each questionnaire export and
outer-joins them on (subject_id, event_name).

Every source is described by a static ``SourceSchema``. Columns a schema
asks for must be present in the export; a renamed or missing column is a
build-time ``ValueError`` rather than a silently absent predictor.
"""

import logging
from dataclasses import dataclass, field
from functools import reduce
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .io import KEY_COLUMNS, read_table

logger = logging.getLogger(__name__)

# Name fragments of auxiliary missing-count / missing-total fields
AUXILIARY_TOKENS = ('_nm', '_nt')


@dataclass(frozen=True)
class Composite:
    """Row-wise sum of item responses, with optional reverse-scored items."""

    name: str
    items: Tuple[str, ...]
    reverse_items: Tuple[str, ...] = ()
    scale_max: int = 5

    def __post_init__(self):
        unknown = set(self.reverse_items) - set(self.items)
        if unknown:
            raise ValueError(f"Reverse-scored items {sorted(unknown)} are not items of '{self.name}'")


@dataclass(frozen=True)
class QualityGate:
    """
    Ratio of two item counts, nulled when too many items went unanswered.

    ``output = numerator / denominator`` unless
    ``noanswer / item_count > max_noanswer_ratio``.
    """

    output: str
    numerator: str
    denominator: str
    noanswer: str
    item_count: int
    max_noanswer_ratio: float = 0.15


@dataclass(frozen=True)
class SourceSchema:
    """Static column selection / derivation rule for one questionnaire export."""

    name: str
    filename: str
    columns: Tuple[str, ...] = ()
    text_columns: Tuple[str, ...] = ()
    composites: Tuple[Composite, ...] = ()
    zero_recodes: Dict[str, float] = field(default_factory=dict)
    quality_gate: Optional[QualityGate] = None

    def __post_init__(self):
        auxiliary = [c for c in self.columns if any(tok in c for tok in AUXILIARY_TOKENS)]
        if auxiliary:
            raise ValueError(f"Source '{self.name}' selects auxiliary columns: {auxiliary}")

    @property
    def output_columns(self) -> List[str]:
        cols = list(self.columns) + list(self.text_columns)
        cols += [c.name for c in self.composites]
        if self.quality_gate is not None:
            cols.append(self.quality_gate.output)
        return cols

    def required_columns(self) -> List[str]:
        """Columns the raw export must provide, keys excluded."""
        required = list(self.columns) + list(self.text_columns)
        for comp in self.composites:
            required += [c for c in comp.items if c not in required]
        required += [c for c in self.zero_recodes if c not in required]
        gate = self.quality_gate
        if gate is not None:
            required += [c for c in (gate.numerator, gate.denominator, gate.noanswer)
                         if c not in required]
        return required


CBCL_SYNDROMES = ('anxdep', 'withdep', 'somatic', 'social', 'thought',
                  'attention', 'rulebreak', 'aggressive', 'internal',
                  'external', 'totprob')

PREDICTOR_SOURCES: List[SourceSchema] = [
    SourceSchema(
        name='cbcl',
        filename='abcd_cbcls01.csv',
        columns=tuple(f'cbcl_scr_syn_{s}_r' for s in CBCL_SYNDROMES),
    ),
    SourceSchema(
        name='upps',
        filename='abcd_upps01.csv',
        columns=(
            'upps_y_ss_negative_urgency',
            'upps_y_ss_lack_of_planning',
            'upps_y_ss_sensation_seeking',
            'upps_y_ss_positive_urgency',
            'upps_y_ss_lack_of_perseverance',
        ),
    ),
    SourceSchema(
        name='bisbas',
        filename='abcd_bisbas01.csv',
        columns=('bis_y_ss_bis_sum', 'bis_y_ss_bas_rr', 'bis_y_ss_bas_drive', 'bis_y_ss_bas_fs'),
    ),
    SourceSchema(
        name='general_behavior',
        filename='abcd_pgbi01.csv',
        columns=('pgbi_p_ss_score',),
    ),
    SourceSchema(
        name='sleep',
        filename='abcd_sds01.csv',
        columns=('sds_p_ss_dims', 'sds_p_ss_sbd', 'sds_p_ss_da', 'sds_p_ss_swtd',
                 'sds_p_ss_does', 'sds_p_ss_shy', 'sds_p_ss_total'),
    ),
    SourceSchema(
        name='prosocial',
        filename='psb01.csv',
        columns=('psb_y_ss_mean', 'psb_p_ss_mean'),
    ),
    SourceSchema(
        name='family_environment',
        filename='abcd_fes01.csv',
        columns=('fes_y_ss_fc', 'fes_p_ss_fc'),
    ),
    SourceSchema(
        name='parental_monitoring',
        filename='pmq01.csv',
        columns=('pmq_y_ss_mean',),
    ),
    SourceSchema(
        name='screen_time',
        filename='stq01.csv',
        columns=('screentime_sm_min',),
        composites=(
            Composite('screentime_wkdy_total',
                      tuple(f'screen{i}_wkdy_y' for i in range(1, 6))),
        ),
        # 999 = "I do not use social media"
        zero_recodes={'screentime_sm_min': 999},
    ),
    SourceSchema(
        name='school_environment',
        filename='srpf01.csv',
        columns=('srpf_y_ss_ses', 'srpf_y_ss_iiss'),
        composites=(
            Composite('school_disengagement',
                      ('school_12_y', 'school_15_y', 'school_17_y'),
                      reverse_items=('school_12_y',)),
        ),
    ),
    SourceSchema(
        name='demographics',
        filename='pdem02.csv',
        columns=('interview_age', 'demo_sex_v2', 'demo_prnt_ed_v2', 'demo_comb_income_v2'),
        text_columns=('site_id_l',),
    ),
    SourceSchema(
        name='gender_identity',
        filename='abcd_ksad501.csv',
        columns=('kbi_gender', 'kbi_y_trans_id', 'kbi_y_sex_orient'),
    ),
    SourceSchema(
        name='cognition',
        filename='abcd_tbss01.csv',
        columns=('nihtbx_totalcomp_uncorrected', 'nihtbx_fluidcomp_uncorrected',
                 'nihtbx_cryst_uncorrected'),
    ),
    SourceSchema(
        name='life_events',
        filename='abcd_yle01.csv',
        quality_gate=QualityGate(
            output='ple_bad_ratio',
            numerator='ple_y_ss_total_bad',
            denominator='ple_y_ss_total_number',
            noanswer='ple_y_ss_total_noanswer',
            item_count=25,
        ),
    ),
    SourceSchema(
        name='brief_problem_monitor',
        filename='abcd_bpm01.csv',
        columns=('bpm_y_scr_attention_r', 'bpm_y_scr_internal_r', 'bpm_y_scr_external_r',
                 'bpm_t_scr_attention_r', 'bpm_t_scr_internal_r', 'bpm_t_scr_external_r'),
    ),
    SourceSchema(
        name='family_history',
        filename='fhxp102.csv',
        columns=('famhx_ss_momdad_scd_p', 'famhx_ss_momdad_dprs_p'),
    ),
]


def _check_unique_keys(df: pd.DataFrame, name: str) -> None:
    dupes = df.duplicated(subset=KEY_COLUMNS, keep=False)
    if dupes.any():
        examples = df.loc[dupes, KEY_COLUMNS].drop_duplicates().head(5).values.tolist()
        raise ValueError(f"Source '{name}' has {int(dupes.sum())} rows with duplicate keys, e.g. {examples}")


def apply_quality_gate(data: pd.DataFrame, gate: QualityGate) -> pd.Series:
    """Compute the gated ratio for every row."""
    ratio = data[gate.numerator] / data[gate.denominator]
    ratio = ratio.replace([np.inf, -np.inf], np.nan)
    noanswer_ratio = data[gate.noanswer] / gate.item_count
    gated = noanswer_ratio > gate.max_noanswer_ratio
    if gated.any():
        logger.info(f"{gate.output}: {int(gated.sum())} rows exceed no-answer ratio "
                    f"{gate.max_noanswer_ratio}, set to missing")
    return ratio.mask(gated)


def score_composite(data: pd.DataFrame, composite: Composite) -> pd.Series:
    """Sum item responses row-wise after reverse scoring; all-missing rows stay missing."""
    items = data[list(composite.items)].copy()
    for col in composite.reverse_items:
        items[col] = (composite.scale_max + 1) - items[col]
    return items.sum(axis=1, min_count=1)


def select_source(df: pd.DataFrame, schema: SourceSchema) -> pd.DataFrame:
    """
    Apply a source's selection and derivation rules.

    Args:
        df: Raw export with key columns
        schema: Static rule for this export

    Returns:
        DataFrame with key columns followed by the schema's output columns
    """
    missing = [c for c in KEY_COLUMNS + schema.required_columns() if c not in df.columns]
    if missing:
        raise ValueError(f"Source '{schema.name}' ({schema.filename}) is missing columns: {missing}")
    _check_unique_keys(df, schema.name)

    numeric_cols = [c for c in schema.required_columns() if c not in schema.text_columns]
    data = df[numeric_cols].apply(pd.to_numeric, errors='coerce')

    for col, sentinel in schema.zero_recodes.items():
        data.loc[data[col] == sentinel, col] = 0

    out = df[KEY_COLUMNS].copy()
    for col in schema.columns:
        out[col] = data[col]
    for col in schema.text_columns:
        out[col] = df[col]
    for comp in schema.composites:
        out[comp.name] = score_composite(data, comp)
    if schema.quality_gate is not None:
        out[schema.quality_gate.output] = apply_quality_gate(data, schema.quality_gate)

    return out


def outer_join(tables: Sequence[pd.DataFrame]) -> pd.DataFrame:
    """Outer-join tables on the key columns and sort by subject, then event."""
    if not tables:
        raise ValueError("No tables to join")
    joined = reduce(lambda left, right: left.merge(right, on=KEY_COLUMNS, how='outer'), tables)
    return joined.sort_values(KEY_COLUMNS, kind='mergesort').reset_index(drop=True)


class PredictorTableBuilder:
    """Builds the joined predictor table from the questionnaire exports."""

    def __init__(self, sources: Optional[Sequence[SourceSchema]] = None,
                 delimiter: Optional[str] = None,
                 skip_description_row: Optional[bool] = None):
        self.sources = list(PREDICTOR_SOURCES if sources is None else sources)
        self.delimiter = delimiter
        self.skip_description_row = skip_description_row

        seen: Dict[str, str] = {}
        for schema in self.sources:
            for col in schema.output_columns:
                if col in seen:
                    raise ValueError(f"Column '{col}' produced by both '{seen[col]}' and '{schema.name}'")
                seen[col] = schema.name

    @property
    def predictor_columns(self) -> List[str]:
        return [c for s in self.sources for c in s.output_columns]

    def load_source(self, raw_dir: Union[str, Path], schema: SourceSchema) -> pd.DataFrame:
        return read_table(Path(raw_dir) / schema.filename,
                          delimiter=self.delimiter,
                          skip_description_row=self.skip_description_row)

    def build(self, raw_dir: Union[str, Path]) -> pd.DataFrame:
        """
        Load, select and join every source.

        Args:
            raw_dir: Directory holding the raw exports

        Returns:
            Predictor table keyed by (subject_id, event_name)
        """
        logger.info(f"Building predictor table from {len(self.sources)} sources in {raw_dir}")
        tables = []
        for schema in self.sources:
            selected = select_source(self.load_source(raw_dir, schema), schema)
            logger.info(f"{schema.name}: {len(selected)} rows, {len(schema.output_columns)} columns")
            tables.append(selected)

        joined = outer_join(tables)
        logger.info(f"Predictor table: {joined.shape[0]} rows, {joined.shape[1]} columns")
        return joined
