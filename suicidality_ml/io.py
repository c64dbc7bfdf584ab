"""
Table I/O

Reading and writing of the delimited tables exchanged between stages.
Binary fields live in memory as pandas ``boolean`` columns and are written
as 0/1 integers; ``read_table`` restores the declared binary columns.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

import pandas as pd

from .config import DATA_CONFIG

logger = logging.getLogger(__name__)

KEY_COLUMNS = [DATA_CONFIG['subject_column'], DATA_CONFIG['event_column']]


def to_boolean(series: pd.Series) -> pd.Series:
    """Cast a 0/1, True/False or missing series to the nullable boolean dtype."""
    if pd.api.types.is_bool_dtype(series):
        return series.astype('boolean')
    numeric = pd.to_numeric(series, errors='coerce')
    invalid = numeric.notna() & ~numeric.isin([0, 1])
    if invalid.any():
        raise ValueError(f"Column '{series.name}' has non-binary values: "
                         f"{sorted(numeric[invalid].unique().tolist())[:5]}")
    result = (numeric != 0).astype('boolean')
    result[numeric.isna()] = pd.NA
    return result


def read_table(file_path: Union[str, Path],
               binary_columns: Optional[Iterable[str]] = None,
               delimiter: Optional[str] = None,
               skip_description_row: Optional[bool] = None) -> pd.DataFrame:
    """
    Load a delimited table with string-typed join keys.

    Args:
        file_path: Path to the table
        binary_columns: Columns to restore as nullable booleans
        delimiter: Field delimiter (defaults to DATA_CONFIG)
        skip_description_row: Drop the NDA description row under the header

    Returns:
        Loaded DataFrame
    """
    sep = DATA_CONFIG['delimiter'] if delimiter is None else delimiter
    skip = DATA_CONFIG['skip_description_row'] if skip_description_row is None else skip_description_row
    logger.info(f"Loading table from {file_path}")

    try:
        df = pd.read_csv(
            file_path,
            sep=sep,
            skiprows=[1] if skip else None,
            dtype={c: str for c in KEY_COLUMNS},
            low_memory=False,
        )
    except Exception as e:
        logger.error(f"Error loading {file_path}: {e}")
        raise

    for col in binary_columns or []:
        if col in df.columns:
            df[col] = to_boolean(df[col])

    logger.info(f"Loaded {df.shape[0]} rows, {df.shape[1]} columns")
    return df


def write_table(df: pd.DataFrame, file_path: Union[str, Path]) -> Path:
    """
    Write a table as comma-delimited text, boolean columns as 0/1.

    Args:
        df: Table to write
        file_path: Destination path (parent directories are created)

    Returns:
        The destination path
    """
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    out = df.copy()
    for col in out.columns:
        if pd.api.types.is_bool_dtype(out[col]):
            out[col] = out[col].astype('Int8')

    out.to_csv(path, index=False)
    logger.info(f"Wrote {out.shape[0]} rows, {out.shape[1]} columns to {path}")
    return path
