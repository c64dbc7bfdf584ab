"""Tests for table reading and writing."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from suicidality_ml.io import read_table, to_boolean, write_table


def test_to_boolean_keeps_missing() -> None:
    out = to_boolean(pd.Series([0, 1, np.nan, 1.0]))
    assert str(out.dtype) == "boolean"
    assert out.tolist()[:2] == [False, True]
    assert out.isna().tolist() == [False, False, True, False]


def test_to_boolean_rejects_category_codes() -> None:
    with pytest.raises(ValueError, match="non-binary values"):
        to_boolean(pd.Series([1, 2, 1], name="demo_sex_v2"))


def test_booleans_written_as_integers(tmp_path: Path) -> None:
    df = pd.DataFrame({
        "subject_id": ["007", "010"],
        "ideation": pd.array([True, pd.NA], dtype="boolean"),
    })
    path = write_table(df, tmp_path / "nested" / "table.csv")

    assert path.read_text().splitlines() == ["subject_id,ideation", "007,1", "010,"]
    reloaded = read_table(path, binary_columns=["ideation"])
    assert reloaded["subject_id"].tolist() == ["007", "010"]
    assert reloaded["ideation"].isna().tolist() == [False, True]
