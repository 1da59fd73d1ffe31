"""Tests for the CCSR condition filter."""
import pytest
import pandas as pd
from condition_pmed.processing.condition_filter import (
    filter_conditions,
    find_duplicate_conditions,
    condition_code_counts,
)


def make_conditions():
    return pd.DataFrame({
        "DUPERSID": ["P1", "P1", "P2", "P3", "P4"],
        "CONDIDX": ["P1C1", "P1C2", "P2C1", "P3C1", "P4C1"],
        "ICD10CDX": ["E78", "E78", "I10", "E78", "J45"],
        "CCSR1X": ["END010", "END010", "CIR007", "XXX111", "RSP009"],
        "CCSR2X": ["-1", "-1", "-1", "END010", "-1"],
        "CCSR3X": ["-1", "-1", "-1", "-1", "-1"],
    })


class TestFilterConditions:
    """Tests for filter_conditions."""

    def test_matches_any_ccsr_column(self):
        """Rows match on CCSR1X, CCSR2X or CCSR3X."""
        result = filter_conditions(make_conditions(), "END010")
        assert set(result["CONDIDX"]) == {"P1C1", "P1C2", "P3C1"}

    def test_matches_third_column(self):
        """A code only in CCSR3X is matched."""
        df = make_conditions()
        df.loc[4, "CCSR3X"] = "END010"
        result = filter_conditions(df, "END010")
        assert "P4C1" in set(result["CONDIDX"])

    def test_keeps_multiple_rows_per_person(self):
        """Duplicate conditions for one person are all kept."""
        result = filter_conditions(make_conditions(), "END010")
        assert (result["DUPERSID"] == "P1").sum() == 2

    def test_no_match_is_empty(self):
        """No matching code gives an empty frame with the same columns."""
        df = make_conditions()
        result = filter_conditions(df, "NVS001")
        assert result.empty
        assert list(result.columns) == list(df.columns)

    def test_custom_columns(self):
        """Only the listed CCSR columns are searched."""
        result = filter_conditions(make_conditions(), "END010", ccsr_columns=["CCSR1X"])
        assert set(result["CONDIDX"]) == {"P1C1", "P1C2"}


class TestDuplicateConditions:
    """Tests for duplicate condition detection."""

    def test_finds_persons_with_multiple_records(self):
        """Only persons with more than one record are returned."""
        hl = filter_conditions(make_conditions(), "END010")
        dups = find_duplicate_conditions(hl)
        assert set(dups["DUPERSID"]) == {"P1"}
        assert len(dups) == 2


class TestConditionCodeCounts:
    """Tests for the ICD10/CCSR count table."""

    def test_counts(self):
        """Counts grouped by ICD10 and CCSR combination."""
        counts = condition_code_counts(make_conditions())
        top = counts.iloc[0]
        assert top["ICD10CDX"] == "E78"
        assert top["CCSR1X"] == "END010"
        assert top["n"] == 2
        assert counts["n"].sum() == 5
