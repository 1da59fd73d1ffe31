"""Tests for per-person fill aggregation."""
import pytest
import pandas as pd
from condition_pmed.processing.person_aggregator import (
    aggregate_fills_by_person,
    top_drugs,
)


def make_fills():
    return pd.DataFrame({
        "DUPERSID": ["P1", "P1", "P1", "P2"],
        "RXRECIDX": ["F1", "F2", "F3", "F1"],
        "RXDRGNAM": ["ATORVASTATIN", "ATORVASTATIN", "EZETIMIBE", "ATORVASTATIN"],
        "RXXP21X": [10.0, 0.0, 25.5, 42.5],
    })


class TestAggregateFillsByPerson:
    """Tests for aggregate_fills_by_person."""

    def test_counts_and_sums(self):
        """Fill counts and expenditure per person."""
        result = aggregate_fills_by_person(make_fills(), "RXXP21X", label="hl")
        p1 = result[result["DUPERSID"] == "P1"].iloc[0]
        assert p1["n_hl_fills"] == 3
        assert p1["hl_drug_exp"] == pytest.approx(35.5)

    def test_zero_expenditure_fill_counted(self):
        """A $0 fill counts as a fill and adds nothing to the sum."""
        fills = pd.DataFrame({
            "DUPERSID": ["P3"], "RXRECIDX": ["F1"],
            "RXDRGNAM": ["SAMPLE"], "RXXP21X": [0.0],
        })
        result = aggregate_fills_by_person(fills, "RXXP21X")
        assert result.iloc[0]["n_hl_fills"] == 1
        assert result.iloc[0]["hl_drug_exp"] == 0.0

    def test_one_row_per_person(self):
        """Output has one row per person with fills."""
        result = aggregate_fills_by_person(make_fills(), "RXXP21X")
        assert len(result) == 2
        assert result["DUPERSID"].is_unique

    def test_counts_distinct_fill_ids(self):
        """Repeated fill ids count once."""
        fills = pd.concat([make_fills(), make_fills().iloc[[0]]], ignore_index=True)
        result = aggregate_fills_by_person(fills, "RXXP21X")
        assert result.loc[result["DUPERSID"] == "P1", "n_hl_fills"].iloc[0] == 3

    def test_empty_fills(self):
        """No fills gives an empty aggregate with the output columns."""
        result = aggregate_fills_by_person(make_fills().iloc[0:0], "RXXP21X", label="htn")
        assert result.empty
        assert list(result.columns) == ["DUPERSID", "n_htn_fills", "htn_drug_exp"]

    def test_label_prefix(self):
        """Column names follow the label."""
        result = aggregate_fills_by_person(make_fills(), "RXXP21X", label="asth")
        assert "n_asth_fills" in result.columns
        assert "asth_drug_exp" in result.columns


class TestTopDrugs:
    """Tests for the top drug QC table."""

    def test_most_frequent_first(self):
        """Drugs sorted by count."""
        result = top_drugs(make_fills(), n=1)
        assert len(result) == 1
        assert result.iloc[0]["RXDRGNAM"] == "ATORVASTATIN"
        assert result.iloc[0]["n"] == 3
