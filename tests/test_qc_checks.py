"""Tests for QC checks."""

import pytest
import pandas as pd

from condition_pmed.config.cond_pmed_config import ConditionTarget
from condition_pmed.processing.deduplicator import deduplicate_fills
from condition_pmed.processing.person_aggregator import aggregate_fills_by_person
from condition_pmed.processing.person_merger import merge_onto_population
from condition_pmed.validation.qc_checks import (
    ValidationResult,
    validate_linkage,
    validate_person_file,
    validate_totals,
    diagnosis_flag_crosstab,
    run_all_checks,
    failed_checks,
)


def make_linked():
    merged = pd.DataFrame({
        "DUPERSID": ["P1", "P1", "P2"],
        "CONDIDX": ["P1C1", "P1C2", "P2C1"],
        "RXRECIDX": ["F1", "F1", "F1"],
        "RXDRGNAM": ["ATORVASTATIN", "ATORVASTATIN", "SIMVASTATIN"],
        "RXXP21X": [42.5, 42.5, 10.0],
    })
    fyc = pd.DataFrame({
        "DUPERSID": ["P1", "P2", "P3"],
        "CHOLDX": [1, 1, -1],
        "VARSTR": [1, 1, 2],
        "VARPSU": [1, 2, 1],
        "PERWT21F": [1.0, 1.0, 1.0],
    })
    deduped = deduplicate_fills(merged)
    by_person = aggregate_fills_by_person(deduped, "RXXP21X")
    person = merge_onto_population(fyc, by_person)
    return merged, deduped, by_person, person, fyc


class TestValidationResultClass:
    """Test ValidationResult container class."""

    def test_add_checks(self):
        """Passed and failed checks are counted."""
        result = ValidationResult("Test")
        result.add_check("Check 1", True)
        result.add_check("Check 2", False, "details")
        assert result.passed == 1
        assert result.failed == 1
        assert not result.ok

    def test_summary(self):
        """Summary shows PASS or FAIL."""
        result = ValidationResult("Test")
        result.add_check("Check 1", True)
        assert "PASS" in result.summary()
        result.add_check("Check 2", False)
        assert "FAIL" in result.summary()

    def test_report_lists_checks(self):
        """Report includes descriptions and details."""
        result = ValidationResult("Test")
        result.add_check("Rows match", False, "3 vs 4")
        report = result.report()
        assert "Rows match" in report
        assert "3 vs 4" in report


class TestLinkageChecks:
    """Tests for linkage validation."""

    def test_clean_linkage_passes(self):
        """Deduplicated fills pass."""
        merged, deduped, _, _, _ = make_linked()
        assert validate_linkage(merged, deduped).ok

    def test_undeduplicated_fails(self):
        """Passing the fanned-out rows as deduplicated fails."""
        merged, _, _, _, _ = make_linked()
        assert not validate_linkage(merged, merged).ok


class TestPersonFileChecks:
    """Tests for person file validation."""

    def test_valid_person_file(self):
        """Merged file passes every check."""
        _, _, _, person, fyc = make_linked()
        assert validate_person_file(person, fyc, ConditionTarget()).ok

    def test_flag_violation_fails(self):
        """Flag 0 with fills is caught."""
        _, _, _, person, fyc = make_linked()
        person.loc[person["DUPERSID"] == "P1", "hl_pmed_flag"] = 0
        result = validate_person_file(person, fyc, ConditionTarget())
        assert result.failed >= 1

    def test_null_fails(self):
        """Nulls in derived columns are caught."""
        _, _, _, person, fyc = make_linked()
        person["hl_drug_exp"] = person["hl_drug_exp"].astype(float)
        person.loc[2, "hl_drug_exp"] = None
        assert not validate_person_file(person, fyc, ConditionTarget()).ok


class TestTotalsChecks:
    """Tests for totals reconciliation."""

    def test_totals_reconcile(self):
        """Sum of fills equals distinct fills."""
        _, deduped, by_person, person, _ = make_linked()
        result = validate_totals(person, deduped, by_person, ConditionTarget(), "RXXP21X")
        assert result.ok
        assert person["n_hl_fills"].sum() == len(deduped) == 2

    def test_expenditure_counted_once(self):
        """Fan-out does not double expenditure."""
        _, _, _, person, _ = make_linked()
        assert person["hl_drug_exp"].sum() == pytest.approx(52.5)


class TestCrosstab:
    """Tests for the diagnosis vs flag crosstab."""

    def test_excludes_negative_codes(self):
        """Inapplicable (-1) diagnosis codes are excluded."""
        _, _, _, person, _ = make_linked()
        table = diagnosis_flag_crosstab(person, "CHOLDX", "hl_pmed_flag")
        assert table["n"].sum() == 2
        assert set(table["CHOLDX"]) == {1}


class TestRunAllChecks:
    """Tests for the full QC run."""

    def test_all_pass(self):
        """All checks pass on a clean file."""
        merged, deduped, by_person, person, fyc = make_linked()
        results = run_all_checks(
            merged, deduped, by_person, person, fyc,
            ConditionTarget(), "RXXP21X", verbose=False,
        )
        assert len(results) == 3
        assert failed_checks(results) == []

    def test_failures_listed(self):
        """Failed checks are named with their group."""
        merged, deduped, by_person, person, fyc = make_linked()
        person = person.iloc[:2]
        results = run_all_checks(
            merged, deduped, by_person, person, fyc,
            ConditionTarget(), "RXXP21X", verbose=False,
        )
        failures = failed_checks(results)
        assert any("One row per FYC person" in f for f in failures)
