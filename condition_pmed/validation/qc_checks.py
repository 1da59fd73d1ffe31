"""
QC Checks
=========

Quality checks for the linked person-level file.

Checks:
- Linkage: duplicate conditions and fan-out removed by deduplication
- Person file: one row per FYC person, no nulls in derived columns
- Flag: any-fill flag agrees with fill count and expenditure
- Totals: fill counts sum to the number of deduplicated fills
"""

from typing import List
import pandas as pd

from condition_pmed.config.cond_pmed_config import (
    PERSON_ID,
    FILL_ID,
    ConditionTarget,
)


class ValidationResult:
    """Container for validation results."""

    def __init__(self, name: str):
        self.name = name
        self.checks = []
        self.passed = 0
        self.failed = 0

    def add_check(self, description: str, passed: bool, details: str = ""):
        """Add a validation check result."""
        self.checks.append({
            'description': description,
            'passed': bool(passed),
            'details': details,
        })
        if passed:
            self.passed += 1
        else:
            self.failed += 1

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        """Get summary string."""
        status = "PASS" if self.ok else "FAIL"
        return f"{self.name}: {status} ({self.passed}/{self.passed + self.failed} checks)"

    def report(self) -> str:
        """Get full report string."""
        lines = [f"\n{'='*60}", f"{self.name}", "="*60]
        for check in self.checks:
            icon = "✓" if check['passed'] else "✗"
            lines.append(f"  {icon} {check['description']}")
            if check['details']:
                lines.append(f"      {check['details']}")
        lines.append(self.summary())
        return "\n".join(lines)


def validate_linkage(
    merged: pd.DataFrame,
    deduped: pd.DataFrame,
) -> ValidationResult:
    """Validate the join and deduplication steps."""
    result = ValidationResult("Linkage: Conditions -> CLNK -> PMED")

    n_keys = len(deduped[[PERSON_ID, FILL_ID]].drop_duplicates())
    result.add_check(
        "Deduplicated fills unique on (DUPERSID, RXRECIDX)",
        n_keys == len(deduped),
        f"{len(deduped):,} rows, {n_keys:,} distinct fills"
    )

    n_merged_keys = len(merged[[PERSON_ID, FILL_ID]].drop_duplicates())
    result.add_check(
        "No fills lost by deduplication",
        n_merged_keys == len(deduped),
        f"Joined: {len(merged):,} rows ({len(merged) - len(deduped):,} fan-out duplicates)"
    )

    return result


def validate_person_file(
    person: pd.DataFrame,
    fyc: pd.DataFrame,
    target: ConditionTarget,
) -> ValidationResult:
    """Validate the merged person-level file."""
    result = ValidationResult("Person File: FYC + Linked Fills")
    derived = [target.fills_column, target.expenditure_column, target.flag_column]

    result.add_check(
        "One row per FYC person",
        len(person) == len(fyc) and person[PERSON_ID].is_unique,
        f"Person file: {len(person):,}, FYC: {len(fyc):,}"
    )

    n_null = int(person[derived].isna().sum().sum())
    result.add_check(
        "No missing values in derived columns",
        n_null == 0,
        f"Missing: {n_null:,}"
    )

    fills = person[target.fills_column]
    exp = person[target.expenditure_column]
    flag = person[target.flag_column]

    bad_zero = int(((flag == 0) & ((fills > 0) | (exp > 0))).sum())
    result.add_check(
        f"No {target.flag_column}=0 rows with fills or expenditure",
        bad_zero == 0,
        f"Violations: {bad_zero:,}"
    )

    bad_one = int(((flag == 1) & (fills == 0)).sum())
    result.add_check(
        f"No {target.flag_column}=1 rows without fills",
        bad_one == 0,
        f"Violations: {bad_one:,}"
    )

    result.add_check(
        "No negative expenditures",
        bool((exp >= 0).all()),
        f"Min: {exp.min():,.2f}" if len(exp) else ""
    )

    return result


def validate_totals(
    person: pd.DataFrame,
    deduped: pd.DataFrame,
    by_person: pd.DataFrame,
    target: ConditionTarget,
    expenditure_column: str,
) -> ValidationResult:
    """Validate that person-level totals reconcile with fill-level data."""
    result = ValidationResult("Totals: Fills and Expenditure")

    # Persons on the FYC file only; fills for persons off the FYC are dropped by the merge
    on_fyc = deduped[deduped[PERSON_ID].isin(person[PERSON_ID])]

    total_fills = int(person[target.fills_column].sum())
    result.add_check(
        "Sum of fill counts = distinct deduplicated fills",
        total_fills == len(on_fyc),
        f"Person file: {total_fills:,}, fills: {len(on_fyc):,}"
    )

    total_exp = float(person[target.expenditure_column].sum())
    fill_exp = float(on_fyc[expenditure_column].sum())
    result.add_check(
        "Total expenditure reconciles",
        abs(total_exp - fill_exp) < 0.01,
        f"Person file: {total_exp:,.2f}, fills: {fill_exp:,.2f}"
    )

    n_flagged = int(person[target.flag_column].sum())
    n_aggregated = int(by_person[PERSON_ID].isin(person[PERSON_ID]).sum())
    result.add_check(
        "Flagged persons = persons with linked fills",
        n_flagged == n_aggregated,
        f"Flagged: {n_flagged:,}, aggregated: {n_aggregated:,}"
    )

    return result


def diagnosis_flag_crosstab(
    person: pd.DataFrame,
    dx_column: str,
    flag_column: str,
) -> pd.DataFrame:
    """Counts of ever-diagnosed flag vs any-fill flag.

    Negative diagnosis codes (missing, inapplicable) are excluded.
    """
    valid = person[person[dx_column] >= 0]
    return (
        valid.groupby([dx_column, flag_column])
        .size()
        .reset_index(name='n')
    )


def run_all_checks(
    merged: pd.DataFrame,
    deduped: pd.DataFrame,
    by_person: pd.DataFrame,
    person: pd.DataFrame,
    fyc: pd.DataFrame,
    target: ConditionTarget,
    expenditure_column: str,
    verbose: bool = True,
) -> List[ValidationResult]:
    """Run all QC checks and optionally print the report."""
    results = [
        validate_linkage(merged, deduped),
        validate_person_file(person, fyc, target),
        validate_totals(person, deduped, by_person, target, expenditure_column),
    ]

    if verbose:
        for r in results:
            print(r.report())

        total_passed = sum(r.passed for r in results)
        total_failed = sum(r.failed for r in results)
        print(f"\nQC total: {total_passed} passed, {total_failed} failed")

    return results


def failed_checks(results: List[ValidationResult]) -> List[str]:
    """Descriptions of every failed check, prefixed with its group name."""
    return [
        f"{r.name}: {c['description']}"
        for r in results
        for c in r.checks
        if not c['passed']
    ]
