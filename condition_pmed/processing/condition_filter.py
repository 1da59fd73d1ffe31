"""Subset Medical Conditions records to a target CCSR category."""
from typing import List, Optional
import pandas as pd

from condition_pmed.config.cond_pmed_config import (
    PERSON_ID,
    CCSR_COLUMNS,
)


def filter_conditions(
    conditions: pd.DataFrame,
    ccsr_code: str,
    ccsr_columns: Optional[List[str]] = None,
) -> pd.DataFrame:
    """Keep condition records where any CCSR column equals the target code.

    A person may keep several rows here: distinct fully-specified ICD-10
    codes can map to the same CCSR category.

    Args:
        conditions: Projected Medical Conditions file
        ccsr_code: Target CCSR category (e.g. 'END010')
        ccsr_columns: CCSR columns to search (default CCSR1X-CCSR3X)

    Returns:
        Matching condition records (possibly empty)
    """
    ccsr_columns = ccsr_columns or CCSR_COLUMNS
    mask = conditions[ccsr_columns].eq(ccsr_code).any(axis=1)
    return conditions[mask].reset_index(drop=True)


def find_duplicate_conditions(conditions: pd.DataFrame) -> pd.DataFrame:
    """Return all condition rows for persons with more than one matching record.

    Args:
        conditions: Output of filter_conditions

    Returns:
        Rows for persons with 'duplicate' target conditions, sorted by person
    """
    dup_mask = conditions.duplicated(subset=[PERSON_ID], keep=False)
    return conditions[dup_mask].sort_values(PERSON_ID).reset_index(drop=True)


def condition_code_counts(conditions: pd.DataFrame) -> pd.DataFrame:
    """Count condition records by ICD-10 and CCSR combination."""
    keys = ['ICD10CDX'] + [c for c in CCSR_COLUMNS if c in conditions.columns]
    return (
        conditions.groupby(keys, dropna=False)
        .size()
        .reset_index(name='n')
        .sort_values('n', ascending=False)
        .reset_index(drop=True)
    )
