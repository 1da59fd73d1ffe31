"""Aggregate deduplicated fills to one row per person."""
import pandas as pd

from condition_pmed.config.cond_pmed_config import (
    PERSON_ID,
    FILL_ID,
    DRUG_NAME,
)


def aggregate_fills_by_person(
    fills: pd.DataFrame,
    expenditure_column: str,
    label: str = 'hl',
) -> pd.DataFrame:
    """Count fills and sum expenditures per person.

    Persons without a matched fill do not appear in the output.

    Args:
        fills: Deduplicated fill rows
        expenditure_column: PMED expenditure column (e.g. 'RXXP21X')
        label: Prefix for output columns

    Returns:
        DataFrame with DUPERSID, n_<label>_fills, <label>_drug_exp
    """
    fills_col = f"n_{label}_fills"
    exp_col = f"{label}_drug_exp"

    if fills.empty:
        return pd.DataFrame({
            PERSON_ID: fills[PERSON_ID].reset_index(drop=True),
            fills_col: pd.Series(dtype='int64'),
            exp_col: pd.Series(dtype='float64'),
        })

    return (
        fills.groupby(PERSON_ID)
        .agg(**{
            fills_col: (FILL_ID, 'nunique'),
            exp_col: (expenditure_column, 'sum'),
        })
        .reset_index()
    )


def top_drugs(fills: pd.DataFrame, n: int = 10) -> pd.DataFrame:
    """Most frequent drug names among linked fills."""
    return (
        fills[DRUG_NAME]
        .value_counts()
        .head(n)
        .rename_axis(DRUG_NAME)
        .reset_index(name='n')
    )
