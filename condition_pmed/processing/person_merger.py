"""Merge per-person fill aggregates onto the full sampled population."""
import logging
import pandas as pd

from condition_pmed.config.cond_pmed_config import PERSON_ID
from condition_pmed.errors import KeyIntegrityError

logger = logging.getLogger(__name__)


def check_population_keys(fyc: pd.DataFrame) -> None:
    """Fail unless every person appears exactly once on the FYC file.

    Raises:
        KeyIntegrityError: on null or duplicate DUPERSID
    """
    n_null = int(fyc[PERSON_ID].isna().sum())
    if n_null:
        raise KeyIntegrityError(f"FYC file has {n_null:,} row(s) with no {PERSON_ID}")

    dups = fyc.loc[fyc[PERSON_ID].duplicated(keep=False), PERSON_ID]
    if not dups.empty:
        examples = ', '.join(str(x) for x in dups.unique()[:5])
        raise KeyIntegrityError(
            f"FYC file has {dups.nunique():,} duplicated {PERSON_ID} value(s): {examples}"
        )


def check_flag_consistency(
    person: pd.DataFrame,
    fills_col: str,
    exp_col: str,
    flag_col: str,
) -> pd.DataFrame:
    """Rows where the any-fill flag disagrees with fill count or expenditure."""
    bad_zero = (person[flag_col] == 0) & ((person[fills_col] > 0) | (person[exp_col] > 0))
    bad_one = (person[flag_col] == 1) & (person[fills_col] == 0)
    return person[bad_zero | bad_one]


def merge_onto_population(
    fyc: pd.DataFrame,
    by_person: pd.DataFrame,
    label: str = 'hl',
) -> pd.DataFrame:
    """
    Left join per-person aggregates onto the FYC population.

    Every sampled person is kept so the strata and PSUs stay complete for
    variance estimation. Persons without a matched fill get zero fills, zero
    expenditure and flag 0.

    Args:
        fyc: Projected FYC file (one row per person)
        by_person: Output of aggregate_fills_by_person
        label: Column prefix used when aggregating

    Returns:
        FYC columns plus n_<label>_fills, <label>_drug_exp, <label>_pmed_flag
    """
    fills_col = f"n_{label}_fills"
    exp_col = f"{label}_drug_exp"
    flag_col = f"{label}_pmed_flag"

    check_population_keys(fyc)

    unmatched = set(by_person[PERSON_ID]) - set(fyc[PERSON_ID])
    if unmatched:
        logger.warning(
            f"{len(unmatched):,} person(s) with linked fills are not on the FYC file "
            f"and are dropped"
        )

    merged = fyc.merge(by_person, on=PERSON_ID, how='left', validate='one_to_one')

    merged[fills_col] = merged[fills_col].fillna(0).astype('int64')
    merged[exp_col] = merged[exp_col].fillna(0.0).astype('float64')
    merged[flag_col] = (merged[fills_col] > 0).astype('int64')

    if len(merged) != len(fyc):
        raise KeyIntegrityError(
            f"Merged file has {len(merged):,} rows, FYC has {len(fyc):,}"
        )

    inconsistent = check_flag_consistency(merged, fills_col, exp_col, flag_col)
    if not inconsistent.empty:
        raise KeyIntegrityError(
            f"{len(inconsistent):,} row(s) with {flag_col} inconsistent with "
            f"{fills_col}/{exp_col}"
        )

    logger.info(
        f"Merged onto {len(merged):,} persons; {int(merged[flag_col].sum()):,} with a linked fill"
    )
    return merged
