"""
Fill Deduplicator
=================

The conditions -> CLNK -> PMED joins are many-to-many. When a person has
several condition records in the target category (for example E78.1 and
E78.5, both hyperlipidemia) that link to the same event, the same fill comes
out of the join once per path. The fill id (RXRECIDX) is the true grain.
"""

from typing import List, Optional
import logging
import warnings
import pandas as pd

from condition_pmed.config.cond_pmed_config import (
    PERSON_ID,
    FILL_ID,
    DRUG_NAME,
)
from condition_pmed.errors import FillConflictError, FillConflictWarning

logger = logging.getLogger(__name__)

FILL_KEY = [PERSON_ID, FILL_ID]


def find_conflicting_fills(
    fills: pd.DataFrame,
    attribute_columns: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Find fill ids whose non-key attributes differ across duplicate rows.

    Join fan-out copies the same PMED row, so duplicates should agree on
    drug name and expenditure. Anything else points at an upstream problem.

    Args:
        fills: Joined fill-level rows
        attribute_columns: Attributes that must agree (default: drug name plus
            any RXXP..X expenditure column present)

    Returns:
        All rows belonging to conflicting (DUPERSID, RXRECIDX) keys
    """
    if attribute_columns is None:
        attribute_columns = [DRUG_NAME] + [
            c for c in fills.columns if c.startswith('RXXP') and c.endswith('X')
        ]
    attribute_columns = [c for c in attribute_columns if c in fills.columns]

    if fills.empty or not attribute_columns:
        return fills.iloc[0:0]

    distinct = fills.drop_duplicates(subset=FILL_KEY + attribute_columns)
    conflict_keys = distinct.loc[
        distinct.duplicated(subset=FILL_KEY, keep=False), FILL_KEY
    ].drop_duplicates()

    return fills.merge(conflict_keys, on=FILL_KEY, how='inner')


def deduplicate_fills(fills: pd.DataFrame, strict: bool = False) -> pd.DataFrame:
    """
    Keep one row per (DUPERSID, RXRECIDX).

    Args:
        fills: Joined fill-level rows, possibly with fan-out duplicates
        strict: Raise FillConflictError instead of warning on conflicts

    Returns:
        One row per distinct fill
    """
    conflicts = find_conflicting_fills(fills)
    if not conflicts.empty:
        n_keys = len(conflicts.drop_duplicates(subset=FILL_KEY))
        message = (
            f"{n_keys:,} fill id(s) have conflicting drug name or expenditure "
            f"across joined rows; keeping the first occurrence"
        )
        if strict:
            raise FillConflictError(message)
        logger.warning(message)
        warnings.warn(message, FillConflictWarning, stacklevel=2)

    result = fills.drop_duplicates(subset=FILL_KEY, keep='first').reset_index(drop=True)
    logger.info(f"Deduplicated {len(fills):,} joined rows to {len(result):,} fills")
    return result
