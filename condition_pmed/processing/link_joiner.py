"""Link target conditions to PMED fills through the CLNK crosswalk."""
import logging
import pandas as pd

from condition_pmed.config.cond_pmed_config import (
    PERSON_ID,
    CONDITION_ID,
    EVENT_ID,
)

logger = logging.getLogger(__name__)

CONDITION_KEY = [PERSON_ID, CONDITION_ID]
EVENT_KEY = [PERSON_ID, EVENT_ID]


def link_conditions_to_events(conditions: pd.DataFrame, clnk: pd.DataFrame) -> pd.DataFrame:
    """Inner join conditions to the CLNK crosswalk on (DUPERSID, CONDIDX).

    Conditions without a linked event are dropped. One condition may link to
    several events, so the result can have more rows than the input.

    Args:
        conditions: Filtered condition records
        clnk: CLNK crosswalk with DUPERSID, CONDIDX, EVNTIDX

    Returns:
        Condition rows with EVNTIDX attached
    """
    return conditions.merge(clnk, on=CONDITION_KEY, how='inner', validate='many_to_many')


def link_events_to_fills(linked: pd.DataFrame, pmed: pd.DataFrame) -> pd.DataFrame:
    """Inner join condition-event rows to PMED fills on (DUPERSID, EVNTIDX).

    Args:
        linked: Output of link_conditions_to_events
        pmed: PMED file with LINKIDX already renamed to EVNTIDX

    Returns:
        Fill-level rows; the same fill can appear more than once
    """
    return linked.merge(pmed, on=EVENT_KEY, how='inner', validate='many_to_many')


def join_condition_fills(
    conditions: pd.DataFrame,
    clnk: pd.DataFrame,
    pmed: pd.DataFrame,
) -> pd.DataFrame:
    """Run both joins: conditions -> CLNK -> PMED.

    Fan-out duplicates are kept; deduplicate on the fill id downstream.
    """
    linked = link_conditions_to_events(conditions, clnk)
    logger.info(f"Conditions linked to {len(linked):,} condition-event rows")

    merged = link_events_to_fills(linked, pmed)
    logger.info(f"Condition-events linked to {len(merged):,} fill rows")

    return merged.reset_index(drop=True)
