"""
Processing
==========

Condition filter -> CLNK/PMED joins -> fill deduplication -> per-person
aggregation -> merge onto the FYC population.
"""

from .condition_filter import (
    filter_conditions,
    find_duplicate_conditions,
    condition_code_counts,
)
from .link_joiner import (
    link_conditions_to_events,
    link_events_to_fills,
    join_condition_fills,
)
from .deduplicator import (
    find_conflicting_fills,
    deduplicate_fills,
)
from .person_aggregator import (
    aggregate_fills_by_person,
    top_drugs,
)
from .person_merger import (
    check_population_keys,
    check_flag_consistency,
    merge_onto_population,
)

__all__ = [
    'filter_conditions',
    'find_duplicate_conditions',
    'condition_code_counts',
    'link_conditions_to_events',
    'link_events_to_fills',
    'join_condition_fills',
    'find_conflicting_fills',
    'deduplicate_fills',
    'aggregate_fills_by_person',
    'top_drugs',
    'check_population_keys',
    'check_flag_consistency',
    'merge_onto_population',
]
