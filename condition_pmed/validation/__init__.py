"""
Validation
==========

QC checks for the linked person-level file.
"""

from .qc_checks import (
    ValidationResult,
    validate_linkage,
    validate_person_file,
    validate_totals,
    diagnosis_flag_crosstab,
    run_all_checks,
    failed_checks,
)

__all__ = [
    'ValidationResult',
    'validate_linkage',
    'validate_person_file',
    'validate_totals',
    'diagnosis_flag_crosstab',
    'run_all_checks',
    'failed_checks',
]
