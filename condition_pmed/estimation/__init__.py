"""
Estimation
==========

Survey-weighted estimates on the person-level analytic file.
"""

from .survey_estimates import (
    SurveyDesign,
    check_lonely_psus,
    weighted_totals,
    weighted_means,
    domain_means_by,
    fit_weighted_logit,
    odds_ratio_table,
    run_standard_estimates,
    estimates_to_frame,
)

__all__ = [
    'SurveyDesign',
    'check_lonely_psus',
    'weighted_totals',
    'weighted_means',
    'domain_means_by',
    'fit_weighted_logit',
    'odds_ratio_table',
    'run_standard_estimates',
    'estimates_to_frame',
]
