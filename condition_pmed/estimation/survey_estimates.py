"""
Survey Estimates
================

Person-level estimates from the linked analytic file under the MEPS complex
sampling design (strata VARSTR, PSUs VARPSU, person weight PERWTyyF).

Point estimates are weighted sums. Domain estimates keep every sampled person
and zero the weight outside the domain. The logistic regression is fitted by
statsmodels with cluster-robust standard errors on stratum x PSU.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional
import logging
import warnings

import numpy as np
import pandas as pd
import patsy
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import SpecificationWarning

from condition_pmed.config.cond_pmed_config import (
    ConditionTarget,
    SurveyDesignConfig,
    LONELY_PSU_POLICIES,
    year_suffix,
)
from condition_pmed.errors import SurveyDesignError

logger = logging.getLogger(__name__)

RACETHX_LABELS = {
    1: 'Hispanic',
    2: 'NH White only',
    3: 'NH Black only',
    4: 'NH Asian only',
    5: 'NH Other etc',
}


@dataclass(frozen=True)
class SurveyDesign:
    """Sampling design variables plus the lonely-PSU policy for one estimation call."""

    strata: str = 'VARSTR'
    psu: str = 'VARPSU'
    weight: str = 'PERWT21F'
    lonely_psu: str = 'adjust'

    def __post_init__(self):
        if self.lonely_psu not in LONELY_PSU_POLICIES:
            raise SurveyDesignError(
                f"lonely_psu must be one of {LONELY_PSU_POLICIES}, got '{self.lonely_psu}'"
            )

    @classmethod
    def from_config(cls, config: SurveyDesignConfig) -> 'SurveyDesign':
        return cls(
            strata=config.strata,
            psu=config.psu,
            weight=config.weight,
            lonely_psu=config.lonely_psu,
        )


# =============================================================================
# DESIGN CHECKS
# =============================================================================

def check_design_columns(df: pd.DataFrame, design: SurveyDesign) -> None:
    missing = [c for c in (design.strata, design.psu, design.weight) if c not in df.columns]
    if missing:
        raise SurveyDesignError(f"Design variable(s) not on the analytic file: {missing}")
    if df[design.weight].isna().any() or (df[design.weight] < 0).any():
        raise SurveyDesignError(f"{design.weight} has missing or negative weights")


def lonely_psu_strata(df: pd.DataFrame, design: SurveyDesign) -> List:
    """Strata with a single PSU among persons with positive weight."""
    positive = df[df[design.weight] > 0]
    n_psu = positive.groupby(design.strata)[design.psu].nunique()
    return sorted(n_psu[n_psu < 2].index.tolist())


def check_lonely_psus(df: pd.DataFrame, design: SurveyDesign) -> List:
    """
    Apply the lonely-PSU policy.

    'fail' raises on any single-PSU stratum. 'adjust' logs the strata and
    keeps the PSU as its own cluster.

    Returns:
        The single-PSU strata
    """
    lonely = lonely_psu_strata(df, design)
    if lonely:
        message = f"{len(lonely)} stratum/strata with a single PSU: {lonely[:10]}"
        if design.lonely_psu == 'fail':
            raise SurveyDesignError(message)
        logger.warning(f"{message} (lonely_psu='adjust')")
    return lonely


def cluster_ids(df: pd.DataFrame, design: SurveyDesign) -> np.ndarray:
    """Integer cluster id per row; PSUs are nested within strata."""
    return df.groupby([design.strata, design.psu], sort=True).ngroup().to_numpy()


def _domain_mask(df: pd.DataFrame, domain: Optional[pd.Series]) -> pd.Series:
    if domain is None:
        return pd.Series(True, index=df.index)
    return domain.reindex(df.index).fillna(False).astype(bool)


# =============================================================================
# POINT ESTIMATES
# =============================================================================

def weighted_totals(
    df: pd.DataFrame,
    design: SurveyDesign,
    columns: List[str],
    domain: Optional[pd.Series] = None,
) -> pd.Series:
    """Estimated population totals of each column."""
    check_design_columns(df, design)
    w = df[design.weight].where(_domain_mask(df, domain), 0.0)
    return df[columns].mul(w, axis=0).sum().rename('total')


def weighted_means(
    df: pd.DataFrame,
    design: SurveyDesign,
    columns: List[str],
    domain: Optional[pd.Series] = None,
) -> pd.Series:
    """
    Estimated population means of each column, optionally within a domain.

    Args:
        df: Person-level analytic file (full sample)
        design: Sampling design
        columns: Numeric columns to average
        domain: Boolean mask selecting the sub-population

    Returns:
        Series of means indexed by column
    """
    check_design_columns(df, design)
    w = df[design.weight].where(_domain_mask(df, domain), 0.0)
    total_weight = w.sum()
    if total_weight <= 0:
        logger.warning(f"Domain has zero total weight; means of {columns} are NaN")
        return pd.Series(np.nan, index=columns, name='mean')
    return (df[columns].mul(w, axis=0).sum() / total_weight).rename('mean')


def domain_means_by(
    df: pd.DataFrame,
    design: SurveyDesign,
    column: str,
    by: str,
    domain: Optional[pd.Series] = None,
    labels: Optional[Dict] = None,
) -> pd.DataFrame:
    """Means of one column for each level of a grouping variable within a domain."""
    mask = _domain_mask(df, domain)
    rows = []
    for level in sorted(df.loc[mask, by].dropna().unique()):
        level_mask = mask & (df[by] == level)
        mean = weighted_means(df, design, [column], domain=level_mask)[column]
        rows.append({
            by: level,
            'label': (labels or {}).get(level, str(level)),
            'mean': mean,
            'n_unweighted': int(level_mask.sum()),
        })
    return pd.DataFrame(rows, columns=[by, 'label', 'mean', 'n_unweighted'])


# =============================================================================
# LOGISTIC REGRESSION
# =============================================================================

def fit_weighted_logit(
    df: pd.DataFrame,
    design: SurveyDesign,
    formula: str,
    domain: Optional[pd.Series] = None,
):
    """
    Survey-weighted logistic regression.

    Binomial GLM with sampling weights as variance weights and cluster-robust
    covariance grouped by stratum x PSU.

    statsmodels flags robust covariance with var_weights as not fully
    supported (SpecificationWarning). The standard errors ignore the
    stratification term of the design variance, so they approximate rather
    than reproduce a linearization estimate. The warning is suppressed here
    and the limitation logged instead.

    Args:
        df: Person-level analytic file (full sample)
        design: Sampling design
        formula: patsy formula, e.g. 'hl_pmed_flag ~ C(SEX) + C(RACETHX)'
        domain: Boolean mask selecting the sub-population

    Returns:
        statsmodels GLMResults
    """
    check_design_columns(df, design)
    check_lonely_psus(df, design)

    data = df[_domain_mask(df, domain) & (df[design.weight] > 0)]
    y, X = patsy.dmatrices(formula, data, return_type='dataframe')
    rows = data.loc[X.index]

    model = sm.GLM(y, X, family=sm.families.Binomial(), var_weights=rows[design.weight])
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', SpecificationWarning)
        result = model.fit(cov_type='cluster', cov_kwds={'groups': cluster_ids(rows, design)})
    logger.info(
        f"Fitted weighted logit on {len(rows):,} persons: {formula} "
        f"(cluster-robust SEs on stratum x PSU, approximate design variance)"
    )
    return result


ODDS_RATIO_COLUMNS = ['term', 'odds_ratio', 'std_error', 'conf_low', 'conf_high', 'p_value']


def odds_ratio_table(result, alpha: float = 0.05) -> pd.DataFrame:
    """Exponentiated coefficients with confidence intervals; empty when result is None."""
    if result is None:
        return pd.DataFrame(columns=ODDS_RATIO_COLUMNS)
    ci = np.exp(result.conf_int(alpha=alpha))
    return pd.DataFrame({
        'term': result.params.index,
        'odds_ratio': np.exp(result.params.values),
        'std_error': result.bse.values,
        'conf_low': ci.iloc[:, 0].values,
        'conf_high': ci.iloc[:, 1].values,
        'p_value': result.pvalues.values,
    })


# =============================================================================
# STANDARD ESTIMATES
# =============================================================================

def logit_formula(target: ConditionTarget, year: int) -> str:
    """(Any PMED for condition) = RACE + SEX + INSURANCE + POVERTY."""
    yy = year_suffix(year)
    return (
        f"{target.flag_column} ~ C(RACETHX) + C(SEX) + "
        f"C(INSURC{yy}) + C(POVCAT{yy})"
    )


def run_standard_estimates(
    person: pd.DataFrame,
    design: SurveyDesign,
    target: ConditionTarget,
    year: int,
) -> Dict[str, pd.DataFrame]:
    """
    National totals, per-person averages and the logistic regression.

    - Totals: persons with a fill, fills, expenditure
    - Mean of the any-fill flag in the full population
    - Means of fills and expenditure among persons with a fill
    - Means of flag, fills, expenditure among persons ever diagnosed
    - Flag mean by race/ethnicity among persons ever diagnosed
    - Odds ratios for any fill among persons ever diagnosed

    Returns:
        Dict of named result tables
    """
    derived = [target.flag_column, target.fills_column, target.expenditure_column]
    treated = person[target.flag_column] == 1
    diagnosed = person[target.dx_flag] == 1

    check_lonely_psus(person, design)

    totals = weighted_totals(person, design, derived)
    overall = weighted_means(person, design, [target.flag_column])
    among_treated = weighted_means(
        person, design, [target.fills_column, target.expenditure_column], domain=treated
    )
    among_diagnosed = weighted_means(person, design, derived, domain=diagnosed)

    estimates = {
        'totals': totals.reset_index().rename(columns={'index': 'variable'}),
        'overall': overall.reset_index().rename(columns={'index': 'variable'}),
        'among_treated': among_treated.reset_index().rename(columns={'index': 'variable'}),
        'among_diagnosed': among_diagnosed.reset_index().rename(columns={'index': 'variable'}),
        'by_race': domain_means_by(
            person, design, target.flag_column, 'RACETHX',
            domain=diagnosed, labels=RACETHX_LABELS,
        ),
    }

    outcome = person.loc[diagnosed & (person[design.weight] > 0), target.flag_column]
    if outcome.nunique() < 2:
        logger.warning(
            f"{target.flag_column} is constant among persons with {target.dx_flag}=1; "
            f"logistic regression skipped"
        )
        logit = None
    else:
        logit = fit_weighted_logit(
            person, design, logit_formula(target, year), domain=diagnosed
        )
    estimates['logit'] = odds_ratio_table(logit)

    return estimates


def estimates_to_frame(estimates: Dict[str, pd.DataFrame]) -> pd.DataFrame:
    """Stack totals and means into one long table (variable, statistic, domain, value)."""
    frames = []
    for domain, stat in [
        ('totals', 'total'),
        ('overall', 'mean'),
        ('among_treated', 'mean'),
        ('among_diagnosed', 'mean'),
    ]:
        table = estimates[domain]
        frames.append(pd.DataFrame({
            'domain': domain,
            'variable': table['variable'],
            'statistic': stat,
            'value': table[stat],
        }))

    by_race = estimates['by_race']
    frames.append(pd.DataFrame({
        'domain': 'among_diagnosed_by_race',
        'variable': by_race['label'],
        'statistic': 'mean',
        'value': by_race['mean'],
    }))

    return pd.concat(frames, ignore_index=True)
