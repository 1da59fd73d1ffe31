"""
Condition-Linked PMED Configuration Package
"""

from .cond_pmed_config import (
    # Paths
    PROJECT_ROOT,
    DATA_DIR,
    OUTPUT_DIR,

    # Keys
    PERSON_ID,
    CONDITION_ID,
    EVENT_ID,
    FILL_ID,
    DRUG_NAME,
    CCSR_COLUMNS,

    # Configs
    MepsFileConfig,
    ConditionTarget,
    SurveyDesignConfig,
    ValidationConfig,
    RunConfig,
    DEFAULT_RUN_CONFIG,

    # Helpers
    year_suffix,
    expenditure_column,
    weight_column,
    pmed_columns,
    condition_columns,
    clnk_columns,
    fyc_columns,
    get_condition_target,
    build_run_config,
    load_run_config,
    ensure_directories,
)

__all__ = [
    'PROJECT_ROOT',
    'DATA_DIR',
    'OUTPUT_DIR',
    'PERSON_ID',
    'CONDITION_ID',
    'EVENT_ID',
    'FILL_ID',
    'DRUG_NAME',
    'CCSR_COLUMNS',
    'MepsFileConfig',
    'ConditionTarget',
    'SurveyDesignConfig',
    'ValidationConfig',
    'RunConfig',
    'DEFAULT_RUN_CONFIG',
    'year_suffix',
    'expenditure_column',
    'weight_column',
    'pmed_columns',
    'condition_columns',
    'clnk_columns',
    'fyc_columns',
    'get_condition_target',
    'build_run_config',
    'load_run_config',
    'ensure_directories',
]
