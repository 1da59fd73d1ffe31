"""
MEPS-HC Extract Loader
======================

Loads the PMED, Medical Conditions, CLNK and Full-Year Consolidated public
use files for one data year and projects each to the columns the linkage
needs.
"""

import pandas as pd
from pathlib import Path
from typing import Iterable, NamedTuple, Union
import logging

from condition_pmed.config.cond_pmed_config import (
    PERSON_ID,
    EVENT_ID,
    RunConfig,
    pmed_columns,
    condition_columns,
    clnk_columns,
    fyc_columns,
)
from condition_pmed.errors import SchemaError

logger = logging.getLogger(__name__)

# Identifier columns are kept as strings so long ids survive intact
ID_COLUMNS = ['DUPERSID', 'CONDIDX', 'EVNTIDX', 'LINKIDX', 'RXRECIDX', 'DRUGIDX']
ID_DTYPES = {col: str for col in ID_COLUMNS}


class MepsExtracts(NamedTuple):
    """The four projected extracts for one data year."""

    pmed: pd.DataFrame
    conditions: pd.DataFrame
    clnk: pd.DataFrame
    fyc: pd.DataFrame


# =============================================================================
# FILE READING
# =============================================================================

def read_meps_file(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read one MEPS extract with the pandas reader matching its suffix.

    Args:
        path: .csv, .parquet or .dta file

    Returns:
        Raw DataFrame
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"MEPS file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == '.csv':
        df = pd.read_csv(path, dtype=ID_DTYPES, low_memory=False)
    elif suffix == '.parquet':
        df = pd.read_parquet(path)
    elif suffix == '.dta':
        df = pd.read_stata(path, convert_categoricals=False)
    else:
        raise ValueError(f"Unsupported MEPS file type: {path.suffix}")

    logger.info(f"Read {len(df):,} rows from {path.name}")
    return df


def select_columns(df: pd.DataFrame, columns: Iterable[str], source: str) -> pd.DataFrame:
    """
    Project an extract to the required columns.

    Args:
        df: Raw extract
        columns: Required columns, in output order
        source: Extract name used in error messages

    Returns:
        Copy of df with only the requested columns

    Raises:
        SchemaError: if any required column is absent
    """
    columns = list(columns)
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise SchemaError(source, missing)

    result = df[columns].copy()
    for col in result.columns.intersection(ID_COLUMNS):
        result[col] = result[col].astype('string').str.strip()
    return result


# =============================================================================
# EXTRACT LOADERS
# =============================================================================

def prepare_pmed(df: pd.DataFrame, year: int) -> pd.DataFrame:
    """Rename LINKIDX to EVNTIDX so fills join to the CLNK crosswalk, then project."""
    if EVENT_ID not in df.columns and 'LINKIDX' in df.columns:
        df = df.rename(columns={'LINKIDX': EVENT_ID})
    return select_columns(df, pmed_columns(year), 'PMED')


def prepare_conditions(df: pd.DataFrame) -> pd.DataFrame:
    return select_columns(df, condition_columns(), 'Conditions')


def prepare_clnk(df: pd.DataFrame) -> pd.DataFrame:
    return select_columns(df, clnk_columns(), 'CLNK')


def prepare_fyc(df: pd.DataFrame, year: int, dx_flag: str) -> pd.DataFrame:
    return select_columns(df, fyc_columns(year, dx_flag), 'FYC')


def load_pmed(path: Union[str, Path], year: int) -> pd.DataFrame:
    """Load the Prescribed Medicines file (record = fill or refill)."""
    return prepare_pmed(read_meps_file(path), year)


def load_conditions(path: Union[str, Path]) -> pd.DataFrame:
    """Load the Medical Conditions file (record = condition)."""
    return prepare_conditions(read_meps_file(path))


def load_clnk(path: Union[str, Path]) -> pd.DataFrame:
    """Load the condition-event link crosswalk."""
    return prepare_clnk(read_meps_file(path))


def load_fyc(path: Union[str, Path], year: int, dx_flag: str) -> pd.DataFrame:
    """Load the Full-Year Consolidated file (record = sampled person)."""
    return prepare_fyc(read_meps_file(path), year, dx_flag)


def prepare_extracts(
    pmed: pd.DataFrame,
    conditions: pd.DataFrame,
    clnk: pd.DataFrame,
    fyc: pd.DataFrame,
    config: RunConfig,
) -> MepsExtracts:
    """Project already-loaded raw frames; every schema is checked before returning."""
    return MepsExtracts(
        pmed=prepare_pmed(pmed, config.year),
        conditions=prepare_conditions(conditions),
        clnk=prepare_clnk(clnk),
        fyc=prepare_fyc(fyc, config.year, config.target.dx_flag),
    )


def extract_all(config: RunConfig) -> MepsExtracts:
    """
    Load and project all four extracts for a run.

    Args:
        config: Run configuration (year, data directory, file format, target)

    Returns:
        MepsExtracts bundle
    """
    files = config.files
    extracts = MepsExtracts(
        pmed=load_pmed(files.path_for('pmed'), config.year),
        conditions=load_conditions(files.path_for('conditions')),
        clnk=load_clnk(files.path_for('clnk')),
        fyc=load_fyc(files.path_for('fyc'), config.year, config.target.dx_flag),
    )

    for name, df in extracts._asdict().items():
        logger.info(f"{name}: {len(df):,} rows, {df[PERSON_ID].nunique():,} persons")

    return extracts
