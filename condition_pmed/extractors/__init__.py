"""
Extractors
==========

Load and project the MEPS-HC public use files.
"""

from .meps_extractor import (
    MepsExtracts,
    read_meps_file,
    select_columns,
    prepare_extracts,
    load_pmed,
    load_conditions,
    load_clnk,
    load_fyc,
    extract_all,
)

__all__ = [
    'MepsExtracts',
    'read_meps_file',
    'select_columns',
    'prepare_extracts',
    'load_pmed',
    'load_conditions',
    'load_clnk',
    'load_fyc',
    'extract_all',
]
