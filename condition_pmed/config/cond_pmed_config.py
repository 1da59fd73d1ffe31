"""
Condition-Linked PMED Configuration
===================================

Central configuration for linking MEPS-HC condition records to prescribed
medicine fills.
"""

from pathlib import Path
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional
import yaml


# =============================================================================
# PATH CONFIGURATION
# =============================================================================

PACKAGE_ROOT = Path(__file__).parent.parent
PROJECT_ROOT = PACKAGE_ROOT.parent
DATA_DIR = PROJECT_ROOT / "Data"
OUTPUT_DIR = PROJECT_ROOT / "outputs"

CONFIG_DIR = Path(__file__).parent
CONDITION_TARGETS_YAML = CONFIG_DIR / "condition_targets.yaml"


# =============================================================================
# MEPS PUBLIC USE FILES
# =============================================================================

# File stems per data year: (PMED, Conditions, CLNK, FYC)
MEPS_FILE_STEMS: Dict[int, Dict[str, str]] = {
    2019: {'pmed': 'h213a', 'conditions': 'h214', 'clnk': 'h213if1', 'fyc': 'h216'},
    2020: {'pmed': 'h220a', 'conditions': 'h222', 'clnk': 'h220if1', 'fyc': 'h224'},
    2021: {'pmed': 'h229a', 'conditions': 'h231', 'clnk': 'h229if1', 'fyc': 'h233'},
    2022: {'pmed': 'h239a', 'conditions': 'h241', 'clnk': 'h239if1', 'fyc': 'h243'},
}

SUPPORTED_FORMATS = ('csv', 'parquet', 'dta')

PERSON_ID = 'DUPERSID'
CONDITION_ID = 'CONDIDX'
EVENT_ID = 'EVNTIDX'
FILL_ID = 'RXRECIDX'
DRUG_NAME = 'RXDRGNAM'

CCSR_COLUMNS = ['CCSR1X', 'CCSR2X', 'CCSR3X']


def year_suffix(year: int) -> str:
    """Two-digit year used in MEPS variable names (2021 -> '21')."""
    return f"{year % 100:02d}"


def expenditure_column(year: int) -> str:
    """PMED total expenditure for the fill, e.g. RXXP21X."""
    return f"RXXP{year_suffix(year)}X"


def weight_column(year: int) -> str:
    """FYC person weight, e.g. PERWT21F."""
    return f"PERWT{year_suffix(year)}F"


def pmed_columns(year: int) -> List[str]:
    """Columns kept from the PMED file (after LINKIDX -> EVNTIDX)."""
    return [PERSON_ID, 'DRUGIDX', FILL_ID, EVENT_ID, DRUG_NAME, expenditure_column(year)]


def condition_columns() -> List[str]:
    """Columns kept from the Medical Conditions file."""
    return [PERSON_ID, CONDITION_ID, 'ICD10CDX'] + CCSR_COLUMNS


def clnk_columns() -> List[str]:
    """Columns kept from the CLNK crosswalk."""
    return [PERSON_ID, CONDITION_ID, EVENT_ID]


def fyc_columns(year: int, dx_flag: str) -> List[str]:
    """Columns kept from the Full-Year Consolidated file."""
    yy = year_suffix(year)
    return [
        PERSON_ID, 'SEX', 'RACETHX', f"INSURC{yy}", f"POVCAT{yy}",
        dx_flag, 'VARSTR', 'VARPSU', weight_column(year),
    ]


# =============================================================================
# FILE CONFIGURATION
# =============================================================================

@dataclass
class MepsFileConfig:
    """Location and format of the four extracts for one data year."""

    year: int = 2021
    data_dir: Path = DATA_DIR
    file_format: str = 'csv'

    def stems(self) -> Dict[str, str]:
        if self.year not in MEPS_FILE_STEMS:
            raise ValueError(
                f"No MEPS file names configured for {self.year}; "
                f"known years: {sorted(MEPS_FILE_STEMS)}"
            )
        return MEPS_FILE_STEMS[self.year]

    def path_for(self, extract: str) -> Path:
        """Path to one extract ('pmed', 'conditions', 'clnk', 'fyc')."""
        if self.file_format not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported file format: {self.file_format}")
        return Path(self.data_dir) / f"{self.stems()[extract]}.{self.file_format}"


# =============================================================================
# CONDITION TARGET
# =============================================================================

@dataclass
class ConditionTarget:
    """Clinical sub-population the fills are linked to."""

    label: str = 'hl'
    ccsr_code: str = 'END010'
    dx_flag: str = 'CHOLDX'
    description: str = 'Disorders of lipid metabolism'
    ccsr_columns: List[str] = field(default_factory=lambda: list(CCSR_COLUMNS))

    @property
    def fills_column(self) -> str:
        return f"n_{self.label}_fills"

    @property
    def expenditure_column(self) -> str:
        return f"{self.label}_drug_exp"

    @property
    def flag_column(self) -> str:
        return f"{self.label}_pmed_flag"


# =============================================================================
# SURVEY DESIGN
# =============================================================================

LONELY_PSU_POLICIES = ('adjust', 'fail')


@dataclass
class SurveyDesignConfig:
    """Complex sampling design variables on the FYC file."""

    strata: str = 'VARSTR'
    psu: str = 'VARPSU'
    weight: str = 'PERWT21F'
    lonely_psu: str = 'adjust'  # strata with a single PSU: 'adjust' or 'fail'


# =============================================================================
# VALIDATION CONFIGURATION
# =============================================================================

@dataclass
class ValidationConfig:
    """QC behaviour for the linked file."""

    # Raise instead of warn when a fill id has conflicting attributes
    fail_on_fill_conflicts: bool = False

    # Abort the run when any QC check fails
    fail_on_qc: bool = True

    top_drug_count: int = 10


VALIDATION_CONFIG = ValidationConfig()


# =============================================================================
# RUN CONFIGURATION
# =============================================================================

@dataclass
class RunConfig:
    """Everything one pipeline run needs."""

    files: MepsFileConfig = field(default_factory=MepsFileConfig)
    target: ConditionTarget = field(default_factory=ConditionTarget)
    design: SurveyDesignConfig = field(default_factory=SurveyDesignConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    output_dir: Path = OUTPUT_DIR

    @property
    def year(self) -> int:
        return self.files.year


DEFAULT_RUN_CONFIG = RunConfig()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def load_condition_targets(path: Optional[Path] = None) -> Dict:
    """Load named condition targets from YAML."""
    with open(path or CONDITION_TARGETS_YAML, 'r') as f:
        return yaml.safe_load(f)


def get_condition_target(name: str, path: Optional[Path] = None) -> ConditionTarget:
    """
    Build a ConditionTarget from a named YAML entry.

    Args:
        name: Key in condition_targets.yaml (e.g. 'hyperlipidemia')
        path: Optional alternative YAML file

    Returns:
        ConditionTarget
    """
    targets = load_condition_targets(path)
    if name not in targets:
        raise KeyError(f"Unknown condition target '{name}'. Known: {sorted(targets)}")

    entry = targets[name]
    return ConditionTarget(
        label=entry['label'],
        ccsr_code=entry['ccsr_code'],
        dx_flag=entry['dx_flag'],
        description=entry.get('description', name),
        ccsr_columns=entry.get('ccsr_columns', list(CCSR_COLUMNS)),
    )


def build_run_config(
    year: int = 2021,
    target: str = 'hyperlipidemia',
    data_dir: Optional[Path] = None,
    output_dir: Optional[Path] = None,
    file_format: str = 'csv',
    lonely_psu: str = 'adjust',
    fail_on_fill_conflicts: bool = False,
) -> RunConfig:
    """Assemble a RunConfig with year-dependent design variables filled in."""
    if lonely_psu not in LONELY_PSU_POLICIES:
        raise ValueError(
            f"lonely_psu must be one of {LONELY_PSU_POLICIES}, got '{lonely_psu}'"
        )

    return RunConfig(
        files=MepsFileConfig(
            year=year,
            data_dir=Path(data_dir) if data_dir else DATA_DIR,
            file_format=file_format,
        ),
        target=get_condition_target(target),
        design=SurveyDesignConfig(weight=weight_column(year), lonely_psu=lonely_psu),
        validation=replace(VALIDATION_CONFIG, fail_on_fill_conflicts=fail_on_fill_conflicts),
        output_dir=Path(output_dir) if output_dir else OUTPUT_DIR,
    )


def load_run_config(path: Path, **overrides) -> RunConfig:
    """
    Load a run configuration from YAML.

    Recognised keys: year, target, data_dir, output_dir, file_format,
    lonely_psu, fail_on_fill_conflicts. Missing keys take defaults.
    Keyword overrides that are not None replace the YAML values.
    """
    with open(path, 'r') as f:
        raw = yaml.safe_load(f) or {}
    raw.update({k: v for k, v in overrides.items() if v is not None})

    return build_run_config(
        year=int(raw.get('year', 2021)),
        target=raw.get('target', 'hyperlipidemia'),
        data_dir=raw.get('data_dir'),
        output_dir=raw.get('output_dir'),
        file_format=raw.get('file_format', 'csv'),
        lonely_psu=raw.get('lonely_psu', 'adjust'),
        fail_on_fill_conflicts=bool(raw.get('fail_on_fill_conflicts', False)),
    )


def ensure_directories(output_dir: Optional[Path] = None):
    """Create the output directory."""
    Path(output_dir or OUTPUT_DIR).mkdir(parents=True, exist_ok=True)
