# pipeline.py
"""
Condition-Linked PMED Pipeline
==============================

Builds the person-level analytic file for one condition and data year:

    Conditions --(CCSR filter)--> target conditions
               --(CLNK)--> condition-events
               --(PMED)--> fills (with fan-out duplicates)
               --(dedup on RXRECIDX)--> distinct fills
               --(group by DUPERSID)--> per-person fills and expenditure
               --(left join onto FYC)--> one row per sampled person
"""

import os
import tempfile
from pathlib import Path
from typing import Dict, Optional
import logging
import sys

import pandas as pd

from condition_pmed.config.cond_pmed_config import (
    RunConfig,
    DEFAULT_RUN_CONFIG,
    build_run_config,
    load_run_config,
    expenditure_column,
    ensure_directories,
)
from condition_pmed.errors import QCError
from condition_pmed.extractors.meps_extractor import (
    MepsExtracts,
    extract_all,
    prepare_extracts,
)
from condition_pmed.processing.condition_filter import (
    filter_conditions,
    find_duplicate_conditions,
)
from condition_pmed.processing.link_joiner import join_condition_fills
from condition_pmed.processing.deduplicator import deduplicate_fills
from condition_pmed.processing.person_aggregator import (
    aggregate_fills_by_person,
    top_drugs,
)
from condition_pmed.processing.person_merger import merge_onto_population
from condition_pmed.validation.qc_checks import (
    run_all_checks,
    failed_checks,
    diagnosis_flag_crosstab,
)
from condition_pmed.estimation.survey_estimates import (
    SurveyDesign,
    run_standard_estimates,
    estimates_to_frame,
)

logger = logging.getLogger(__name__)


class ConditionPmedPipeline:
    """Link one condition to PMED fills and merge onto the FYC population."""

    def __init__(self, config: RunConfig = DEFAULT_RUN_CONFIG, verbose: bool = True):
        """
        Initialize pipeline.

        Args:
            config: Run configuration (year, target condition, design, paths)
            verbose: Print progress banners and the QC report
        """
        self.config = config
        self.verbose = verbose
        self.results: Dict[str, pd.DataFrame] = {}

    @property
    def target(self):
        return self.config.target

    @property
    def expenditure_column(self) -> str:
        return expenditure_column(self.config.year)

    def _print(self, message: str):
        if self.verbose:
            print(message)

    def process_data(self, extracts: MepsExtracts) -> pd.DataFrame:
        """
        Run filter -> join -> deduplicate -> aggregate -> merge.

        Intermediate tables are kept on self.results. Every extract is
        schema-checked and projected before the first join, so raw frames
        are accepted too.

        Args:
            extracts: PMED, Conditions, CLNK and FYC frames

        Returns:
            DataFrame with one row per FYC person

        Raises:
            SchemaError: if any extract lacks a required column
        """
        target = self.target
        extracts = prepare_extracts(*extracts, config=self.config)

        conditions = filter_conditions(
            extracts.conditions, target.ccsr_code, target.ccsr_columns
        )
        duplicates = find_duplicate_conditions(conditions)
        logger.info(
            f"{len(conditions):,} {target.ccsr_code} condition records; "
            f"{duplicates['DUPERSID'].nunique():,} persons with duplicates"
        )

        merged = join_condition_fills(conditions, extracts.clnk, extracts.pmed)
        deduped = deduplicate_fills(
            merged, strict=self.config.validation.fail_on_fill_conflicts
        )
        by_person = aggregate_fills_by_person(
            deduped, self.expenditure_column, label=target.label
        )
        person = merge_onto_population(extracts.fyc, by_person, label=target.label)

        self.results = {
            'conditions': conditions,
            'duplicate_conditions': duplicates,
            'merged': merged,
            'deduped': deduped,
            'by_person': by_person,
            'person': person,
        }
        return person

    def validate(self, fyc: pd.DataFrame):
        """Run QC checks on the last processed data."""
        results = run_all_checks(
            merged=self.results['merged'],
            deduped=self.results['deduped'],
            by_person=self.results['by_person'],
            person=self.results['person'],
            fyc=fyc,
            target=self.target,
            expenditure_column=self.expenditure_column,
            verbose=self.verbose,
        )
        failures = failed_checks(results)
        if failures and self.config.validation.fail_on_qc:
            raise QCError("QC failed: " + "; ".join(failures))
        return results

    def estimate(self, person: pd.DataFrame) -> Dict[str, pd.DataFrame]:
        """Survey-weighted totals, means and logistic regression."""
        design = SurveyDesign.from_config(self.config.design)
        return run_standard_estimates(person, design, self.target, self.config.year)

    def run(
        self,
        output_dir: Optional[str] = None,
        estimate: bool = False,
        extracts: Optional[MepsExtracts] = None,
    ) -> pd.DataFrame:
        """
        Run the full pipeline.

        Nothing is written unless every step succeeds.

        Args:
            output_dir: Output directory (default: config output dir)
            estimate: Also compute survey estimates
            extracts: Pre-loaded extracts (default: read from the data directory)

        Returns:
            Person-level analytic file
        """
        target = self.target
        self._print("=" * 60)
        self._print(f"MEPS {self.config.year}: PMED fills for {target.description} ({target.ccsr_code})")
        self._print("=" * 60)

        output_dir = Path(output_dir) if output_dir else Path(self.config.output_dir)

        self._print("\n1. Loading MEPS files...")
        if extracts is None:
            extracts = extract_all(self.config)
        self._print(
            f"   PMED: {len(extracts.pmed):,}  Conditions: {len(extracts.conditions):,}  "
            f"CLNK: {len(extracts.clnk):,}  FYC: {len(extracts.fyc):,}"
        )

        self._print("\n2. Linking conditions to fills...")
        person = self.process_data(extracts)
        self._print(f"   Joined fill rows: {len(self.results['merged']):,}")
        self._print(f"   Distinct fills: {len(self.results['deduped']):,}")
        self._print(f"   Persons with a fill: {len(self.results['by_person']):,}")

        self._print("\n3. QC checks...")
        self.validate(extracts.fyc)
        if self.verbose:
            print("\n   Top drugs:")
            print(top_drugs(self.results['deduped'],
                            self.config.validation.top_drug_count).to_string(index=False))
            print(f"\n   {target.dx_flag} vs {target.flag_column}:")
            print(diagnosis_flag_crosstab(person, target.dx_flag,
                                          target.flag_column).to_string(index=False))

        outputs = {f"{target.label}_person_file.parquet": person}

        if estimate:
            self._print("\n4. Survey estimates...")
            estimates = self.estimate(person)
            self.results['estimates'] = estimates_to_frame(estimates)
            self.results['logit'] = estimates['logit']
            outputs[f"{target.label}_estimates.csv"] = self.results['estimates']
            outputs[f"{target.label}_logit_odds_ratios.csv"] = estimates['logit']

        self._print(f"\nSaving to {output_dir}...")
        ensure_directories(output_dir)
        write_outputs(outputs, output_dir)
        for name in outputs:
            self._print(f"   {name}")

        self._print("=" * 60)
        return person


def _write_temp(df: pd.DataFrame, path: Path) -> str:
    """Write parquet or CSV to a temp file beside path; return the temp name."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=path.suffix + '.tmp')
    os.close(fd)
    try:
        if path.suffix == '.parquet':
            df.to_parquet(tmp_name, index=False)
        else:
            df.to_csv(tmp_name, index=False)
    except BaseException:
        os.remove(tmp_name)
        raise
    return tmp_name


def write_outputs(outputs: Dict[str, pd.DataFrame], output_dir: Path):
    """
    Write every output or none of them.

    All tables are written to temp files first and only then renamed into
    place. On any failure the temp files and already-renamed outputs are removed.
    """
    staged = []
    committed = []
    try:
        for name, df in outputs.items():
            path = output_dir / name
            staged.append((_write_temp(df, path), path))
        for tmp_name, path in staged:
            os.replace(tmp_name, path)
            committed.append(path)
    except BaseException:
        for tmp_name, _ in staged:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
        for path in committed:
            path.unlink()
        raise


# =============================================================================
# CLI
# =============================================================================

def main(argv=None):
    """Main entry point for CLI."""
    import argparse

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(description="Link MEPS-HC conditions to PMED fills")
    parser.add_argument('--config', type=str,
                        help='YAML run configuration; flags given below override it')
    parser.add_argument('--year', type=int, help='MEPS data year (default: 2021)')
    parser.add_argument('--target', type=str,
                        help='Condition target from condition_targets.yaml (default: hyperlipidemia)')
    parser.add_argument('--data-dir', type=str, help='Directory with MEPS files')
    parser.add_argument('--output-dir', type=str, help='Output directory')
    parser.add_argument('--format', type=str, choices=['csv', 'parquet', 'dta'],
                        help='MEPS file format (default: csv)')
    parser.add_argument('--lonely-psu', type=str, choices=['adjust', 'fail'],
                        help='Handling of strata with a single PSU (default: adjust)')
    parser.add_argument('--estimate', action='store_true', help='Compute survey estimates')
    parser.add_argument('--strict', action='store_true', default=None,
                        help='Fail on fills with conflicting attributes')
    args = parser.parse_args(argv)

    overrides = {
        'year': args.year,
        'target': args.target,
        'data_dir': args.data_dir,
        'output_dir': args.output_dir,
        'file_format': args.format,
        'lonely_psu': args.lonely_psu,
        'fail_on_fill_conflicts': args.strict,
    }

    try:
        if args.config:
            config = load_run_config(Path(args.config), **overrides)
        else:
            config = build_run_config(
                **{k: v for k, v in overrides.items() if v is not None}
            )
        ConditionPmedPipeline(config).run(estimate=args.estimate)
    except (FileNotFoundError, KeyError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
