#!/usr/bin/env python3
"""
Analyze BilR presence/absence across infant age and disease cohorts.

This script:
1. Loads the per-sample BilR read count table and analysis parameters
2. Converts gene reads to CPM and drops shallow or malformed samples
3. Calls BilR present/absent per sample
4. Builds the age-bin, disease and newborn-vs-adult cohort schemes
5. Summarizes each cohort and tests for equal presence proportions
6. Writes summary tables and figures

Usage:
    python scripts/01_bilr_cohort_analysis.py --input data/bilr_counts.tsv [--config CONFIG_FILE]
"""

import sys
import logging
import argparse
from pathlib import Path

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

# Add tools directory to Python path
project_root = Path(__file__).resolve().parents[1]
tools_dir = project_root / 'tools'
sys.path.append(str(tools_dir))

from bilr_tools import (
    load_config,
    load_sample_table,
    log_print,
    plot_mean_cpm,
    plot_presence_fraction,
    run_pipeline,
    setup_logger
)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='BilR presence/absence cohort analysis')
    parser.add_argument('--input', type=str, required=True,
                        help='Sample table (CSV or TSV) with BilR and total read counts')
    parser.add_argument('--config', type=str,
                        default=str(project_root / 'config' / 'analysis_parameters.yml'),
                        help='Path to configuration file')
    parser.add_argument('--output-dir', type=str, default=str(project_root / 'results'),
                        help='Directory for tables and figures')
    parser.add_argument('--no-figures', action='store_true',
                        help='Write tables only')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Path to log file')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    return parser.parse_args(argv)


def write_tables(result, tables_dir):
    """Write the classified samples, cohort summaries, tests and exclusion counts."""
    result.classified.to_csv(tables_dir / 'classified_samples.csv', index=False)

    for name in result.summaries:
        result.summary_frame(name).to_csv(tables_dir / f"{name}_summary.csv", index=False)

    result.tests_frame().to_csv(tables_dir / 'proportion_tests.csv', index=False)
    result.filter_frame().to_csv(tables_dir / 'filter_report.csv', index=False)

    log_print(f"Tables saved to {tables_dir}")


def write_figures(result, figures_dir, dpi):
    for name in result.summaries:
        summary_df = result.summary_frame(name)
        xlabel = 'Infant age (days)' if name.startswith('age_') else 'Cohort'

        for suffix, fig in (
            ('presence', plot_presence_fraction(summary_df, title=f"BilR presence: {name}", xlabel=xlabel)),
            ('mean_cpm', plot_mean_cpm(summary_df, title=f"Mean BilR CPM: {name}", xlabel=xlabel)),
        ):
            figure_file = figures_dir / f"{name}_{suffix}.png"
            fig.savefig(figure_file, dpi=dpi, bbox_inches='tight')
            plt.close(fig)

    log_print(f"Figures saved to {figures_dir}")


def main(argv=None):
    """Main function to run the BilR cohort analysis."""
    args = parse_args(argv)

    setup_logger(log_file=args.log_file, log_level=getattr(logging, args.log_level))

    config = load_config(args.config)
    log_print(f"Loaded analysis parameters from {args.config}")

    output_dir = Path(args.output_dir)
    tables_dir = output_dir / 'tables'
    figures_dir = output_dir / 'figures'
    tables_dir.mkdir(exist_ok=True, parents=True)

    sample_df = load_sample_table(args.input)
    result = run_pipeline(sample_df, config)

    for failure in result.failed_tests:
        log_print(f"Test not run for {failure.comparison} ({', '.join(failure.groups)}): {failure.reason}",
                  level='warning')

    write_tables(result, tables_dir)

    if not args.no_figures:
        figures_dir.mkdir(exist_ok=True, parents=True)
        write_figures(result, figures_dir, config.figure_dpi)

    log_print("BilR cohort analysis complete")
    return result


if __name__ == "__main__":
    main()
