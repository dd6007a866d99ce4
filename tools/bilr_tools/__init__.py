"""
BilR analysis toolkit for metagenomic presence/absence cohort studies.

This module provides functions for normalizing bilirubin reductase (BilR)
read counts, calling presence/absence per sample, building infant age and
disease cohorts, summarizing them and testing for equal presence proportions.

Usage:
    from bilr_tools import load_sample_table, run_pipeline, ...
"""

# Import core functions
from .bilr_utils import (
    load_sample_table,
    normalize_counts,
    classify_presence
)

from .bilr_cohorts import (
    exclude_bioprojects,
    build_disease_cohorts,
    build_age_cohorts,
    build_composite_cohorts,
    build_newborn_vs_adult,
    disease_cohort,
    infants_younger_than
)

from .bilr_summary import (
    summarize_cohort,
    summarize_scheme,
    summaries_to_frame
)

from .bilr_stats import (
    build_contingency_table,
    chi2_proportion_test,
    compare_proportions,
    compare_pairwise,
    tests_to_frame
)

from .bilr_viz import (
    plot_presence_fraction,
    plot_mean_cpm
)

from .bilr_config import (
    AnalysisConfig,
    ConfigError,
    YEAR_VIEW,
    THREE_MONTH_VIEW,
    load_config
)

from .bilr_types import (
    SampleRecord,
    Cohort,
    CohortScheme,
    CohortSummary,
    ProportionTestResult,
    FilterReport,
    InvalidContingencyTable,
    MissingColumnsError,
    UNDEFINED_FRACTION,
    records_to_frame
)

from .pipeline import run_pipeline, PipelineResult
from .logger import setup_logger, log_print

__all__ = [
    'load_sample_table',
    'normalize_counts',
    'classify_presence',
    'exclude_bioprojects',
    'build_disease_cohorts',
    'build_age_cohorts',
    'build_composite_cohorts',
    'build_newborn_vs_adult',
    'disease_cohort',
    'infants_younger_than',
    'summarize_cohort',
    'summarize_scheme',
    'summaries_to_frame',
    'build_contingency_table',
    'chi2_proportion_test',
    'compare_proportions',
    'compare_pairwise',
    'tests_to_frame',
    'plot_presence_fraction',
    'plot_mean_cpm',
    'AnalysisConfig',
    'ConfigError',
    'YEAR_VIEW',
    'THREE_MONTH_VIEW',
    'load_config',
    'SampleRecord',
    'Cohort',
    'CohortScheme',
    'CohortSummary',
    'ProportionTestResult',
    'FilterReport',
    'InvalidContingencyTable',
    'MissingColumnsError',
    'UNDEFINED_FRACTION',
    'records_to_frame',
    'run_pipeline',
    'PipelineResult',
    'setup_logger',
    'log_print'
]
