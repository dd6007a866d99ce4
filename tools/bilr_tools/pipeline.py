"""
End-to-end BilR cohort analysis: normalize, classify, build cohorts,
summarize and test.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import pandas as pd

from .bilr_cohorts import (
    build_age_cohorts,
    build_disease_cohorts,
    build_newborn_vs_adult,
    exclude_bioprojects,
)
from .bilr_config import AnalysisConfig
from .bilr_stats import compare_pairwise, compare_proportions, tests_to_frame
from .bilr_summary import summaries_to_frame, summarize_scheme
from .bilr_types import (
    CohortScheme,
    CohortSummary,
    FilterReport,
    InvalidContingencyTable,
    ProportionTestResult,
)
from .bilr_utils import classify_presence, normalize_counts

logger = logging.getLogger(__name__)

ALL_GROUPS = 'all_groups'
PAIRWISE = 'pairwise'


@dataclass(frozen=True)
class FailedTest:
    comparison: str
    groups: Tuple[str, ...]
    reason: str


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """Everything one pipeline pass produces from a sample table."""

    classified: pd.DataFrame
    schemes: Dict[str, CohortScheme]
    summaries: Dict[str, List[CohortSummary]]
    tests: Dict[str, List[Tuple[str, ProportionTestResult]]]
    failed_tests: List[FailedTest] = field(default_factory=list)
    filter_report: FilterReport = field(default_factory=FilterReport)

    def summary_frame(self, scheme_name):
        return summaries_to_frame(self.summaries[scheme_name])

    def tests_frame(self):
        """All test results, one row each, tagged with comparison and test type."""
        frames = []
        for comparison, entries in self.tests.items():
            if not entries:
                continue
            frame = tests_to_frame([result for _, result in entries])
            frame.insert(0, 'test_type', [test_type for test_type, _ in entries])
            frame.insert(0, 'comparison', comparison)
            frames.append(frame)
        if not frames:
            return tests_to_frame([]).assign(comparison=[], test_type=[])
        return pd.concat(frames, ignore_index=True)

    def filter_frame(self):
        """Exclusion counts for the whole table and for each cohort scheme."""
        frames = [self.filter_report.to_frame().assign(scope='pipeline')]
        for name, scheme in self.schemes.items():
            frames.append(scheme.exclusions.to_frame().assign(scope=name))
        return pd.concat(frames, ignore_index=True)[['scope', 'kind', 'reason', 'count']]


def _run_test(comparison, cohorts, correction, failures):
    cohorts = list(cohorts)
    try:
        return compare_proportions(cohorts, correction=correction)
    except InvalidContingencyTable as e:
        logger.warning(f"Skipping proportion test for '{comparison}': {e}")
        failures.append(FailedTest(comparison, tuple(c.label for c in cohorts), str(e)))
        return None


def _test_scheme(scheme, config, failures, pairwise=False, skip_empty=False):
    entries = []
    cohorts = [c for c in scheme.cohorts if c.n > 0] if skip_empty else list(scheme.cohorts)

    result = _run_test(scheme.name, cohorts, config.continuity_correction, failures)
    if result is not None:
        entries.append((ALL_GROUPS, result))

    if pairwise and len(cohorts) > 2:
        pair_failures = []
        pair_results = compare_pairwise(
            cohorts,
            correction=config.continuity_correction,
            p_adjust=config.p_adjust,
            failures=pair_failures,
        )
        failures.extend(FailedTest(scheme.name, pair, reason) for pair, reason in pair_failures)
        entries.extend((PAIRWISE, r) for r in pair_results)

    return entries


def run_pipeline(sample_df, config=None):
    """
    Run the full BilR cohort analysis on a sample table.

    Parameters:
    -----------
    sample_df : pandas.DataFrame
        Sample table with the required input columns
    config : AnalysisConfig, optional
        Analysis parameters (defaults when omitted)

    Returns:
    --------
    PipelineResult
    """
    config = config or AnalysisConfig()

    normalized, normalization_report = normalize_counts(sample_df, min_total_reads=config.min_total_reads)
    curated, curation_report = exclude_bioprojects(normalized, config.excluded_bioprojects)
    classified = classify_presence(curated, threshold=config.cpm_threshold)

    schemes = {}
    for view in config.age_views:
        scheme = build_age_cohorts(classified, view)
        schemes[scheme.name] = scheme
    for comparison in config.disease_comparisons:
        schemes[comparison.name] = build_disease_cohorts(classified, comparison.labels, name=comparison.name)
    for comparison in config.composite_comparisons:
        schemes[comparison.name] = build_newborn_vs_adult(classified, comparison)

    summaries = {
        name: summarize_scheme(scheme, max_workers=config.max_workers)
        for name, scheme in schemes.items()
    }

    # Age schemes are tested over their non-empty bins only
    age_scheme_names = {f"age_{view.name}" for view in config.age_views}
    pairwise_names = {c.name for c in config.disease_comparisons if c.pairwise}

    failures = []
    tests = {
        name: _test_scheme(
            scheme,
            config,
            failures,
            pairwise=name in pairwise_names,
            skip_empty=name in age_scheme_names,
        )
        for name, scheme in schemes.items()
    }

    n_tests = sum(len(entries) for entries in tests.values())
    logger.info(
        f"Classified {len(classified)} samples into {len(schemes)} cohort schemes; "
        f"ran {n_tests} proportion tests ({len(failures)} skipped)"
    )

    return PipelineResult(
        classified=classified,
        schemes=schemes,
        summaries=summaries,
        tests=tests,
        failed_tests=failures,
        filter_report=normalization_report.merge(curation_report),
    )
