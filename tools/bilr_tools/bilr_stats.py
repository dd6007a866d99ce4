"""
Tests of equal BilR presence proportions between cohorts.
"""

import logging
from dataclasses import replace
from itertools import combinations
from typing import Callable, Tuple

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from .bilr_types import (
    ABSENT,
    PRESENCE,
    PRESENT,
    CorrectionStatus,
    InvalidContingencyTable,
    ProportionTestResult,
)

logger = logging.getLogger(__name__)

# (contingency table, apply continuity correction) -> (statistic, dof, p-value)
ProportionTest = Callable[[np.ndarray, bool], Tuple[float, int, float]]


def build_contingency_table(cohorts):
    """
    Count present and absent samples per cohort.

    Parameters:
    -----------
    cohorts : iterable of Cohort
        Two or more cohorts with distinct labels and at least one sample each

    Returns:
    --------
    pandas.DataFrame
        Cohort labels as index, 'present' and 'absent' counts as columns
    """
    cohorts = list(cohorts)
    labels = [c.label for c in cohorts]

    if len(set(labels)) < 2:
        raise InvalidContingencyTable(
            f"Need at least 2 distinct groups for a proportion test (found {len(set(labels))})"
        )
    if len(set(labels)) != len(labels):
        raise InvalidContingencyTable(f"Duplicate cohort labels: {labels}")

    empty = [c.label for c in cohorts if c.n == 0]
    if empty:
        raise InvalidContingencyTable(f"Cohorts without samples: {', '.join(empty)}")

    rows = []
    for cohort in cohorts:
        presence = cohort.records[PRESENCE]
        rows.append({PRESENT: int((presence == PRESENT).sum()), ABSENT: int((presence == ABSENT).sum())})

    return pd.DataFrame(rows, index=pd.Index(labels, name='cohort'), columns=[PRESENT, ABSENT])


def chi2_proportion_test(table, correction):
    """
    Pearson's chi-squared test of equal proportions on a k x 2 table.

    When every sample falls in one outcome column the statistic is undefined
    and NaN is returned for both statistic and p-value.
    """
    observed = np.asarray(table, dtype=float)
    dof = (observed.shape[0] - 1) * (observed.shape[1] - 1)

    if (observed.sum(axis=0) == 0).any():
        return np.nan, dof, np.nan

    statistic, p_value, dof, _ = stats.chi2_contingency(observed, correction=correction)
    return float(statistic), int(dof), float(p_value)


def compare_proportions(cohorts, correction=True, test: ProportionTest = chi2_proportion_test):
    """
    Test whether the presence fraction is the same across all given cohorts.

    Yates' continuity correction is only defined for two groups. With more
    groups a requested correction is reported as 'inapplicable'.

    Parameters:
    -----------
    cohorts : iterable of Cohort
        Cohorts to compare, in display order
    correction : bool
        Whether to apply the continuity correction where it applies
    test : callable
        Proportion test taking (table, correction) and returning
        (statistic, degrees of freedom, p-value)

    Returns:
    --------
    ProportionTestResult
    """
    table = build_contingency_table(cohorts)

    if not correction:
        status = CorrectionStatus.NOT_REQUESTED
    elif len(table) == 2:
        status = CorrectionStatus.APPLIED
    else:
        status = CorrectionStatus.INAPPLICABLE

    statistic, dof, p_value = test(table.values, status == CorrectionStatus.APPLIED)
    if np.isnan(statistic):
        logger.warning(f"Proportion test undefined for {', '.join(table.index)}: a single outcome in all groups")

    return ProportionTestResult(
        groups_compared=tuple(table.index),
        statistic=statistic,
        degrees_of_freedom=dof,
        p_value=p_value,
        continuity_correction=status,
        contingency_table=table,
    )


def annotate_pairwise_family(results, p_adjust=None, n_tests=None):
    """
    Mark results as one family of pairwise tests.

    Sets ``n_pairwise_tests`` on every result to ``n_tests``, the number of
    pairs attempted (defaults to the number of results). P-values are left
    unadjusted unless ``p_adjust`` names a statsmodels multipletests method;
    the adjustment covers the results given.
    """
    results = list(results)
    if n_tests is None:
        n_tests = len(results)
    adjusted = [None] * len(results)

    if p_adjust and results:
        p_values = np.array([r.p_value for r in results], dtype=float)
        finite = np.isfinite(p_values)
        adjusted_values = np.full(len(results), np.nan)
        if finite.any():
            adjusted_values[finite] = multipletests(p_values[finite], method=p_adjust)[1]
        adjusted = [float(p) for p in adjusted_values]

    return [
        replace(result, n_pairwise_tests=n_tests, adjusted_p_value=adj, p_adjust_method=p_adjust)
        for result, adj in zip(results, adjusted)
    ]


def compare_pairwise(cohorts, pairs=None, correction=True, p_adjust=None,
                     test: ProportionTest = chi2_proportion_test, failures=None):
    """
    Run one proportion test per pair of cohorts.

    Each test uses only the two cohorts' own samples. No multiple-comparison
    correction is applied unless ``p_adjust`` is given.

    Parameters:
    -----------
    cohorts : iterable of Cohort
        Cohorts available for comparison
    pairs : list of (str, str), optional
        Label pairs to test. Defaults to every pair, in display order.
    correction : bool
        Apply Yates' continuity correction
    p_adjust : str, optional
        multipletests method (e.g. 'bonferroni', 'fdr_bh')
    failures : list, optional
        When given, pairs whose table is invalid are skipped and appended
        here as ((first, second), message) instead of raising
        InvalidContingencyTable. Skipped pairs still count towards
        ``n_pairwise_tests``.

    Returns:
    --------
    list of ProportionTestResult
    """
    by_label = {cohort.label: cohort for cohort in cohorts}
    pairs = list(combinations(by_label, 2)) if pairs is None else list(pairs)

    results = []
    for first, second in pairs:
        for label in (first, second):
            if label not in by_label:
                raise KeyError(f"Unknown cohort label: {label}")
        try:
            results.append(
                compare_proportions([by_label[first], by_label[second]], correction=correction, test=test)
            )
        except InvalidContingencyTable as e:
            if failures is None:
                raise
            logger.warning(f"Skipping pairwise test {first} vs {second}: {e}")
            failures.append(((first, second), str(e)))

    return annotate_pairwise_family(results, p_adjust=p_adjust, n_tests=len(pairs))


def tests_to_frame(results):
    """Table of test results for export."""
    columns = ['groups_compared', 'statistic', 'degrees_of_freedom', 'p_value',
               'continuity_correction_applied', 'continuity_correction',
               'n_pairwise_tests', 'adjusted_p_value', 'p_adjust_method']
    return pd.DataFrame([r.to_dict() for r in results], columns=columns)
