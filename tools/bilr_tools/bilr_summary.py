"""
Per-cohort presence/absence summaries.
"""

from concurrent.futures import ThreadPoolExecutor

import pandas as pd

from .bilr_types import (
    CPM,
    PRESENCE,
    PRESENT,
    UNDEFINED_FRACTION,
    CohortSummary,
    MissingColumnsError,
)

SUMMARY_COLUMNS = ['label', 'n', 'present_count', 'absent_count',
                   'presence_fraction', 'mean_cpm', 'fraction_defined']


def summarize_cohort(cohort):
    """
    Count present/absent samples in a cohort and average their CPM.

    An empty cohort gets UNDEFINED_FRACTION for both the presence fraction
    and the mean CPM.
    """
    records = cohort.records
    missing = [col for col in (PRESENCE, CPM) if col not in records.columns]
    if missing:
        raise MissingColumnsError(missing)

    n = len(records)
    present_count = int((records[PRESENCE] == PRESENT).sum())
    absent_count = n - present_count

    if n == 0:
        return CohortSummary(cohort.label, 0, 0, 0, UNDEFINED_FRACTION, UNDEFINED_FRACTION)

    return CohortSummary(
        label=cohort.label,
        n=n,
        present_count=present_count,
        absent_count=absent_count,
        presence_fraction=present_count / n,
        mean_cpm=float(records[CPM].mean()),
    )


def summarize_scheme(scheme, max_workers=None):
    """
    Summarize every cohort of a scheme, in the scheme's display order.

    Parameters:
    -----------
    scheme : CohortScheme
        Cohorts to summarize
    max_workers : int, optional
        Summarize cohorts on a thread pool of this size. Cohorts share no
        state, and the result order does not depend on completion order.

    Returns:
    --------
    list of CohortSummary
    """
    if max_workers and max_workers > 1 and len(scheme) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(summarize_cohort, scheme.cohorts))
    return [summarize_cohort(cohort) for cohort in scheme.cohorts]


def summaries_to_frame(summaries):
    """Table of summaries for plotting and export; undefined values become NaN."""
    frame = pd.DataFrame([s.to_dict() for s in summaries], columns=SUMMARY_COLUMNS)
    frame['label'] = pd.Categorical(frame['label'], categories=[s.label for s in summaries], ordered=True)
    return frame
