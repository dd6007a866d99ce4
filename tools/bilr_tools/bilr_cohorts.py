"""
Cohort construction for classified BilR samples.

Every builder returns a CohortScheme whose cohorts follow the label order the
caller passes in, never the order the labels happen to appear in the data.
"""

import logging

import pandas as pd

from .bilr_config import YEAR_VIEW, CompositeComparison
from .bilr_types import (
    BIOPROJECT,
    HOST_AGE,
    HOST_DISEASE,
    SAMPLE_ID,
    Cohort,
    CohortScheme,
    FilteredOut,
    FilterReport,
    MissingColumnsError,
)

logger = logging.getLogger(__name__)

COHORT = 'cohort'
AGE_BIN = 'age_bin'
INFANT = 'infant'


def _filtered_counts(masks):
    return {reason: int(mask.sum()) for reason, mask in masks.items() if mask.any()}


def _require(df, *columns):
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise MissingColumnsError(missing)


def _host_age_days(df):
    # Missing and non-numeric ages both become NaN
    return pd.to_numeric(df[HOST_AGE], errors='coerce')


def _ordered_cohorts(df, key, labels):
    groups = {label: group for label, group in df.groupby(key, sort=False, observed=True)}
    empty = df.iloc[0:0]
    return tuple(
        Cohort(label, groups.get(label, empty).assign(**{COHORT: label}))
        for label in labels
    )


def exclude_bioprojects(df, bioprojects):
    """
    Drop samples from curated bioprojects (e.g. probiotic intervention studies).

    Returns:
    --------
    tuple of (pandas.DataFrame, FilterReport)
    """
    bioprojects = list(bioprojects or [])
    if not bioprojects:
        return df.copy(), FilterReport()

    _require(df, BIOPROJECT)
    excluded = df[BIOPROJECT].isin(bioprojects)
    if excluded.any():
        logger.info(f"Excluded {int(excluded.sum())} samples from {len(bioprojects)} curated bioprojects")
    report = FilterReport(filtered_out=_filtered_counts({FilteredOut.EXCLUDED_BIOPROJECT: excluded}))
    return df.loc[~excluded].copy(), report


def build_disease_cohorts(classified_df, labels, name=None):
    """
    Group samples by host_disease, keeping only the listed categories.

    Parameters:
    -----------
    classified_df : pandas.DataFrame
        Classified sample table
    labels : list of str
        Allowed host_disease values in display order
    name : str, optional
        Scheme name (defaults to the labels joined by '_vs_')

    Returns:
    --------
    CohortScheme
        One cohort per label, including empty ones
    """
    labels = list(labels)
    if len(set(labels)) != len(labels):
        raise ValueError(f"Duplicate disease labels: {labels}")
    _require(classified_df, HOST_DISEASE)

    in_scope = classified_df[HOST_DISEASE].isin(labels)
    cohorts = _ordered_cohorts(classified_df.loc[in_scope], HOST_DISEASE, labels)
    report = FilterReport(filtered_out=_filtered_counts({FilteredOut.DISEASE_CATEGORY: ~in_scope}))

    return CohortScheme(name or '_vs_'.join(labels), cohorts, report)


def build_age_cohorts(classified_df, view=YEAR_VIEW, infant_label=INFANT):
    """
    Bin infant samples by host age (days) into fixed, right-closed intervals.

    Samples from other host categories, without a numeric age, or with an age
    outside the view's inclusive range are left out and counted.

    Parameters:
    -----------
    classified_df : pandas.DataFrame
        Classified sample table
    view : AgeBinView
        Bin edges, labels and age range (YEAR_VIEW or THREE_MONTH_VIEW)
    infant_label : str
        host_disease value marking infant samples

    Returns:
    --------
    CohortScheme
        One cohort per bin label, in the view's label order
    """
    _require(classified_df, HOST_DISEASE, HOST_AGE)

    is_infant = classified_df[HOST_DISEASE] == infant_label
    ages = _host_age_days(classified_df)
    in_range = ages.between(view.min_age, view.max_age, inclusive='both')
    eligible = is_infant & in_range

    infants = classified_df.loc[eligible].copy()
    infants[AGE_BIN] = pd.cut(
        ages[eligible],
        bins=list(view.edges),
        labels=list(view.labels),
        right=True,
    )

    report = FilterReport(filtered_out=_filtered_counts({
        FilteredOut.NOT_INFANT: ~is_infant,
        FilteredOut.AGE_MISSING: is_infant & ages.isna(),
        FilteredOut.AGE_OUT_OF_RANGE: is_infant & ages.notna() & ~in_range,
    }))
    logger.info(f"Binned {len(infants)} infant samples into {len(view.labels)} '{view.name}' age bins")

    return CohortScheme(f"age_{view.name}", _ordered_cohorts(infants, AGE_BIN, view.labels), report)


def disease_cohort(classified_df, disease, label=None):
    """All samples of one host_disease category as a single cohort."""
    _require(classified_df, HOST_DISEASE)
    label = label or disease
    records = classified_df.loc[classified_df[HOST_DISEASE] == disease]
    return Cohort(label, records.assign(**{COHORT: label}))


def infants_younger_than(classified_df, max_age_days=29, label=None, infant_label=INFANT):
    """Infant samples with a numeric age in [0, max_age_days] as a single cohort."""
    _require(classified_df, HOST_DISEASE, HOST_AGE)
    label = label or f"Infants 0-{max_age_days} days"
    ages = _host_age_days(classified_df)
    keep = (classified_df[HOST_DISEASE] == infant_label) & ages.between(0, max_age_days, inclusive='both')
    return Cohort(label, classified_df.loc[keep].assign(**{COHORT: label}))


def build_composite_cohorts(cohorts, name, exclusions=None):
    """
    Combine independently filtered cohorts into one scheme.

    The cohorts must not share samples.
    """
    cohorts = tuple(cohorts)
    labels = [c.label for c in cohorts]
    if len(set(labels)) != len(labels):
        raise ValueError(f"Duplicate cohort labels in composite '{name}': {labels}")

    seen = set()
    for cohort in cohorts:
        ids = set(cohort.records[SAMPLE_ID])
        overlap = seen & ids
        if overlap:
            raise ValueError(
                f"Composite '{name}': cohort '{cohort.label}' shares {len(overlap)} samples with another cohort"
            )
        seen |= ids

    return CohortScheme(name, cohorts, exclusions or FilterReport())


def build_newborn_vs_adult(classified_df, comparison=None, infant_label=INFANT):
    """Young infants against adults of one host category (healthy by default)."""
    comparison = comparison or CompositeComparison()
    _require(classified_df, HOST_DISEASE, HOST_AGE)

    infants = infants_younger_than(
        classified_df,
        max_age_days=comparison.max_infant_age_days,
        label=comparison.infant_label,
        infant_label=infant_label,
    )
    adults = disease_cohort(classified_df, comparison.adult_disease, label=comparison.adult_label)

    is_infant = classified_df[HOST_DISEASE] == infant_label
    is_adult = classified_df[HOST_DISEASE] == comparison.adult_disease
    ages = _host_age_days(classified_df)
    report = FilterReport(filtered_out=_filtered_counts({
        FilteredOut.DISEASE_CATEGORY: ~(is_infant | is_adult),
        FilteredOut.AGE_MISSING: is_infant & ages.isna(),
        FilteredOut.AGE_OUT_OF_RANGE: (
            is_infant & ages.notna() & ~ages.between(0, comparison.max_infant_age_days, inclusive='both')
        ),
    }))

    return build_composite_cohorts([infants, adults], comparison.name, exclusions=report)


def scheme_records(scheme):
    """Concatenate a scheme's cohorts into one table with a 'cohort' column."""
    frames = [cohort.records for cohort in scheme.cohorts]
    if not frames:
        return pd.DataFrame(columns=[COHORT])
    combined = pd.concat(frames, ignore_index=True)
    combined[COHORT] = pd.Categorical(combined[COHORT], categories=scheme.labels, ordered=True)
    return combined
