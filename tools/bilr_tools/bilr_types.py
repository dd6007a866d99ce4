"""
Record types, result containers and errors for BilR presence/absence analysis.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd


# Column names shared by every table in the pipeline
SAMPLE_ID = 'sample_id'
BIOPROJECT = 'bioproject'
HOST_DISEASE = 'host_disease'
HOST_AGE = 'host_age'
TOTAL_READS = 'total_reads'
GENE_READS = 'gene_reads'
CPM = 'cpm'
PRESENCE = 'presence'

REQUIRED_COLUMNS = [SAMPLE_ID, BIOPROJECT, HOST_DISEASE, HOST_AGE, TOTAL_READS, GENE_READS]

PRESENT = 'present'
ABSENT = 'absent'


class BilrError(Exception):
    """Base class for errors raised by bilr_tools."""


class MissingColumnsError(BilrError, KeyError):
    """Input table lacks one or more required columns."""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"Missing required columns: {', '.join(self.missing)}")


class InvalidContingencyTable(BilrError, ValueError):
    """A proportion test was asked for with an empty cohort or fewer than two groups."""


class MalformedRecord:
    """Reasons a row is dropped for data hygiene problems."""

    NON_NUMERIC_COUNTS = 'non_numeric_counts'
    NEGATIVE_COUNTS = 'negative_counts'
    ZERO_TOTAL_READS = 'zero_total_reads'


class FilteredOut:
    """Reasons a row is dropped by deliberate cohort scoping."""

    READ_DEPTH = 'read_depth'
    DISEASE_CATEGORY = 'disease_category'
    EXCLUDED_BIOPROJECT = 'excluded_bioproject'
    NOT_INFANT = 'not_infant'
    AGE_MISSING = 'age_missing'
    AGE_OUT_OF_RANGE = 'age_out_of_range'


class UndefinedFraction:
    """
    Marker for a fraction or mean over zero samples.

    There is a single instance, ``UNDEFINED_FRACTION``. It compares equal only
    to itself and refuses to be used as a number.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return 'UNDEFINED_FRACTION'

    def __float__(self):
        raise TypeError("fraction is undefined for an empty cohort")


UNDEFINED_FRACTION = UndefinedFraction()


@dataclass(frozen=True)
class SampleRecord:
    """One sample row as it arrives from the loader."""

    sample_id: str
    bioproject: str
    host_disease: str
    total_reads: int
    gene_reads: int
    host_age: Optional[float] = None


def records_to_frame(records) -> pd.DataFrame:
    """Build a sample table from an iterable of SampleRecord."""
    rows = [
        {
            SAMPLE_ID: r.sample_id,
            BIOPROJECT: r.bioproject,
            HOST_DISEASE: r.host_disease,
            HOST_AGE: r.host_age,
            TOTAL_READS: r.total_reads,
            GENE_READS: r.gene_reads,
        }
        for r in records
    ]
    return pd.DataFrame(rows, columns=REQUIRED_COLUMNS)


@dataclass(frozen=True)
class FilterReport:
    """
    Counts of rows excluded from a table, split by kind.

    ``malformed`` holds data hygiene problems, ``filtered_out`` holds rows
    removed on purpose by a filter or a cohort definition. Both map a reason
    string to a row count.
    """

    malformed: Dict[str, int] = field(default_factory=dict)
    filtered_out: Dict[str, int] = field(default_factory=dict)

    @property
    def n_malformed(self) -> int:
        return sum(self.malformed.values())

    @property
    def n_filtered_out(self) -> int:
        return sum(self.filtered_out.values())

    def merge(self, other: 'FilterReport') -> 'FilterReport':
        """Return a new report with the counts of both reports added."""
        malformed = dict(self.malformed)
        for reason, count in other.malformed.items():
            malformed[reason] = malformed.get(reason, 0) + count
        filtered_out = dict(self.filtered_out)
        for reason, count in other.filtered_out.items():
            filtered_out[reason] = filtered_out.get(reason, 0) + count
        return FilterReport(malformed=malformed, filtered_out=filtered_out)

    def to_frame(self) -> pd.DataFrame:
        rows = [{'kind': 'malformed', 'reason': reason, 'count': count}
                for reason, count in sorted(self.malformed.items())]
        rows += [{'kind': 'filtered_out', 'reason': reason, 'count': count}
                 for reason, count in sorted(self.filtered_out.items())]
        return pd.DataFrame(rows, columns=['kind', 'reason', 'count'])


@dataclass(frozen=True, eq=False)
class Cohort:
    """A labelled group of classified samples."""

    label: str
    records: pd.DataFrame

    @property
    def n(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class CohortScheme:
    """
    Cohorts built under one scheme, in display order.

    No sample belongs to more than one cohort of the same scheme.
    """

    name: str
    cohorts: Tuple[Cohort, ...]
    exclusions: FilterReport = field(default_factory=FilterReport)

    @property
    def labels(self) -> List[str]:
        return [c.label for c in self.cohorts]

    def __getitem__(self, label: str) -> Cohort:
        for cohort in self.cohorts:
            if cohort.label == label:
                return cohort
        raise KeyError(label)

    def __iter__(self):
        return iter(self.cohorts)

    def __len__(self):
        return len(self.cohorts)


@dataclass(frozen=True)
class CohortSummary:
    """Per-cohort counts and abundance."""

    label: str
    n: int
    present_count: int
    absent_count: int
    presence_fraction: object
    mean_cpm: object

    @property
    def is_defined(self) -> bool:
        return self.presence_fraction is not UNDEFINED_FRACTION

    def to_dict(self) -> dict:
        def _num(value):
            return np.nan if value is UNDEFINED_FRACTION else value

        return {
            'label': self.label,
            'n': self.n,
            'present_count': self.present_count,
            'absent_count': self.absent_count,
            'presence_fraction': _num(self.presence_fraction),
            'mean_cpm': _num(self.mean_cpm),
            'fraction_defined': self.is_defined,
        }


class CorrectionStatus:
    APPLIED = 'applied'
    NOT_REQUESTED = 'not_requested'
    INAPPLICABLE = 'inapplicable'


@dataclass(frozen=True)
class ProportionTestResult:
    """
    Outcome of one test of equal presence proportions.

    ``n_pairwise_tests`` is the size of the pairwise family this result was
    run in (None for an all-groups test). ``adjusted_p_value`` is only set
    when a multiple-comparison method was requested.
    """

    groups_compared: Tuple[str, ...]
    statistic: float
    degrees_of_freedom: int
    p_value: float
    continuity_correction: str
    contingency_table: pd.DataFrame = field(repr=False, compare=False, default=None)
    n_pairwise_tests: Optional[int] = None
    adjusted_p_value: Optional[float] = None
    p_adjust_method: Optional[str] = None

    @property
    def continuity_correction_applied(self) -> bool:
        return self.continuity_correction == CorrectionStatus.APPLIED

    def to_dict(self) -> dict:
        return {
            'groups_compared': ' vs '.join(self.groups_compared),
            'statistic': self.statistic,
            'degrees_of_freedom': self.degrees_of_freedom,
            'p_value': self.p_value,
            'continuity_correction_applied': self.continuity_correction_applied,
            'continuity_correction': self.continuity_correction,
            'n_pairwise_tests': self.n_pairwise_tests,
            'adjusted_p_value': self.adjusted_p_value,
            'p_adjust_method': self.p_adjust_method,
        }
