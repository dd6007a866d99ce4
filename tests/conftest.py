import matplotlib
matplotlib.use('Agg')

import numpy as np
import pandas as pd
import pytest

from bilr_tools.bilr_types import (
    ABSENT,
    CPM,
    PRESENCE,
    PRESENT,
    REQUIRED_COLUMNS,
    Cohort,
)


@pytest.fixture
def sample_df() -> pd.DataFrame:
    """
    A small raw sample table covering every exclusion path.

    CPM values for retained rows: i1 10, i2 2.5, i3 20, i4 20, i5 0,
    a1 20, a2 2, c1 2, c2 25, u1 10, x1 10.
    """
    rows = [
        # sample_id, bioproject, host_disease, host_age, total_reads, gene_reads
        ('i1', 'PRJNA1', 'infant', '0', 2_000_000, 20),
        ('i2', 'PRJNA1', 'infant', '30', 2_000_000, 5),
        ('i3', 'PRJNA1', 'infant', 'unknown', 2_000_000, 40),
        ('i4', 'PRJNA1', 'infant', '400', 2_000_000, 40),
        ('i5', 'PRJNA1', 'infant', '365', 3_000_000, 0),
        ('i6', 'PRJNA2', 'infant', '15', 1_000_000, 50),
        ('a1', 'PRJNA3', 'healthy', None, 5_000_000, 100),
        ('a2', 'PRJNA3', 'healthy', None, 5_000_000, 10),
        ('c1', 'PRJNA4', 'CD', None, 4_000_000, 8),
        ('c2', 'PRJNA4', 'CD', None, 4_000_000, 100),
        ('u1', 'PRJNA4', 'UC', None, 4_000_000, 40),
        ('u2', 'PRJNA4', 'UC', None, 4_000_000, 'n/a'),
        ('x1', 'PRJNA5', 'obesity', None, 4_000_000, 40),
        ('m1', 'PRJNA5', 'healthy', None, -5, 1),
        ('z1', 'PRJNA5', 'healthy', None, 0, 0),
    ]
    return pd.DataFrame(rows, columns=REQUIRED_COLUMNS)


@pytest.fixture
def classified_factory():
    """Build a classified table directly from (sample_id, host_disease, host_age, cpm) tuples."""

    def _make(rows, threshold=5.0):
        df = pd.DataFrame(rows, columns=['sample_id', 'host_disease', 'host_age', CPM])
        df['bioproject'] = 'PRJNA0'
        df[PRESENCE] = np.where(df[CPM] > threshold, PRESENT, ABSENT)
        return df

    return _make


@pytest.fixture
def cohort_factory():
    """Build a cohort with a given number of present and absent samples."""

    def _make(label, present, absent, present_cpm=10.0, absent_cpm=1.0):
        n = present + absent
        df = pd.DataFrame({
            'sample_id': [f"{label}_{i}" for i in range(n)],
            'host_disease': [label] * n,
            CPM: [present_cpm] * present + [absent_cpm] * absent,
            PRESENCE: [PRESENT] * present + [ABSENT] * absent,
        })
        return Cohort(label, df)

    return _make
