"""
Loading, read-depth normalization and presence calling for BilR count tables.
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from .bilr_types import (
    ABSENT,
    BIOPROJECT,
    CPM,
    GENE_READS,
    HOST_DISEASE,
    PRESENCE,
    PRESENT,
    REQUIRED_COLUMNS,
    SAMPLE_ID,
    TOTAL_READS,
    FilterReport,
    MalformedRecord,
    FilteredOut,
    MissingColumnsError,
)

logger = logging.getLogger(__name__)

DEFAULT_CPM_THRESHOLD = 5.0
DEFAULT_MIN_TOTAL_READS = 1_000_000


def _check_columns(df, columns):
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise MissingColumnsError(missing)


def load_sample_table(filepath, sep=None):
    """
    Load the per-sample read count table.

    Parameters:
    -----------
    filepath : str or Path
        Path to a CSV or TSV file with one row per sample
    sep : str, optional
        Field separator. Guessed from the file extension when omitted
        (tab for .tsv/.txt, comma otherwise)

    Returns:
    --------
    pandas.DataFrame
        Sample table with the required columns, one row per sample_id
    """
    filepath = Path(filepath)
    if sep is None:
        sep = '\t' if filepath.suffix.lower() in ('.tsv', '.txt') else ','

    sample_df = pd.read_csv(
        filepath,
        sep=sep,
        dtype={SAMPLE_ID: str, BIOPROJECT: str, HOST_DISEASE: str},
    )
    _check_columns(sample_df, REQUIRED_COLUMNS)

    duplicated = sample_df[SAMPLE_ID].duplicated(keep='first')
    if duplicated.any():
        logger.warning(f"Found {duplicated.sum()} duplicate sample IDs in {filepath.name}, keeping first")
        sample_df = sample_df.loc[~duplicated].reset_index(drop=True)

    logger.info(f"Loaded {len(sample_df)} samples from {filepath}")
    return sample_df


def normalize_counts(sample_df, min_total_reads=DEFAULT_MIN_TOTAL_READS):
    """
    Convert gene read counts to counts per million and drop shallow samples.

    Rows with missing, non-numeric or negative counts, or with zero total
    reads, are malformed. Rows with ``total_reads <= min_total_reads`` are
    filtered out by the depth filter. Neither kind appears in the output.

    Parameters:
    -----------
    sample_df : pandas.DataFrame
        Sample table with total_reads and gene_reads columns
    min_total_reads : int
        Samples need strictly more total reads than this to be kept

    Returns:
    --------
    tuple of (pandas.DataFrame, FilterReport)
        Copy of the retained rows with a 'cpm' column, and the exclusion counts
    """
    _check_columns(sample_df, [TOTAL_READS, GENE_READS])

    total = pd.to_numeric(sample_df[TOTAL_READS], errors='coerce').astype(float)
    gene = pd.to_numeric(sample_df[GENE_READS], errors='coerce').astype(float)

    non_numeric = ~(np.isfinite(total) & np.isfinite(gene))
    negative = ~non_numeric & ((total < 0) | (gene < 0))
    zero_total = ~non_numeric & ~negative & (total == 0)
    malformed = non_numeric | negative | zero_total
    shallow = ~malformed & (total <= min_total_reads)
    keep = ~(malformed | shallow)

    report = FilterReport(
        malformed={
            reason: int(mask.sum())
            for reason, mask in (
                (MalformedRecord.NON_NUMERIC_COUNTS, non_numeric),
                (MalformedRecord.NEGATIVE_COUNTS, negative),
                (MalformedRecord.ZERO_TOTAL_READS, zero_total),
            )
            if mask.any()
        },
        filtered_out={FilteredOut.READ_DEPTH: int(shallow.sum())} if shallow.any() else {},
    )

    normalized_df = sample_df.loc[keep].copy()
    for column, counts in ((TOTAL_READS, total[keep]), (GENE_READS, gene[keep])):
        # Whole-number counts stay integers in exported tables
        if (counts == counts.round()).all():
            counts = counts.astype('int64')
        normalized_df[column] = counts
    normalized_df[CPM] = gene[keep] / total[keep] * 1e6

    logger.info(f"Normalized {len(normalized_df)} of {len(sample_df)} samples to CPM")
    if report.n_malformed:
        logger.warning(f"Dropped {report.n_malformed} samples with malformed read counts: {report.malformed}")
    if shallow.any():
        logger.info(f"Dropped {int(shallow.sum())} samples with {min_total_reads:,} total reads or fewer")

    return normalized_df, report


def classify_presence(normalized_df, threshold=DEFAULT_CPM_THRESHOLD):
    """
    Label each sample 'present' when its CPM is above ``threshold``.

    A CPM equal to the threshold counts as 'absent'.
    """
    _check_columns(normalized_df, [CPM])

    classified_df = normalized_df.copy()
    classified_df[PRESENCE] = np.where(classified_df[CPM] > threshold, PRESENT, ABSENT)
    return classified_df
