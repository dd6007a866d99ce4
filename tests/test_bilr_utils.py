import numpy as np
import pandas as pd
import pytest

from bilr_tools.bilr_types import FilteredOut, MalformedRecord, MissingColumnsError, SampleRecord, records_to_frame
from bilr_tools.bilr_utils import classify_presence, load_sample_table, normalize_counts


def _counts_table(rows):
    return pd.DataFrame(rows, columns=['sample_id', 'total_reads', 'gene_reads'])


def test_cpm_is_gene_reads_per_million_total_reads(sample_df):
    normalized, _ = normalize_counts(sample_df)
    cpm = normalized.set_index('sample_id')['cpm']

    assert cpm['i1'] == 20 / 2_000_000 * 1e6
    assert cpm['i2'] == 5 / 2_000_000 * 1e6
    assert cpm['c2'] == 100 / 4_000_000 * 1e6
    assert cpm['i5'] == 0.0


def test_depth_filter_boundary_is_strict():
    df = _counts_table([
        ('exact', 1_000_000, 10),
        ('above', 1_000_001, 10),
    ])
    normalized, report = normalize_counts(df)

    assert list(normalized['sample_id']) == ['above']
    assert report.filtered_out == {FilteredOut.READ_DEPTH: 1}
    assert report.malformed == {}


def test_min_total_reads_is_configurable():
    df = _counts_table([('a', 500, 1), ('b', 1_500, 1)])
    normalized, _ = normalize_counts(df, min_total_reads=1_000)
    assert list(normalized['sample_id']) == ['b']


def test_malformed_rows_are_counted_separately_from_filtered(sample_df):
    normalized, report = normalize_counts(sample_df)

    assert report.malformed == {
        MalformedRecord.NON_NUMERIC_COUNTS: 1,
        MalformedRecord.NEGATIVE_COUNTS: 1,
        MalformedRecord.ZERO_TOTAL_READS: 1,
    }
    assert report.filtered_out == {FilteredOut.READ_DEPTH: 1}
    assert len(normalized) == len(sample_df) - 4
    assert not set(normalized['sample_id']) & {'u2', 'm1', 'z1', 'i6'}


def test_whole_number_counts_stay_integers(sample_df):
    normalized, _ = normalize_counts(sample_df)
    counts = normalized.set_index('sample_id')

    assert counts['total_reads'].dtype == 'int64'
    assert counts['gene_reads'].dtype == 'int64'
    assert counts.loc['i1', 'total_reads'] == 2_000_000
    assert counts.loc['i1', 'gene_reads'] == 20


def test_fractional_counts_are_kept_as_floats():
    normalized, _ = normalize_counts(_counts_table([('s', 2_000_000, 10.5)]))

    assert normalized['gene_reads'].dtype == 'float64'
    assert normalized['cpm'].iloc[0] == pytest.approx(5.25)


def test_normalized_cpm_is_always_finite(sample_df):
    normalized, _ = normalize_counts(sample_df)
    assert np.isfinite(normalized['cpm']).all()


def test_normalize_does_not_modify_input(sample_df):
    before = sample_df.copy()
    normalize_counts(sample_df)
    pd.testing.assert_frame_equal(sample_df, before)
    assert 'cpm' not in sample_df.columns


def test_normalize_requires_count_columns():
    with pytest.raises(MissingColumnsError):
        normalize_counts(pd.DataFrame({'sample_id': ['a'], 'total_reads': [2_000_000]}))


def test_classification_boundary_is_absent_at_threshold():
    df = pd.DataFrame({'cpm': [0.0, 5.0, 5.000001, 12.0]})
    classified = classify_presence(df)
    assert list(classified['presence']) == ['absent', 'absent', 'present', 'present']


def test_classification_threshold_is_configurable():
    df = pd.DataFrame({'cpm': [5.0, 15.0]})
    classified = classify_presence(df, threshold=10.0)
    assert list(classified['presence']) == ['absent', 'present']


@pytest.mark.parametrize("gene_reads, expected_cpm, expected", [
    (20, 10.0, 'present'),
    (5, 2.5, 'absent'),
])
def test_counts_to_presence(gene_reads, expected_cpm, expected):
    df = _counts_table([('s', 2_000_000, gene_reads)])
    classified = classify_presence(normalize_counts(df)[0])

    assert classified['cpm'].iloc[0] == pytest.approx(expected_cpm)
    assert classified['presence'].iloc[0] == expected


def test_load_sample_table_keeps_first_duplicate(tmp_path, sample_df):
    path = tmp_path / 'counts.csv'
    pd.concat([sample_df, sample_df.iloc[[0]]]).to_csv(path, index=False)

    loaded = load_sample_table(path)

    assert len(loaded) == len(sample_df)
    assert loaded['sample_id'].is_unique


def test_load_sample_table_reads_tsv(tmp_path, sample_df):
    path = tmp_path / 'counts.tsv'
    sample_df.to_csv(path, sep='\t', index=False)

    loaded = load_sample_table(path)

    assert list(loaded.columns) == list(sample_df.columns)
    assert loaded['sample_id'].tolist() == sample_df['sample_id'].tolist()


def test_load_sample_table_tolerates_non_numeric_age(tmp_path, sample_df):
    path = tmp_path / 'counts.csv'
    sample_df.to_csv(path, index=False)

    loaded = load_sample_table(path)

    assert 'unknown' in set(loaded['host_age'].dropna())


def test_load_sample_table_requires_columns(tmp_path, sample_df):
    path = tmp_path / 'counts.csv'
    sample_df.drop(columns=['host_age']).to_csv(path, index=False)

    with pytest.raises(MissingColumnsError) as excinfo:
        load_sample_table(path)
    assert excinfo.value.missing == ['host_age']


def test_sample_records_build_a_sample_table():
    records = [
        SampleRecord('s1', 'PRJNA1', 'infant', total_reads=2_000_000, gene_reads=20, host_age=12),
        SampleRecord('s2', 'PRJNA1', 'healthy', total_reads=2_000_000, gene_reads=5),
    ]
    classified = classify_presence(normalize_counts(records_to_frame(records))[0])

    assert list(classified['sample_id']) == ['s1', 's2']
    assert list(classified['presence']) == ['present', 'absent']
    assert pd.isna(classified['host_age'].iloc[1])
