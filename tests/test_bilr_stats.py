import math

import numpy as np
import pytest
from scipy import stats

from bilr_tools import bilr_stats
from bilr_tools.bilr_types import CorrectionStatus, InvalidContingencyTable


@pytest.fixture
def large_gap(cohort_factory):
    return cohort_factory('A', present=90, absent=10), cohort_factory('B', present=40, absent=60)


def test_contingency_table_counts(large_gap):
    table = bilr_stats.build_contingency_table(large_gap)

    assert list(table.index) == ['A', 'B']
    assert list(table.columns) == ['present', 'absent']
    assert table.loc['A'].tolist() == [90, 10]
    assert table.loc['B'].tolist() == [40, 60]


def test_two_group_test_applies_yates_correction(large_gap):
    result = bilr_stats.compare_proportions(large_gap)

    # Every cell is 25 away from its expected count (65 present / 35 absent per group)
    expected_statistic = 24.5 ** 2 * (2 / 65 + 2 / 35)

    assert result.groups_compared == ('A', 'B')
    assert result.statistic == pytest.approx(expected_statistic)
    assert result.degrees_of_freedom == 1
    assert result.p_value == pytest.approx(stats.chi2.sf(expected_statistic, 1))
    assert result.p_value < 0.001
    assert result.continuity_correction_applied
    assert result.continuity_correction == CorrectionStatus.APPLIED


def test_two_group_test_matches_reference(large_gap):
    reference = stats.chi2_contingency(np.array([[90, 10], [40, 60]]), correction=True)
    result = bilr_stats.compare_proportions(large_gap)

    assert result.statistic == pytest.approx(reference[0], rel=1e-12)
    assert result.p_value == pytest.approx(reference[1], rel=1e-9)


def test_correction_can_be_turned_off(large_gap):
    result = bilr_stats.compare_proportions(large_gap, correction=False)

    assert result.statistic == pytest.approx(25 ** 2 * (2 / 65 + 2 / 35))
    assert not result.continuity_correction_applied
    assert result.continuity_correction == CorrectionStatus.NOT_REQUESTED


def test_multi_group_correction_is_flagged_inapplicable(cohort_factory):
    cohorts = [cohort_factory('CD', 10, 30), cohort_factory('UC', 20, 20), cohort_factory('healthy', 35, 5)]
    result = bilr_stats.compare_proportions(cohorts)
    reference = stats.chi2_contingency(np.array([[10, 30], [20, 20], [35, 5]]), correction=False)

    assert result.groups_compared == ('CD', 'UC', 'healthy')
    assert result.degrees_of_freedom == 2
    assert result.statistic == pytest.approx(reference[0])
    assert result.p_value == pytest.approx(reference[1])
    assert result.continuity_correction == CorrectionStatus.INAPPLICABLE
    assert not result.continuity_correction_applied


def test_empty_cohort_is_invalid(cohort_factory):
    with pytest.raises(InvalidContingencyTable):
        bilr_stats.compare_proportions([cohort_factory('A', 5, 5), cohort_factory('B', 0, 0)])


def test_single_group_is_invalid(cohort_factory):
    with pytest.raises(InvalidContingencyTable):
        bilr_stats.compare_proportions([cohort_factory('A', 5, 5)])


def test_repeated_label_is_not_a_second_group(cohort_factory):
    with pytest.raises(InvalidContingencyTable):
        bilr_stats.compare_proportions([cohort_factory('A', 5, 5), cohort_factory('A', 1, 9)])


def test_single_outcome_everywhere_gives_nan(cohort_factory):
    result = bilr_stats.compare_proportions([cohort_factory('A', 5, 0), cohort_factory('B', 7, 0)])

    assert math.isnan(result.statistic)
    assert math.isnan(result.p_value)
    assert result.degrees_of_freedom == 1


def test_custom_proportion_test_is_used(large_gap):
    calls = []

    def fake_test(table, correction):
        calls.append((table.tolist(), correction))
        return 1.5, 1, 0.25

    result = bilr_stats.compare_proportions(large_gap, test=fake_test)

    assert calls == [([[90, 10], [40, 60]], True)]
    assert (result.statistic, result.degrees_of_freedom, result.p_value) == (1.5, 1, 0.25)


def test_pairwise_uses_only_the_pair(cohort_factory):
    cd, uc, healthy = cohort_factory('CD', 10, 30), cohort_factory('UC', 20, 20), cohort_factory('healthy', 35, 5)

    results = bilr_stats.compare_pairwise([cd, uc, healthy])
    direct = bilr_stats.compare_proportions([cd, healthy])

    assert [r.groups_compared for r in results] == [('CD', 'UC'), ('CD', 'healthy'), ('UC', 'healthy')]
    assert results[1].statistic == direct.statistic
    assert results[1].p_value == direct.p_value
    assert all(r.continuity_correction_applied for r in results)


def test_pairwise_records_family_size_without_adjusting(cohort_factory):
    cohorts = [cohort_factory('CD', 10, 30), cohort_factory('UC', 20, 20), cohort_factory('healthy', 35, 5)]
    results = bilr_stats.compare_pairwise(cohorts)

    assert all(r.n_pairwise_tests == 3 for r in results)
    assert all(r.adjusted_p_value is None for r in results)
    assert all(r.p_adjust_method is None for r in results)


def test_pairwise_bonferroni_adjustment(cohort_factory):
    cohorts = [cohort_factory('CD', 10, 30), cohort_factory('UC', 20, 20), cohort_factory('healthy', 35, 5)]
    results = bilr_stats.compare_pairwise(cohorts, p_adjust='bonferroni')

    for result in results:
        assert result.adjusted_p_value == pytest.approx(min(1.0, result.p_value * 3))
        assert result.p_adjust_method == 'bonferroni'


def test_pairwise_explicit_pairs(cohort_factory):
    cohorts = [cohort_factory('CD', 10, 30), cohort_factory('UC', 20, 20), cohort_factory('healthy', 35, 5)]
    results = bilr_stats.compare_pairwise(cohorts, pairs=[('healthy', 'CD')])

    assert len(results) == 1
    assert results[0].groups_compared == ('healthy', 'CD')
    assert results[0].n_pairwise_tests == 1


def test_pairwise_empty_cohort_raises(cohort_factory):
    cohorts = [cohort_factory('CD', 3, 2), cohort_factory('UC', 0, 0), cohort_factory('healthy', 1, 4)]
    with pytest.raises(InvalidContingencyTable):
        bilr_stats.compare_pairwise(cohorts)


def test_pairwise_skips_invalid_pairs_when_collecting_failures(cohort_factory):
    cohorts = [cohort_factory('CD', 3, 2), cohort_factory('UC', 0, 0), cohort_factory('healthy', 1, 4)]
    failures = []

    results = bilr_stats.compare_pairwise(cohorts, failures=failures)

    assert [r.groups_compared for r in results] == [('CD', 'healthy')]
    assert results[0].n_pairwise_tests == 3
    assert [pair for pair, _ in failures] == [('CD', 'UC'), ('UC', 'healthy')]


def test_pairwise_unknown_label(cohort_factory):
    with pytest.raises(KeyError):
        bilr_stats.compare_pairwise([cohort_factory('CD', 1, 1)], pairs=[('CD', 'UC')])


def test_results_are_reproducible(large_gap):
    first = bilr_stats.compare_proportions(large_gap)
    second = bilr_stats.compare_proportions(large_gap)
    assert first == second


def test_tests_to_frame(large_gap):
    frame = bilr_stats.tests_to_frame(bilr_stats.compare_pairwise(large_gap))

    assert frame.loc[0, 'groups_compared'] == 'A vs B'
    assert bool(frame.loc[0, 'continuity_correction_applied'])
    assert frame.loc[0, 'n_pairwise_tests'] == 1
