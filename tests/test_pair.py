"""Tests for single-pair relatedness estimation."""

import numpy as np
import pytest

from polyrel.errors import ConfigurationError, InputValidityError
from polyrel.ibd.grid import generate_grid, log_grid
from polyrel.ibd.pair import PairResult, ibd_pair

pytestmark = pytest.mark.tier1


@pytest.fixture
def related_pair(afreq, simulate_pair):
    """COI 2 and 3 sharing one strain."""
    return simulate_pair(afreq, 2, 3, n_shared=1), [2, 3]


@pytest.fixture
def unrelated_pair(afreq, simulate_pair):
    return simulate_pair(afreq, 2, 2, n_shared=0), [2, 2]


class TestEstimates:
    def test_identical_monoclonal_samples(self, afreq, rng):
        """Identical single-allele calls at every marker: estimate is 1."""
        x = [[int(rng.integers(f.size))] for f in afreq]
        res = ibd_pair([x, x], [1, 1], afreq)
        assert res.estimate == 1.0

    def test_no_shared_alleles(self):
        afreq = [np.log([0.25, 0.25, 0.25, 0.25])] * 10
        x = [[0, 1]] * 10
        y = [[2, 3]] * 10
        res = ibd_pair([x, y], [2, 2], afreq)
        assert res.estimate == 0.0
        assert res.pvalue == 1.0

    def test_unrelated_pair_near_zero(self, unrelated_pair, afreq):
        pair, coi = unrelated_pair
        res = ibd_pair(pair, coi, afreq)
        assert 0.0 <= res.estimate < 0.25

    def test_related_above_unrelated(self, related_pair, unrelated_pair, afreq):
        rel = ibd_pair(related_pair[0], related_pair[1], afreq)
        unrel = ibd_pair(unrelated_pair[0], unrelated_pair[1], afreq)
        assert rel.estimate > unrel.estimate
        assert rel.pvalue < 0.01

    def test_newton_and_grid_agree(self, related_pair, afreq):
        pair, coi = related_pair
        newton = ibd_pair(pair, coi, afreq, mnewton=True)
        grid = ibd_pair(pair, coi, afreq, mnewton=False, nr=1000)
        assert abs(newton.estimate - grid.estimate) <= 1e-3 + 1e-9

    def test_symmetric_in_samples(self, related_pair, afreq):
        pair, coi = related_pair
        xy = ibd_pair(pair, coi, afreq)
        yx = ibd_pair(pair[::-1], coi[::-1], afreq)
        assert xy.estimate == pytest.approx(yx.estimate, abs=1e-8)
        assert xy.llik_max == pytest.approx(yx.llik_max, rel=1e-10)

    def test_idempotent(self, related_pair, afreq):
        pair, coi = related_pair
        a = ibd_pair(pair, coi, afreq, confint=True)
        b = ibd_pair(pair, coi, afreq, confint=True)
        assert a.estimate == b.estimate
        assert a.pvalue == b.pvalue
        assert a.ci == b.ci
        assert np.array_equal(a.llik, b.llik)

    def test_plain_frequencies(self, related_pair, afreq):
        pair, coi = related_pair
        logged = ibd_pair(pair, coi, afreq)
        plain = ibd_pair(pair, coi, [np.exp(f) for f in afreq], freqlog=False)
        assert plain.estimate == pytest.approx(logged.estimate, abs=1e-10)

    def test_untyped_markers_are_skipped(self, related_pair, afreq):
        pair, coi = related_pair
        x = list(pair[0])
        x[0] = []
        x[5] = []
        res = ibd_pair([x, pair[1]], coi, afreq)
        assert res.n_markers == len(afreq) - 2


class TestTestsAndIntervals:
    def test_pvalue_at_mle_is_one(self, related_pair, afreq):
        pair, coi = related_pair
        res = ibd_pair(pair, coi, afreq)
        at_mle = ibd_pair(pair, coi, afreq, rnull=res.estimate)
        assert at_mle.pvalue == pytest.approx(1.0)

    def test_grid_pvalue_at_mle_is_one(self, related_pair, afreq):
        pair, coi = related_pair
        res = ibd_pair(pair, coi, afreq, mnewton=False, nr=200)
        at_mle = ibd_pair(pair, coi, afreq, mnewton=False, nr=200, rnull=res.estimate)
        assert at_mle.pvalue == pytest.approx(1.0)

    def test_confint_brackets_estimate(self, related_pair, afreq):
        pair, coi = related_pair
        res = ibd_pair(pair, coi, afreq, confint=True)
        lower, upper = res.ci
        assert 0.0 <= lower <= res.estimate <= upper <= 1.0
        assert res.llik.shape == (1001,)

    def test_confint_excludes_null_when_significant(self, related_pair, afreq):
        pair, coi = related_pair
        res = ibd_pair(pair, coi, afreq, confint=True)
        if res.pvalue < 0.01:
            assert res.ci[0] > 0.0

    def test_newton_with_confint(self, related_pair, afreq):
        pair, coi = related_pair
        res = ibd_pair(pair, coi, afreq, confint=True, mnewton=True)
        assert res.ci[0] <= res.estimate <= res.ci[1]

    def test_no_pvalue_when_not_requested(self, related_pair, afreq):
        pair, coi = related_pair
        res = ibd_pair(pair, coi, afreq, pval=False)
        assert res.pvalue is None
        assert res.ci is None


class TestMultipleComponents:
    def test_equalr(self, related_pair, afreq):
        pair, coi = related_pair
        res = ibd_pair(pair, coi, afreq, M=2, equalr=True, nr=100, confint=True)
        assert np.ndim(res.estimate) == 0
        assert 0.0 <= res.estimate <= 1.0
        assert res.ci[0] <= res.estimate <= res.ci[1]

    def test_general_r_vector_estimate(self, related_pair, afreq):
        pair, coi = related_pair
        res = ibd_pair(pair, coi, afreq, M=2, nr=20)
        assert isinstance(res, PairResult)
        assert res.estimate.shape == (2,)
        assert np.all((res.estimate >= 0.0) & (res.estimate <= 1.0))
        assert 0.0 <= res.total_relatedness(*coi, M=2) <= 1.0

    def test_precomputed_grid(self, related_pair, afreq):
        pair, coi = related_pair
        reval = generate_grid(2, nr=10)
        logr = log_grid(reval, M=2)
        a = ibd_pair(pair, coi, afreq, M=2, reval=reval)
        b = ibd_pair(pair, coi, afreq, M=2, logr=logr)
        assert np.array_equal(a.estimate, b.estimate)

    def test_vector_null(self, related_pair, afreq):
        pair, coi = related_pair
        res = ibd_pair(pair, coi, afreq, M=2, nr=10, rnull=[0.0, 0.5])
        assert 0.0 <= res.pvalue <= 1.0


class TestValidation:
    def test_newton_needs_single_component(self, related_pair, afreq):
        pair, coi = related_pair
        with pytest.raises(ConfigurationError):
            ibd_pair(pair, coi, afreq, M=2, mnewton=True)

    def test_confint_needs_scalar_relatedness(self, related_pair, afreq):
        pair, coi = related_pair
        with pytest.raises(ConfigurationError):
            ibd_pair(pair, coi, afreq, M=2, confint=True)

    def test_grid_rows_must_match_M(self, related_pair, afreq):
        pair, coi = related_pair
        with pytest.raises(ConfigurationError):
            ibd_pair(pair, coi, afreq, M=1, mnewton=False, reval=generate_grid(2, nr=5))

    def test_equalr_grid_must_have_one_row(self, related_pair, afreq):
        pair, coi = related_pair
        with pytest.raises(ConfigurationError):
            ibd_pair(pair, coi, afreq, M=2, equalr=True, reval=generate_grid(2, nr=5))

    @pytest.mark.parametrize("alpha", [0.0, 1.0, -0.1])
    def test_alpha_range(self, related_pair, afreq, alpha):
        pair, coi = related_pair
        with pytest.raises(ConfigurationError):
            ibd_pair(pair, coi, afreq, confint=True, alpha=alpha)

    def test_rnull_range(self, related_pair, afreq):
        pair, coi = related_pair
        with pytest.raises(ConfigurationError):
            ibd_pair(pair, coi, afreq, rnull=1.5)

    @pytest.mark.parametrize("coi", [[0, 2], [2, -1], [1.5, 2]])
    def test_invalid_complexity(self, related_pair, afreq, coi):
        pair, _ = related_pair
        with pytest.raises(InputValidityError, match="complexity"):
            ibd_pair(pair, coi, afreq)

    def test_M_above_complexity(self, related_pair, afreq):
        pair, coi = related_pair
        with pytest.raises(InputValidityError):
            ibd_pair(pair, coi, afreq, M=3, equalr=True, nr=10)

    def test_allele_outside_frequency_vector(self, related_pair, afreq):
        pair, coi = related_pair
        x = list(pair[0])
        x[3] = [afreq[3].size]
        with pytest.raises(InputValidityError) as excinfo:
            ibd_pair([x, pair[1]], coi, afreq, names=("a", "b"))
        assert excinfo.value.marker == 3
        assert excinfo.value.pair == ("a", "b")
        assert "marker=3" in str(excinfo.value)

    def test_more_alleles_than_strains(self, afreq):
        x = [[0]] * len(afreq)
        y = [[0]] * len(afreq)
        x[0] = [0, 1, 2]
        with pytest.raises(InputValidityError, match="distinct alleles"):
            ibd_pair([x, y], [2, 2], afreq)

    def test_marker_count_mismatch(self, related_pair, afreq):
        pair, coi = related_pair
        with pytest.raises(InputValidityError):
            ibd_pair([pair[0][:-1], pair[1]], coi, afreq)

    def test_allele_with_zero_frequency(self):
        """An observed allele the population never carries is invalid input."""
        afreq = [[0.0, 0.5, 0.5]] * 3
        x = [[0, 1]] * 3
        y = [[0]] * 3
        with pytest.raises(InputValidityError, match="zero frequency") as excinfo:
            ibd_pair([x, y], [2, 2], afreq, freqlog=False)
        assert excinfo.value.marker == 0

    def test_unobserved_zero_frequency_allele_is_fine(self):
        afreq = [[0.0, 0.5, 0.5]] * 3
        x = [[1, 2]] * 3
        y = [[2]] * 3
        res = ibd_pair([x, y], [2, 2], afreq, freqlog=False)
        assert np.isfinite(res.llik_max)
        assert 0.0 <= res.pvalue <= 1.0
