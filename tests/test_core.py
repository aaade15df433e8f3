"""Tests for configuration, worker control and error types."""

import os

import numpy as np
import pytest

from polyrel.core import EstimationConfig, blas_threads, get_worker_count
from polyrel.errors import ConfigurationError, InputValidityError

pytestmark = pytest.mark.tier0


class TestEstimationConfig:
    def test_default_mode_is_newton(self):
        assert EstimationConfig().resolved_mnewton() is True

    def test_confint_defaults_to_grid(self):
        assert EstimationConfig(confint=True).resolved_mnewton() is False

    def test_multi_component_defaults_to_grid(self):
        assert EstimationConfig(M=2).resolved_mnewton() is False

    def test_scalar_null_is_broadcast(self):
        np.testing.assert_array_equal(
            EstimationConfig(M=3, rnull=0.2).null_vector(), [0.2, 0.2, 0.2]
        )
        assert EstimationConfig(M=3, equalr=True, rnull=0.2).null_vector().shape == (1,)

    def test_null_boundary(self):
        assert EstimationConfig(rnull=0.0).null_on_boundary()
        assert EstimationConfig(rnull=1.0).null_on_boundary()
        assert not EstimationConfig(rnull=0.3).null_on_boundary()

    def test_null_length_mismatch(self):
        with pytest.raises(ConfigurationError):
            EstimationConfig(M=2, rnull=[0.1, 0.2, 0.3]).validate()

    @pytest.mark.parametrize("M", [0, -1, 1.5])
    def test_invalid_M(self, M):
        with pytest.raises(ConfigurationError):
            EstimationConfig(M=M).validate()


class TestWorkers:
    def test_explicit_count_is_capped(self):
        assert get_worker_count(1) == 1
        assert get_worker_count(10**6) == (os.cpu_count() or 64)
        assert get_worker_count(0) == 1

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("POLYREL_WORKERS", "1")
        assert get_worker_count(None) == 1

    def test_invalid_env_falls_back(self, monkeypatch):
        monkeypatch.setenv("POLYREL_WORKERS", "many")
        assert get_worker_count(None) >= 1

    def test_blas_threads_context(self):
        with blas_threads(1):
            assert np.dot(np.ones(3), np.ones(3)) == 3.0


class TestErrors:
    def test_context_in_message(self):
        err = InputValidityError("bad allele", pair=("a", "b"), marker=4)
        assert str(err) == "bad allele (pair=a/b, marker=4)"
        assert isinstance(err, ValueError)

    def test_with_pair_keeps_marker(self):
        err = InputValidityError("bad allele", marker=2).with_pair(("s1", "s2"))
        assert err.marker == 2
        assert err.pair == ("s1", "s2")
        assert "pair=s1/s2" in str(err)


class TestAmbient:
    def test_stats_import_enables_x64(self):
        from polyrel.core import get_jax_info
        from polyrel.ibd.stats import lrt_pvalue

        assert get_jax_info()["x64_enabled"]
        # a float32 tail would underflow to zero here
        assert 0.0 < lrt_pvalue(200.0, 0.0) < 1e-80

    def test_jax_info_reports_x64(self):
        from polyrel.core import configure_jax, get_jax_info

        configure_jax(enable_x64=True)
        info = get_jax_info()
        assert info["x64_enabled"]
        assert info["backend"]

    def test_setup_logging_writes_json_file(self, tmp_path):
        import json

        from loguru import logger

        from polyrel.utils import setup_logging

        log_file = tmp_path / "run.log"
        setup_logging(verbose=True, log_file=log_file)
        logger.debug("pair loop started")
        setup_logging()

        records = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert records[-1]["record"]["message"] == "pair loop started"
        assert records[-1]["record"]["level"]["name"] == "DEBUG"
