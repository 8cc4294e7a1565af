"""Tests for the Monte Carlo TARF engine."""

import datetime as dt
import logging

import numpy as np
import pytest

from tarf_analytics.enums import EngineState, RandomSourceType
from tarf_analytics.exceptions import ConfigurationError, ConvergenceError, ValidationError
from tarf_analytics.statistics import RunningStatistics
from tarf_analytics.utils import year_fractions
from tarf_analytics.valuation import McTarfEngine, MonteCarloParams, ProxyParams

from tarf_analytics.tests.helpers import make_tarf


class _ZeroSource:
    """Deterministic source without error estimate: every path is the drift path."""

    allows_error_estimate = False

    def normals(self, offset, n_paths, dimension):
        return np.zeros((dimension, n_paths))


def _surfaces_equal(a, b) -> bool:
    if a.n_fixings != b.n_fixings or not np.array_equal(a.bucket_limits, b.bucket_limits):
        return False
    return all(
        fa == fb for row_a, row_b in zip(a.functions, b.functions) for fa, fb in zip(row_a, row_b)
    )


class TestEngineConfiguration:
    def test_time_grid_contains_fixing_times(self, call_tarf, process, mc_params):
        engine = McTarfEngine(call_tarf, process, mc_params)
        fixing_times = year_fractions(process.pricing_date, call_tarf.fixing_dates)
        assert engine.time_grid[0] == 0.0
        assert np.all(np.isin(fixing_times, engine.time_grid))
        np.testing.assert_array_equal(
            engine.time_grid[engine.pricer.fixing_grid_indices], fixing_times
        )

    def test_fixed_steps(self, call_tarf, process):
        engine = McTarfEngine(call_tarf, process, MonteCarloParams(steps=48, samples=10))
        assert engine.time_grid.size - 1 >= 48 - 12

    def test_initial_state(self, call_tarf, process, mc_params):
        engine = McTarfEngine(call_tarf, process, mc_params)
        assert engine.state is EngineState.CONFIGURING

    def test_tolerance_with_source_without_error_estimate_raises(self, call_tarf, process):
        params = MonteCarloParams(steps_per_year=12, absolute_tolerance=1.0)
        with pytest.raises(ConfigurationError, match="does not allow an error estimate"):
            McTarfEngine(call_tarf, process, params, random_source=_ZeroSource())

    def test_wrong_params_type_raises(self, call_tarf, process):
        with pytest.raises(ConfigurationError, match="params must be MonteCarloParams"):
            McTarfEngine(call_tarf, process, ProxyParams())  # type: ignore[arg-type]

    def test_knocked_out_contract_raises(self, process, mc_params):
        tarf = make_tarf(
            dt.datetime(2025, 1, 2), dt.datetime(2025, 12, 31), accumulated_amount=0.10
        )
        with pytest.raises(ValidationError, match="knocked out"):
            McTarfEngine(tarf, process, mc_params)

    def test_expired_contract_raises(self, process, mc_params):
        tarf = make_tarf(dt.datetime(2024, 1, 2), dt.datetime(2024, 12, 31))
        with pytest.raises(ValidationError, match="no open fixings"):
            McTarfEngine(tarf, process, mc_params)


class TestSimulation:
    def test_sample_count_mode(self, call_tarf, process, mc_params):
        engine = McTarfEngine(call_tarf, process, mc_params)
        result = engine.calculate()
        assert result.samples == 4_000
        assert result.converged
        assert engine.state is EngineState.CONVERGED
        assert np.isfinite(result.value)
        assert result.error_estimate > 0.0
        assert result.proxy is None

    def test_same_seed_is_reproducible(self, call_tarf, process):
        params = MonteCarloParams(
            steps_per_year=12,
            samples=3_000,
            seed=7,
            block_size=1_000,
            antithetic_variate=True,
            brownian_bridge=True,
        )
        first = McTarfEngine(call_tarf, process, params).calculate()
        second = McTarfEngine(call_tarf, process, params).calculate()
        assert first.value == second.value
        assert first.error_estimate == second.error_estimate

    def test_rerun_of_same_engine_is_reproducible(self, short_call_tarf, process, mc_params):
        engine = McTarfEngine(short_call_tarf, process, mc_params)
        assert engine.calculate().value == engine.calculate().value

    def test_different_seeds_differ(self, call_tarf, process):
        a = McTarfEngine(call_tarf, process, MonteCarloParams(steps_per_year=12, samples=2_000, seed=1))
        b = McTarfEngine(call_tarf, process, MonteCarloParams(steps_per_year=12, samples=2_000, seed=2))
        assert a.calculate().value != b.calculate().value

    def test_worker_count_does_not_change_result(self, call_tarf, process):
        kwargs = dict(steps_per_year=12, samples=5_000, seed=11, block_size=700)
        serial = McTarfEngine(call_tarf, process, MonteCarloParams(**kwargs)).calculate()
        parallel = McTarfEngine(
            call_tarf, process, MonteCarloParams(max_workers=3, **kwargs)
        ).calculate()
        assert serial.value == parallel.value
        assert serial.error_estimate == parallel.error_estimate

    @pytest.mark.parametrize(
        "flags",
        [dict(antithetic_variate=True), dict(brownian_bridge=True)],
    )
    def test_variance_options_agree_with_plain_estimate(self, call_tarf, process, flags):
        base = dict(steps_per_year=12, samples=8_000, seed=3, block_size=2_000)
        plain = McTarfEngine(call_tarf, process, MonteCarloParams(**base)).calculate()
        other = McTarfEngine(call_tarf, process, MonteCarloParams(**base, **flags)).calculate()
        assert abs(other.value - plain.value) < 5.0 * (plain.error_estimate + other.error_estimate)

    def test_sobol_has_no_error_estimate(self, call_tarf, process):
        base = dict(steps_per_year=12, samples=4_096, seed=3, block_size=1_024)
        plain = McTarfEngine(call_tarf, process, MonteCarloParams(**base)).calculate()
        sobol = McTarfEngine(
            call_tarf,
            process,
            MonteCarloParams(random_source=RandomSourceType.SOBOL, brownian_bridge=True, **base),
        ).calculate()
        assert sobol.error_estimate is None
        assert abs(sobol.value - plain.value) < 5.0 * plain.error_estimate

    def test_injected_strategies(self, short_call_tarf, process):
        created = []

        def factory():
            stats = RunningStatistics()
            created.append(stats)
            return stats

        params = MonteCarloParams(steps_per_year=12, samples=4_000, block_size=1_000)
        engine = McTarfEngine(
            short_call_tarf,
            process,
            params,
            random_source=_ZeroSource(),
            statistics_factory=factory,
        )
        result = engine.calculate()
        # one accumulator per block plus the reduced one
        assert len(created) == 1 + 1 + 4
        assert result.error_estimate is None
        assert result.samples == 4_000

    def test_single_sample_has_no_error_estimate(self, short_call_tarf, process):
        params = MonteCarloParams(steps_per_year=12, samples=1, seed=5)
        result = McTarfEngine(short_call_tarf, process, params).calculate()
        assert result.samples == 1
        assert np.isfinite(result.value)
        assert result.error_estimate == np.inf


class TestToleranceMode:
    def _first_batch_error(self, tarf, process) -> float:
        params = MonteCarloParams(steps_per_year=12, samples=1_023, seed=5, block_size=1_000)
        return McTarfEngine(tarf, process, params).calculate().error_estimate

    def test_converges_to_tolerance(self, short_call_tarf, process):
        tolerance = 0.5 * self._first_batch_error(short_call_tarf, process)
        params = MonteCarloParams(
            steps_per_year=12, absolute_tolerance=tolerance, seed=5, block_size=1_000
        )
        engine = McTarfEngine(short_call_tarf, process, params)
        result = engine.calculate()
        assert result.converged
        assert result.convergence_error is None
        assert result.error_estimate <= tolerance
        assert result.samples > 1_023
        assert engine.state is EngineState.CONVERGED

    def test_max_samples_reached_is_reported(self, short_call_tarf, process, caplog):
        tolerance = 0.1 * self._first_batch_error(short_call_tarf, process)
        params = MonteCarloParams(
            steps_per_year=12,
            absolute_tolerance=tolerance,
            max_samples=2_000,
            seed=5,
            block_size=1_000,
        )
        engine = McTarfEngine(short_call_tarf, process, params)
        with caplog.at_level(logging.WARNING, logger="tarf_analytics.valuation.monte_carlo"):
            result = engine.calculate()

        assert not result.converged
        assert engine.state is EngineState.FAILED
        assert result.samples == 2_000
        assert np.isfinite(result.value)
        assert isinstance(result.convergence_error, ConvergenceError)
        assert result.convergence_error.samples == 2_000
        assert result.convergence_error.tolerance == tolerance
        assert "did not converge" in caplog.text

    def test_single_sample_never_converges(self, short_call_tarf, process):
        # the first batch is capped at one sample, which has no error estimate
        params = MonteCarloParams(
            steps_per_year=12, absolute_tolerance=1e6, max_samples=1, seed=5
        )
        engine = McTarfEngine(short_call_tarf, process, params)
        result = engine.calculate()

        assert not result.converged
        assert engine.state is EngineState.FAILED
        assert result.samples == 1
        assert result.error_estimate == np.inf
        assert isinstance(result.convergence_error, ConvergenceError)
        assert result.convergence_error.samples == 1


class TestProxyGeneration:
    def _params(self, **overrides):
        kwargs = dict(
            steps_per_year=12, samples=20_000, seed=17, block_size=5_000, generate_proxy=True
        )
        kwargs.update(overrides)
        return MonteCarloParams(**kwargs)

    def test_surface_layout(self, short_call_tarf, process):
        result = McTarfEngine(short_call_tarf, process, self._params()).calculate()
        surface = result.proxy
        assert surface is not None
        assert surface.n_fixings == 3
        assert surface.origin_date == process.pricing_date
        assert surface.open_fixing_dates == short_call_tarf.fixing_dates
        assert surface.last_payment_date == short_call_tarf.last_payment_date
        np.testing.assert_allclose(surface.bucket_limits, [0.0, 0.02, 0.04, 0.06, 0.08])
        # at the first fixing nothing has accumulated: all buckets share one function
        assert len(surface.distinct_functions(2)) == 1

    def test_call_like_proxies_are_ascending(self, short_call_tarf, process):
        surface = McTarfEngine(short_call_tarf, process, self._params()).calculate().proxy
        spots = np.linspace(0.9, 1.3, 401)
        for f in range(surface.n_fixings):
            for fct in surface.distinct_functions(f):
                values = fct(spots)
                scale = max(1.0, float(np.max(np.abs(values))))
                assert np.all(np.diff(values) >= -1e-12 * scale)

    def test_proxy_is_reproducible_across_workers(self, short_call_tarf, process):
        serial = McTarfEngine(short_call_tarf, process, self._params()).calculate()
        parallel = McTarfEngine(
            short_call_tarf, process, self._params(max_workers=4)
        ).calculate()
        assert serial.value == parallel.value
        assert _surfaces_equal(serial.proxy, parallel.proxy)

    def test_proxy_is_reproducible_with_same_seed(self, short_call_tarf, process):
        params = self._params(antithetic_variate=True, brownian_bridge=True, samples=10_000)
        first = McTarfEngine(short_call_tarf, process, params).calculate()
        second = McTarfEngine(short_call_tarf, process, params).calculate()
        assert first.value == second.value
        assert _surfaces_equal(first.proxy, second.proxy)

    def test_custom_bucket_count(self, short_call_tarf, process):
        result = McTarfEngine(
            short_call_tarf, process, self._params(), proxy_params=ProxyParams(n_buckets=3)
        ).calculate()
        assert result.proxy.n_buckets == 3
