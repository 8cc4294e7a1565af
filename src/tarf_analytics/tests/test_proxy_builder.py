"""Tests for bucket merging, segment splitting, regression and proxy assembly."""

from concurrent.futures import ThreadPoolExecutor
import datetime as dt

import numpy as np
import pytest

from tarf_analytics.enums import OptionType
from tarf_analytics.exceptions import DomainError
from tarf_analytics.valuation import ProxyParams
from tarf_analytics.valuation.proxy_builder import (
    build_proxy_function,
    build_proxy_surface,
    fit_quadratic,
    merge_buckets,
    split_segments,
)

from tarf_analytics.tests.helpers import make_store


ORIGIN = dt.datetime(2025, 1, 1)
FIXINGS = [dt.datetime(2025, 1, 31), dt.datetime(2025, 2, 28)]
LAST_PAYMENT = dt.datetime(2025, 3, 2)


def _surface(store, option_type=OptionType.CALL, params=None, executor=None):
    return build_proxy_surface(
        store,
        option_type,
        params or ProxyParams(),
        origin_date=ORIGIN,
        open_fixing_dates=FIXINGS[: store.n_fixings],
        last_payment_date=LAST_PAYMENT,
        executor=executor,
    )


# ---------------------------------------------------------------------------
# Bucket merging
# ---------------------------------------------------------------------------


class TestMergeBuckets:
    def test_dense_buckets_are_not_merged(self):
        assert merge_buckets([200] * 5, density_factor=10) == [[0], [1], [2], [3], [4]]

    def test_sparse_buckets_merge_to_regression_floor(self):
        groups = merge_buckets([4] * 5, density_factor=10, min_regression_points=3)
        assert groups == [[0, 1], [2, 3, 4]]

    def test_short_tail_is_folded_into_last_group(self):
        assert merge_buckets([100, 100, 5], density_factor=10) == [[0], [1, 2]]

    def test_leading_sparse_buckets_are_collected(self):
        assert merge_buckets([1, 0, 50, 50], density_factor=10) == [[0, 1, 2], [3]]

    def test_empty_fixing_index_is_one_group(self):
        assert merge_buckets([0, 0, 0], density_factor=10) == [[0, 1, 2]]

    @pytest.mark.parametrize(
        "sizes",
        [[200] * 5, [4] * 5, [0, 3, 17, 250, 1], [1000, 0, 0, 0, 2], [7, 7, 7, 7, 7, 7, 7]],
    )
    def test_partition_preserves_points_and_order(self, sizes):
        groups = merge_buckets(sizes, density_factor=10)
        flat = [b for g in groups for b in g]
        assert flat == list(range(len(sizes)))
        assert sum(sum(sizes[b] for b in g) for g in groups) == sum(sizes)


# ---------------------------------------------------------------------------
# Segment splitting
# ---------------------------------------------------------------------------


class TestSplitSegments:
    def setup_method(self):
        self.params = ProxyParams()

    def test_well_populated_data_keeps_initial_cutoff(self):
        spots = np.linspace(1.0, 2.0, 101)
        split = split_segments(spots, OptionType.CALL, self.params)
        assert split.relative_cutoff == pytest.approx(0.8)
        assert split.cutoff == pytest.approx(1.8)
        assert split.size_below + split.size_above == spots.size
        assert np.all(spots[: split.size_below] <= split.cutoff)
        assert np.all(spots[split.size_below :] > split.cutoff)

    def test_put_starts_from_mirrored_cutoff(self):
        spots = np.linspace(1.0, 2.0, 101)
        split = split_segments(spots, OptionType.PUT, self.params)
        assert split.relative_cutoff == pytest.approx(0.2)
        assert split.cutoff == pytest.approx(1.2)

    def test_call_cutoff_shrinks_towards_middle(self):
        spots = np.concatenate([np.linspace(1.0, 1.1, 97), [1.5, 1.9, 2.0]])
        split = split_segments(spots, OptionType.CALL, self.params)
        assert 0.5 * self.params.cutoff_shrink_factor < split.relative_cutoff <= 0.5
        assert split.size_above == 3

    def test_put_cutoff_grows_towards_middle(self):
        spots = np.concatenate([[1.0, 1.1, 1.5], np.linspace(1.9, 2.0, 97)])
        split = split_segments(spots, OptionType.PUT, self.params)
        assert 0.5 <= split.relative_cutoff < 0.5 / self.params.cutoff_shrink_factor
        assert split.size_below == 3

    def test_shrinking_stops_once_critical_segment_is_large_enough(self):
        # 8 points lie above the initial cutoff 1.8, the minimum is 7
        spots = np.concatenate([np.linspace(1.0, 1.5, 80), np.linspace(1.51, 2.0, 20)])
        split = split_segments(spots, OptionType.CALL, self.params)
        assert split.relative_cutoff > 0.5
        assert split.size_above >= int(0.2 * 0.33 * 100) + 1


# ---------------------------------------------------------------------------
# Regression
# ---------------------------------------------------------------------------


class TestFitQuadratic:
    def test_recovers_exact_quadratic(self):
        x = np.linspace(0.5, 1.5, 20)
        segment = fit_quadratic(x, 2.0 * x**2 - 3.0 * x + 1.0)
        assert segment.a == pytest.approx(2.0)
        assert segment.b == pytest.approx(-3.0)
        assert segment.c == pytest.approx(1.0)

    def test_too_few_points_raises_domain_error(self):
        with pytest.raises(DomainError, match="fixing index 4") as exc_info:
            fit_quadratic(np.array([1.0, 2.0]), np.array([1.0, 2.0]), 3, 4, "above")
        assert exc_info.value.fixing_index == 4
        assert exc_info.value.segment == "above"
        assert exc_info.value.size == 2
        assert exc_info.value.required == 3


# ---------------------------------------------------------------------------
# Proxy function assembly
# ---------------------------------------------------------------------------


class TestBuildProxyFunction:
    def setup_method(self):
        self.params = ProxyParams()

    def test_collapsed_spot_range_gives_constant_mean(self):
        values = np.array([1.0, 2.0, 4.0, 9.0])
        data = np.column_stack([np.full(4, 1.1), values])
        fct = build_proxy_function(data, OptionType.CALL, self.params)
        assert fct.is_constant
        assert fct(1.1) == pytest.approx(values.mean())
        assert fct(0.5) == pytest.approx(values.mean())
        assert fct(3.0) == pytest.approx(values.mean())
        assert fct.core_region == (1.1, 1.1)

    def test_collapsed_spot_range_put(self):
        data = np.column_stack([np.full(3, 0.9), [3.0, 3.0, 6.0]])
        fct = build_proxy_function(data, OptionType.PUT, self.params)
        assert fct.is_constant
        np.testing.assert_allclose(fct(np.array([0.1, 0.9, 5.0])), 4.0)

    def test_starved_segment_reports_fixing_index(self):
        data = np.column_stack([np.r_[np.full(10, 1.0), 2.0, 2.0], np.arange(12.0)])
        with pytest.raises(DomainError) as exc_info:
            build_proxy_function(data, OptionType.CALL, self.params, fixing_index=3)
        assert exc_info.value.fixing_index == 3
        assert exc_info.value.segment == "above"

    def test_empty_dataset_raises_domain_error(self):
        with pytest.raises(DomainError, match="fixing index 1"):
            build_proxy_function(np.empty((0, 2)), OptionType.CALL, self.params, fixing_index=1)

    @pytest.mark.parametrize("option_type", [OptionType.CALL, OptionType.PUT])
    def test_cutoffs_and_core_region(self, option_type):
        spots = np.linspace(0.8, 1.2, 401)
        sign = 1.0 if option_type is OptionType.CALL else -1.0
        data = np.column_stack([spots, sign * 10.0 * (spots - 1.0)])
        fct = build_proxy_function(data, option_type, self.params)
        if option_type is OptionType.CALL:
            assert fct.lower_cutoff <= fct.cutoff
            assert fct.lower_cutoff == pytest.approx(spots[int(401 * 0.05)])
        else:
            assert fct.lower_cutoff >= fct.cutoff
            assert fct.lower_cutoff == pytest.approx(spots[int(401 * 0.95)])
        assert fct.core_region_min == pytest.approx(spots[int(401 * 0.01)])
        assert fct.core_region_max == pytest.approx(spots[int(401 * 0.99)])

    def test_fitted_function_matches_linear_data_in_core_region(self):
        spots = np.linspace(0.8, 1.2, 401)
        data = np.column_stack([spots, 10.0 * (spots - 1.0)])
        fct = build_proxy_function(data, OptionType.CALL, self.params)
        x = np.linspace(*fct.core_region, 25)
        np.testing.assert_allclose(fct(x), 10.0 * (x - 1.0), atol=1e-8)

    def test_near_linear_fit_has_no_vertex(self):
        spots = np.linspace(0.8, 1.2, 401)
        data = np.column_stack([spots, 10.0 * (spots - 1.0)])
        fct = build_proxy_function(data, OptionType.CALL, self.params)
        assert fct.below.a == 0.0 and fct.above.a == 0.0
        assert fct.above.vertex is None
        assert fct(5.0) == pytest.approx(40.0)

    @pytest.mark.parametrize("option_type", [OptionType.CALL, OptionType.PUT])
    def test_linear_data_against_option_direction_stays_bounded(self, option_type):
        # descending values for a call, ascending for a put
        spots = np.linspace(0.8, 1.2, 401)
        sign = -1.0 if option_type is OptionType.CALL else 1.0
        values = sign * 10.0 * (spots - 1.0)
        fct = build_proxy_function(np.column_stack([spots, values]), option_type, self.params)

        for segment in (fct.below, fct.above):
            assert segment.a == 0.0
            assert segment.b == 0.0
        result = fct(np.linspace(0.0, 3.0, 301))
        assert np.all(np.isfinite(result))
        assert np.all(result >= values.min() - 1e-9)
        assert np.all(result <= values.max() + 1e-9)


# ---------------------------------------------------------------------------
# Surface
# ---------------------------------------------------------------------------


class TestBuildProxySurface:
    def test_dense_data_gives_independent_functions(self):
        surface = _surface(make_store([200] * 5, n_fixings=2))
        for f in range(2):
            distinct = surface.distinct_functions(f)
            assert len(distinct) == 5
            assert all(surface.functions[f][b] is distinct[b] for b in range(5))

    def test_sparse_data_shares_function_instances(self):
        surface = _surface(make_store([4] * 5))
        row = surface.functions[0]
        assert row[0] is row[1]
        assert row[2] is row[3] is row[4]
        assert row[1] is not row[2]
        assert len(surface.distinct_functions(0)) == 2

    def test_surface_metadata(self):
        store = make_store([50] * 5, n_fixings=2)
        surface = _surface(store)
        assert surface.origin_date == ORIGIN
        assert surface.open_fixing_dates == tuple(FIXINGS)
        assert surface.last_payment_date == LAST_PAYMENT
        np.testing.assert_array_equal(surface.bucket_limits, store.limits)

    def test_parallel_build_matches_serial(self):
        store = make_store([120, 80, 60, 30, 10], n_fixings=2)
        serial = _surface(store)
        with ThreadPoolExecutor(max_workers=2) as executor:
            parallel = _surface(store, executor=executor)
        for f in range(2):
            for a, b in zip(serial.functions[f], parallel.functions[f]):
                assert a == b

    def test_fixing_index_without_data_raises(self):
        empty = make_store([0] * 5, n_fixings=1)
        with pytest.raises(DomainError, match="fixing index 0"):
            _surface(empty)
