from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from epitraj import CovariateInterpolator

TIMES = [0.0, 7.0, 14.0, 21.0, 28.0]
RAIN = [12.0, 30.5, 4.0, 0.0, 18.25]


@pytest.fixture
def rainfall():
    return CovariateInterpolator(TIMES, RAIN, names="rainfall")


def test_exact_sample_times_return_sample_values(rainfall):
    for t, v in zip(TIMES, RAIN):
        assert rainfall.value(t) == v


def test_linear_between_samples(rainfall):
    assert rainfall.value(3.5) == pytest.approx(0.5 * (12.0 + 30.5))
    assert rainfall.value(15.75) == pytest.approx(4.0 + 0.25 * (0.0 - 4.0))


def test_constant_extrapolation_outside_range(rainfall):
    assert rainfall.value(-1e-9) == RAIN[0]
    assert rainfall.value(-100.0) == RAIN[0]
    assert rainfall.value(28.0 + 1e-9) == RAIN[-1]
    assert rainfall.value(1e6) == RAIN[-1]


def test_lookup_keys_by_name(rainfall):
    assert rainfall.lookup(7.0) == {"rainfall": 30.5}
    assert rainfall(7.0) == 30.5


def test_step_order_holds_last_sample():
    cov = CovariateInterpolator(TIMES, RAIN, names="rainfall", order="constant")
    assert cov.value(6.999) == RAIN[0]
    assert cov.value(7.0) == RAIN[1]
    assert cov.value(20.0) == RAIN[2]
    assert cov.value(-5.0) == RAIN[0]
    assert cov.value(50.0) == RAIN[-1]


def test_several_covariates_share_a_time_axis():
    values = np.column_stack([RAIN, np.linspace(20.0, 24.0, 5)])
    cov = CovariateInterpolator(TIMES, values, names=["rainfall", "temperature"])
    v = cov.value(3.5)
    assert isinstance(v, np.ndarray) and v.shape == (2,)
    np.testing.assert_allclose(v, [21.25, 20.5])
    assert cov.lookup(28.0) == {"rainfall": 18.25, "temperature": 24.0}


def test_default_names():
    assert CovariateInterpolator([0, 1], [0, 1]).names == ("x",)
    assert CovariateInterpolator([0, 1], [[0, 1], [2, 3]]).names == ("x0", "x1")


def test_series_is_read_only(rainfall):
    with pytest.raises(ValueError):
        rainfall.times[0] = 5.0
    with pytest.raises(ValueError):
        rainfall.values[0] = 5.0


def test_caller_array_is_not_aliased():
    rain = np.array(RAIN)
    cov = CovariateInterpolator(TIMES, rain)
    rain[0] = -1.0
    assert cov.value(0.0) == RAIN[0]


def test_from_dataframe():
    df = pd.DataFrame({"week": TIMES, "rain": RAIN, "temp": np.arange(5.0)})
    cov = CovariateInterpolator.from_dataframe(df, "week", "rain")
    assert cov.names == ("rain",)
    assert cov.value(7.0) == 30.5

    both = CovariateInterpolator.from_dataframe(df, "week", ["rain", "temp"], order="constant")
    assert both.lookup(10.0) == {"rain": 30.5, "temp": 1.0}

    with pytest.raises(KeyError):
        CovariateInterpolator.from_dataframe(df, "week", "humidity")


@pytest.mark.parametrize(
    "times, values, kwargs",
    [
        ([0.0], [1.0], {}),
        ([0.0, 0.0], [1.0, 2.0], {}),
        ([1.0, 0.0], [1.0, 2.0], {}),
        ([0.0, np.nan], [1.0, 2.0], {}),
        ([0.0, 1.0], [1.0, np.inf], {}),
        ([0.0, 1.0, 2.0], [1.0, 2.0], {}),
        ([0.0, 1.0], [1.0, 2.0], {"order": "cubic"}),
        ([0.0, 1.0], [1.0, 2.0], {"names": ["a", "b"]}),
        ([0.0, 1.0], [[1.0, 2.0], [3.0, 4.0]], {"names": ["a", "a"]}),
    ],
)
def test_invalid_series_rejected(times, values, kwargs):
    with pytest.raises(ValueError):
        CovariateInterpolator(times, values, **kwargs)


def test_non_finite_query_rejected(rainfall):
    with pytest.raises(ValueError):
        rainfall.value(np.nan)
