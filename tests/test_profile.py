# tests/test_profile.py
import datetime as dt

import numpy as np
import pandas as pd
import pytest

from rain4xtractor.exceptions import ModelFitError
from rain4xtractor.metrics import sum_squared_residuals
from rain4xtractor.models import FitParameters, ObservationRecord, ObservationSet
from rain4xtractor.profile import CyclicSplineSmoother, day_of_year, fit_profile


# ---------------------------------------------------------------------
# Synthetic seasonal data
# ---------------------------------------------------------------------


def _seasonal_set(start: str, end: str, noise: float = 0.3, seed: int = 0) -> ObservationSet:
    """Two-harmonic seasonal cycle (always positive) with small noise."""
    dates = pd.date_range(start, end, freq="D")
    x = 2.0 * np.pi * (dates.dayofyear.to_numpy() - 1) / 365.0
    rng = np.random.default_rng(seed)
    values = 8.0 + 4.0 * np.sin(x) + 3.0 * np.sin(3.0 * x) + noise * rng.normal(size=x.size)
    values = np.clip(values, 0.0, None)
    return ObservationSet(
        tuple(
            ObservationRecord(id=i, lon=32.9, lat=-2.5, date=d, rainfall=v)
            for i, (d, v) in enumerate(zip(dates, values), start=1)
        )
    )


@pytest.fixture
def year_2021() -> ObservationSet:
    return _seasonal_set("2021-01-01", "2021-12-31")


@pytest.fixture
def year_2020() -> ObservationSet:
    return _seasonal_set("2020-01-01", "2020-12-31")


@pytest.fixture
def sparse_rain() -> ObservationSet:
    """Mostly dry year with one wet spell; the raw fit can dip below zero."""
    dates = pd.date_range("2021-01-01", "2021-12-31", freq="D")
    values = np.zeros(dates.size)
    values[100:115] = 40.0
    return ObservationSet(
        tuple(
            ObservationRecord(id=i, lon=0.0, lat=0.0, date=d, rainfall=v)
            for i, (d, v) in enumerate(zip(dates, values), start=1)
        )
    )


# ---------------------------------------------------------------------
# Seasonal index
# ---------------------------------------------------------------------


def test_day_of_year_bounds():
    doy = day_of_year([dt.date(2021, 1, 1), dt.date(2021, 12, 31), dt.date(2020, 12, 31)])
    assert doy.tolist() == [1, 365, 366]


# ---------------------------------------------------------------------
# fit_profile
# ---------------------------------------------------------------------


def test_profile_full_year_shape_and_order(year_2021):
    result = fit_profile(year_2021, FitParameters(k=30, scaling_factor=1.0))

    assert len(result) == 365
    assert result.n_fit == 365
    assert [p.date for p in result] == [r.date for r in year_2021]
    assert [p.rainfall for p in result] == [r.rainfall for r in year_2021]
    assert all(p.profile_scaled is not None and p.profile_scaled >= 0.0 for p in result)
    # A smooth two-harmonic signal should be recovered closely.
    assert result.metrics["NSE"] > 0.9
    assert 0.0 < result.edf <= 30.0


def test_profile_leap_day_is_kept_but_unpredicted(year_2020):
    result = fit_profile(year_2020, FitParameters(k=30))

    assert len(result) == 366
    assert result.n_fit == 365
    last = result.predictions[-1]
    assert last.date == dt.date(2020, 12, 31)
    assert last.day_of_year == 366
    assert last.profile is None and last.profile_scaled is None
    # 29 February is day 60 and is fitted normally.
    feb29 = result.predictions[59]
    assert feb29.date == dt.date(2020, 2, 29)
    assert feb29.profile_scaled is not None

    df = result.to_frame()
    assert list(df.columns) == ["date", "rainfall", "gam_profile_scaled"]
    assert np.isnan(df["gam_profile_scaled"].iloc[-1])
    assert df["rainfall"].notna().all()


def test_profile_scales_then_clamps(sparse_rain):
    for factor in (0.5, 1.0, 1.3, 2.0):
        result = fit_profile(sparse_rain, FitParameters(k=50, scaling_factor=factor))
        for p in result:
            assert p.profile_scaled >= 0.0
            assert p.profile_scaled == pytest.approx(max(p.profile * factor, 0.0))


def test_profile_scaling_multiplies_positive_values(year_2021):
    base = fit_profile(year_2021, FitParameters(k=20, scaling_factor=1.0))
    doubled = fit_profile(year_2021, FitParameters(k=20, scaling_factor=2.0))
    for a, b in zip(base, doubled):
        assert b.profile == pytest.approx(a.profile)
        assert b.profile_scaled == pytest.approx(2.0 * a.profile_scaled)


def test_profile_is_deterministic(year_2021):
    params = FitParameters(k=25, scaling_factor=1.2)
    first = fit_profile(year_2021, params)
    second = fit_profile(year_2021, params)
    assert first.predictions == second.predictions
    assert first.lambda_ == second.lambda_


def test_larger_k_fits_at_least_as_well(year_2021):
    smooth = fit_profile(year_2021, FitParameters(k=5))
    flexible = fit_profile(year_2021, FitParameters(k=50))
    assert flexible.ssr <= smooth.ssr
    assert flexible.edf > smooth.edf


def _random_year(kind: str, seed: int) -> ObservationSet:
    dates = pd.date_range("2021-01-01", "2021-12-31", freq="D")
    rng = np.random.default_rng(seed)
    if kind == "exponential":
        values = rng.exponential(5.0, size=dates.size)
    elif kind == "sparse":
        wet = rng.random(dates.size) < 0.15
        values = np.where(wet, rng.exponential(20.0, size=dates.size), 0.0)
    else:
        values = np.abs(rng.normal(0.0, 1.0, size=dates.size))
    return ObservationSet(
        tuple(
            ObservationRecord(id=i, lon=0.0, lat=0.0, date=d, rainfall=v)
            for i, (d, v) in enumerate(zip(dates, values), start=1)
        )
    )


@pytest.mark.parametrize("kind", ["exponential", "sparse", "noise"])
def test_larger_k_never_fits_worse_on_rough_series(kind):
    for seed in range(40):
        obs = _random_year(kind, seed)
        smooth = fit_profile(obs, FitParameters(k=5))
        flexible = fit_profile(obs, FitParameters(k=50))
        assert flexible.ssr <= smooth.ssr, (seed, smooth.ssr, flexible.ssr)


def test_multiple_years_collapse_onto_one_cycle():
    two_years = _seasonal_set("2021-01-01", "2022-12-31")
    result = fit_profile(two_years, FitParameters(k=30))
    by_doy = {}
    for p in result:
        by_doy.setdefault(p.day_of_year, []).append(p.profile)
    assert len(by_doy) == 365
    assert all(len(v) == 2 and np.ptp(v) < 1e-9 for v in by_doy.values())


def test_underdetermined_fit_raises():
    short = _seasonal_set("2021-01-01", "2021-01-10")
    with pytest.raises(ModelFitError):
        fit_profile(short, FitParameters(k=30))
    # Enough distinct days for the smallest basis.
    assert len(fit_profile(short, FitParameters(k=5))) == 10


def test_only_leap_day_cannot_be_fitted():
    obs = ObservationSet(
        (ObservationRecord(id=1, lon=0.0, lat=0.0, date="2020-12-31", rainfall=2.0),)
    )
    with pytest.raises(ModelFitError):
        fit_profile(obs, FitParameters(k=5))


# ---------------------------------------------------------------------
# CyclicSplineSmoother
# ---------------------------------------------------------------------


def test_smoother_is_cyclic_across_year_end(year_2021):
    doy = np.arange(1, 366)
    y = np.array([r.rainfall for r in year_2021])
    smoother = CyclicSplineSmoother(k=20).fit(doy, y)

    # Day 365 and day 1 are neighbours on the cycle.
    end, start = smoother.predict([365, 1])
    step = abs(smoother.predict([2])[0] - start)
    assert abs(end - start) < 5.0 * step + 0.5


def test_smoother_constant_series_is_flat():
    doy = np.arange(1, 366)
    smoother = CyclicSplineSmoother(k=10).fit(doy, np.full(doy.size, 3.0))
    np.testing.assert_allclose(smoother.predict(doy), 3.0, atol=1e-6)
    assert sum_squared_residuals(np.full(doy.size, 3.0), smoother.predict(doy)) < 1e-6


def test_smoother_relaxes_smoothing_to_meet_rss_ceiling():
    doy = np.arange(1, 366)
    y = 5.0 + np.random.default_rng(3).normal(size=doy.size)
    free = CyclicSplineSmoother(k=20).fit(doy, y)
    least_squares = CyclicSplineSmoother(k=20, lambdas=[]).fit(doy, y)
    assert least_squares.lambda_ == 0.0
    assert least_squares.rss_ < free.rss_

    ceiling = 0.5 * (least_squares.rss_ + free.rss_)
    capped = CyclicSplineSmoother(k=20).fit(doy, y, max_rss=ceiling)
    assert capped.rss_ <= ceiling
    assert capped.lambda_ < free.lambda_
    assert capped.edf_ > free.edf_


def test_smoother_predict_before_fit_raises():
    with pytest.raises(ModelFitError):
        CyclicSplineSmoother(k=10).predict([1, 2, 3])
