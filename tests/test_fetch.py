# tests/test_fetch.py
import datetime as dt
import logging
import threading

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

from rain4xtractor.config import PipelineConfig
from rain4xtractor.exceptions import FetchError, NoDataError
from rain4xtractor.fetch import RainfallFetcher, sample_cog
from rain4xtractor.models import Coordinate, DateRange


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------


@pytest.fixture
def coordinate() -> Coordinate:
    return Coordinate(lon=32.9, lat=-2.5)


@pytest.fixture
def week() -> DateRange:
    return DateRange.from_iso("2021-01-01", "2021-01-07")


@pytest.fixture
def local_cog(tmp_path):
    """2x2 GeoTIFF at 0.05 deg, top-left corner at lon 30.0 / lat 0.0."""
    path = tmp_path / "chirps-v2.0.2021.01.01.tif"
    data = np.array([[1.5, 2.0], [-9999.0, 4.25]], dtype="float32")
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=2,
        width=2,
        count=1,
        dtype="float32",
        crs="EPSG:4326",
        transform=from_origin(30.0, 0.0, 0.05, 0.05),
        nodata=-9999.0,
    ) as dst:
        dst.write(data, 1)
    return str(path)


class RecordingSampler:
    """Deterministic stand-in for the remote service."""

    def __init__(self, missing_days=(), fail_on=None, exc=None):
        self.urls = []
        self.missing_days = set(missing_days)
        self.fail_on = fail_on
        self.exc = exc or OSError("connection reset")
        self._lock = threading.Lock()

    def __call__(self, url, lon, lat):
        with self._lock:
            self.urls.append(url)
        day = int(url.rsplit(".", 2)[-2])
        if self.fail_on is not None and day == self.fail_on:
            raise self.exc
        if day in self.missing_days:
            return None
        return float(day) / 2.0


# ---------------------------------------------------------------------
# RainfallFetcher with an injected sampler
# ---------------------------------------------------------------------


def test_fetch_returns_one_row_per_day_in_order(coordinate, week):
    sampler = RecordingSampler(missing_days={3})
    fetcher = RainfallFetcher(PipelineConfig(max_workers=4), sampler=sampler)

    raw = fetcher.fetch(coordinate, week)

    assert [r.date for r in raw] == list(week.days())
    assert raw[2].value is None  # gap kept, not omitted
    assert raw[0].value == pytest.approx(0.5)
    assert all((r.lon, r.lat) == (32.9, -2.5) for r in raw)
    assert len(sampler.urls) == 7


def test_fetch_builds_chc_urls(coordinate):
    fetcher = RainfallFetcher(sampler=RecordingSampler())
    url = fetcher.url_for(dt.date(2021, 3, 5))
    assert url.endswith("/global_daily/cogs/p05/2021/chirps-v2.0.2021.03.05.cog")
    assert url.startswith("https://data.chc.ucsb.edu/")


def test_fetch_logs_server_and_request(coordinate, week, caplog):
    fetcher = RainfallFetcher(sampler=RecordingSampler())
    with caplog.at_level(logging.INFO, logger="rain4xtractor.fetch"):
        fetcher.fetch(coordinate, week)
    assert any(
        "from CHC at lon=32.9000 lat=-2.5000" in rec.getMessage() for rec in caplog.records
    )


def test_fetch_all_missing_is_no_data_not_fetch_error(coordinate, week):
    fetcher = RainfallFetcher(sampler=RecordingSampler(missing_days=range(1, 8)))
    with pytest.raises(NoDataError):
        fetcher.fetch(coordinate, week)


def test_fetch_service_failure_is_fetch_error(coordinate, week):
    fetcher = RainfallFetcher(sampler=RecordingSampler(fail_on=4))
    with pytest.raises(FetchError, match="2021-01-04"):
        fetcher.fetch(coordinate, week)


def test_fetch_does_not_retry(coordinate):
    sampler = RecordingSampler(fail_on=1)
    fetcher = RainfallFetcher(PipelineConfig(max_workers=1), sampler=sampler)
    with pytest.raises(FetchError):
        fetcher.fetch(coordinate, DateRange.from_iso("2021-01-01", "2021-01-01"))
    assert len(sampler.urls) == 1


def test_fetch_honours_cancel_event(coordinate, week):
    cancel = threading.Event()
    cancel.set()
    fetcher = RainfallFetcher(sampler=RecordingSampler())
    with pytest.raises(FetchError, match="cancelled"):
        fetcher.fetch(coordinate, week, cancel=cancel)


# ---------------------------------------------------------------------
# sample_cog against a local raster
# ---------------------------------------------------------------------


def test_sample_cog_reads_pixel_values(local_cog):
    assert sample_cog(local_cog, 30.025, -0.025) == pytest.approx(1.5)
    assert sample_cog(local_cog, 30.075, -0.075) == pytest.approx(4.25)


def test_sample_cog_nodata_is_none(local_cog):
    assert sample_cog(local_cog, 30.025, -0.075) is None


def test_sample_cog_unreadable_source_is_fetch_error(tmp_path):
    with pytest.raises(FetchError):
        sample_cog(str(tmp_path / "missing.tif"), 30.0, 0.0)
