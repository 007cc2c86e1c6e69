# src/rain4xtractor/fetch.py
# SPDX-License-Identifier: MIT
"""
Point retrieval of daily CHIRPS precipitation.

The CHC server publishes one Cloud-Optimized GeoTIFF per day. For a point
query only the tile covering the coordinate is needed, so each day is read
with ``rasterio`` over HTTP range requests instead of downloading the whole
global raster. Days are read concurrently and returned in date order.

Runtime dependencies
--------------------
- rasterio (GDAL ``/vsicurl/`` access to the remote COGs)
- tqdm (optional progress display, controlled by ``progress=``)

The network access is isolated in a *sampler* callable
``(url, lon, lat) -> Optional[float]``; :class:`RainfallFetcher` accepts any
replacement, which is how tests run without a network.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

import numpy as np
import rasterio
from rasterio.errors import RasterioError
from tqdm.auto import tqdm

from .config import CHIRPS_NODATA_THRESHOLD, SERVER_NAME, PipelineConfig
from .exceptions import FetchError, NoDataError
from .models import Coordinate, DateRange, RawObservation

logger = logging.getLogger(__name__)

Sampler = Callable[[str, float, float], Optional[float]]


def sample_cog(url: str, lon: float, lat: float, *, timeout: int = 60) -> Optional[float]:
    """Read the pixel value under ``(lon, lat)`` from a remote raster.

    Returns ``None`` for masked, nodata or sentinel pixels (ocean, outside
    the CHIRPS latitude band).

    Raises
    ------
    FetchError
        If the raster cannot be opened or read.
    """
    env = {
        "GDAL_HTTP_TIMEOUT": str(int(timeout)),
        "GDAL_DISABLE_READDIR_ON_OPEN": "EMPTY_DIR",
        "CPL_VSIL_CURL_ALLOWED_EXTENSIONS": ".cog,.tif",
    }
    try:
        with rasterio.Env(**env):
            with rasterio.open(url) as src:
                value = next(src.sample([(lon, lat)], masked=True))[0]
                nodata = src.nodata
    except RasterioError as e:
        raise FetchError(f"{url}: {e}") from e

    if np.ma.is_masked(value):
        return None
    value = float(value)
    if not np.isfinite(value) or value <= CHIRPS_NODATA_THRESHOLD:
        return None
    if nodata is not None and value == float(nodata):
        return None
    return value


class RainfallFetcher:
    """Retrieve one :class:`RawObservation` per calendar day at a point.

    Parameters
    ----------
    config :
        :class:`PipelineConfig` providing the URL template, worker count,
        HTTP timeout and progress flag.
    sampler :
        Callable ``(url, lon, lat) -> Optional[float]``. Defaults to
        :func:`sample_cog`.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        *,
        sampler: Optional[Sampler] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        if sampler is None:
            timeout = self.config.http_timeout

            def sampler(url: str, lon: float, lat: float) -> Optional[float]:
                return sample_cog(url, lon, lat, timeout=timeout)

        self.sampler = sampler

    def url_for(self, day) -> str:
        return self.config.url_template.format(year=day.year, month=day.month, day=day.day)

    def fetch(
        self,
        coordinate: Coordinate,
        date_range: DateRange,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> List[RawObservation]:
        """
        Fetch the daily series for *coordinate* over *date_range*.

        Missing days are kept with ``value=None``. No retries are attempted.

        Parameters
        ----------
        cancel :
            Optional event; once set, pending day reads are cancelled and
            :class:`FetchError` is raised.

        Raises
        ------
        FetchError
            On any network or service failure (or cancellation).
        NoDataError
            If the service has no usable value for any day in the range.
        """
        days = list(date_range.days())
        lon, lat = coordinate.lon, coordinate.lat
        logger.info(
            "Fetching %d days of CHIRPS rainfall from %s at lon=%.4f lat=%.4f (%s .. %s).",
            len(days), SERVER_NAME, lon, lat, date_range.start, date_range.end,
        )

        values: List[Optional[float]] = []
        with ThreadPoolExecutor(max_workers=max(1, int(self.config.max_workers))) as pool:
            futures: List[Future] = [
                pool.submit(self.sampler, self.url_for(day), lon, lat) for day in days
            ]
            try:
                for day, fut in tqdm(
                    zip(days, futures),
                    total=len(days),
                    desc="CHIRPS",
                    unit="day",
                    disable=not self.config.progress,
                ):
                    if cancel is not None and cancel.is_set():
                        raise FetchError("Fetch cancelled.")
                    try:
                        values.append(fut.result())
                    except FetchError:
                        raise
                    except Exception as e:
                        raise FetchError(f"{day.isoformat()}: {e}") from e
            except FetchError:
                for pending in futures:
                    pending.cancel()
                raise

        raw = [
            RawObservation(date=day, lon=lon, lat=lat, value=val)
            for day, val in zip(days, values)
        ]
        usable = sum(v is not None for v in values)
        if usable == 0:
            raise NoDataError("No data available for the selected date range.")
        logger.info("Fetched %d days (%d with values).", len(raw), usable)
        return raw


__all__ = ["Sampler", "sample_cog", "RainfallFetcher"]
