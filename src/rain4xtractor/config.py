# src/rain4xtractor/config.py
# SPDX-License-Identifier: MIT
"""
Defaults and runtime settings for rain4xtractor.

Module constants mirror the defaults of the interactive application
(date range, slider domains and steps). :class:`PipelineConfig` groups the
knobs a session or fetcher actually reads at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace as _replace
from typing import Tuple

import numpy as np

# ---------------------------------------------------------------------
# Input defaults and domains
# ---------------------------------------------------------------------

DEFAULT_START = "2021-01-01"
DEFAULT_END = "2021-12-31"

K_MIN, K_MAX, K_DEFAULT = 5, 50, 30
SCALING_MIN, SCALING_MAX, SCALING_STEP, SCALING_DEFAULT = 0.5, 2.0, 0.1, 1.0

# ---------------------------------------------------------------------
# Upstream service (CHIRPS-2.0 daily COGs on the CHC server)
# ---------------------------------------------------------------------

SERVER_NAME = "CHC"
CHC_COG_URL = (
    "https://data.chc.ucsb.edu/products/CHIRPS-2.0/global_daily/cogs/p05/"
    "{year}/chirps-v2.0.{year}.{month:02d}.{day:02d}.cog"
)
# CHIRPS encodes missing pixels as -9999; anything at or below this is missing.
CHIRPS_NODATA_THRESHOLD = -9990.0

# ---------------------------------------------------------------------
# Seasonal model
# ---------------------------------------------------------------------

SEASON_LENGTH = 365
LEAP_DAY_OF_YEAR = 366
SPLINE_DEGREE = 3
# Relative smoothing parameters searched by GCV (scaled by tr(B'B)/tr(P)).
GCV_LAMBDAS: Tuple[float, ...] = tuple(float(v) for v in np.logspace(-6, 4, 41))


@dataclass(frozen=True)
class PipelineConfig:
    """Runtime settings shared by the fetcher and the session.

    Attributes
    ----------
    url_template :
        Format string for one daily raster; receives ``year``, ``month``, ``day``.
    max_workers :
        Thread-pool width for per-day point reads.
    http_timeout :
        GDAL HTTP timeout in seconds for each remote read.
    progress :
        Show a ``tqdm`` progress bar while fetching.
    gcv_lambdas :
        Relative smoothing-parameter grid for the seasonal fit.
    """

    url_template: str = CHC_COG_URL
    max_workers: int = 8
    http_timeout: int = 60
    progress: bool = False
    gcv_lambdas: Tuple[float, ...] = field(default=GCV_LAMBDAS)

    def replace(self, **changes) -> "PipelineConfig":
        """Return a copy with *changes* applied."""
        return _replace(self, **changes)


__all__ = [
    "DEFAULT_START",
    "DEFAULT_END",
    "K_MIN",
    "K_MAX",
    "K_DEFAULT",
    "SCALING_MIN",
    "SCALING_MAX",
    "SCALING_STEP",
    "SCALING_DEFAULT",
    "SERVER_NAME",
    "CHC_COG_URL",
    "CHIRPS_NODATA_THRESHOLD",
    "SEASON_LENGTH",
    "LEAP_DAY_OF_YEAR",
    "SPLINE_DEGREE",
    "GCV_LAMBDAS",
    "PipelineConfig",
]
