# src/rain4xtractor/export.py
# SPDX-License-Identifier: MIT
"""
CSV exports of the cached artifacts.

- :func:`export_observations` writes ``rainfall_data_<YYYY-MM-DD>.csv`` with
  ``id, lon, lat, date, rainfall``.
- :func:`export_profile` writes ``rainfall_profile_<YYYY-MM-DD>.csv`` with
  ``date, rainfall, gam_profile_scaled`` (blank on leap days).

Both refuse to write an empty file: a missing artifact raises
:class:`NoDataError` carrying the notice to show the user.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from .exceptions import NoDataError
from .models import ObservationSet, ProfileResult

logger = logging.getLogger(__name__)

MSG_NO_DOWNLOAD = "No data available to download."
MSG_NO_PROFILE_DOWNLOAD = "No profile data available to download."


def observations_filename(today: Optional[dt.date] = None) -> str:
    return f"rainfall_data_{(today or dt.date.today()).isoformat()}.csv"


def profile_filename(today: Optional[dt.date] = None) -> str:
    return f"rainfall_profile_{(today or dt.date.today()).isoformat()}.csv"


def _save_csv(df: pd.DataFrame, path: Path) -> Path:
    os.makedirs(path.parent, exist_ok=True)
    df.to_csv(path, index=False, date_format="%Y-%m-%d")
    logger.info("Wrote %d rows to %s.", len(df), path)
    return path


def export_observations(
    observations: Optional[ObservationSet],
    directory: Union[str, Path] = ".",
    *,
    today: Optional[dt.date] = None,
) -> Path:
    """Write the observation set to *directory* and return the file path."""
    if observations is None:
        raise NoDataError(MSG_NO_DOWNLOAD)
    return _save_csv(observations.to_frame(), Path(directory) / observations_filename(today))


def export_profile(
    profile: Optional[ProfileResult],
    directory: Union[str, Path] = ".",
    *,
    today: Optional[dt.date] = None,
) -> Path:
    """Write the scaled profile to *directory* and return the file path."""
    if profile is None:
        raise NoDataError(MSG_NO_PROFILE_DOWNLOAD)
    return _save_csv(profile.to_frame("export"), Path(directory) / profile_filename(today))


__all__ = [
    "MSG_NO_DOWNLOAD",
    "MSG_NO_PROFILE_DOWNLOAD",
    "observations_filename",
    "profile_filename",
    "export_observations",
    "export_profile",
]
