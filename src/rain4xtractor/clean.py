# src/rain4xtractor/clean.py
# SPDX-License-Identifier: MIT
"""Turn raw service rows into a canonical :class:`ObservationSet`."""

from __future__ import annotations

import logging
import math
from typing import List, Sequence

import pandas as pd

from .exceptions import NoDataError
from .models import ObservationRecord, ObservationSet, RawObservation

logger = logging.getLogger(__name__)


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def raw_to_frame(raw: Sequence[RawObservation]) -> pd.DataFrame:
    """Loose table in the service's own shape: ``date, lon, lat, chirps``."""
    return pd.DataFrame(
        {
            "date": pd.to_datetime([r.date for r in raw]),
            "lon": [r.lon for r in raw],
            "lat": [r.lat for r in raw],
            "chirps": [float("nan") if _is_missing(r.value) else r.value for r in raw],
        },
        columns=["date", "lon", "lat", "chirps"],
    )


def clean_observations(raw: Sequence[RawObservation]) -> ObservationSet:
    """
    Drop missing days, number the survivors ``1..n`` and validate.

    Identifiers follow the position *after* filtering, so a gap in the raw
    series never leaves a gap in the ids. Negative values are rejected by
    :class:`ObservationRecord` rather than silently kept.

    Raises
    ------
    NoDataError
        If every raw row is missing (or there are none).
    ValidationError
        If a surviving row is malformed (negative, non-finite, out of order).
    """
    kept: List[RawObservation] = [r for r in raw if not _is_missing(r.value)]
    dropped = len(raw) - len(kept)
    if not kept:
        raise NoDataError("No data available for the selected date range.")
    if dropped:
        logger.info("Dropped %d of %d days with missing rainfall.", dropped, len(raw))

    records = tuple(
        ObservationRecord(id=i, lon=r.lon, lat=r.lat, date=r.date, rainfall=r.value)
        for i, r in enumerate(kept, start=1)
    )
    return ObservationSet(records)


__all__ = ["raw_to_frame", "clean_observations"]
