# src/rain4xtractor/models.py
# SPDX-License-Identifier: MIT
"""
Typed records for the rainfall retrieval and profile pipeline.

All containers are frozen dataclasses that validate themselves on
construction, so a malformed record or observation set can never be
created silently:

- :class:`Coordinate` and :class:`DateRange` describe a request.
- :class:`RawObservation` is one day as returned by the remote service.
- :class:`ObservationRecord` / :class:`ObservationSet` are the cleaned,
  canonical observations (dense 1-based ids, non-null rainfall).
- :class:`FitParameters` bounds the seasonal fit inputs.
- :class:`PredictedObservation` / :class:`ProfileResult` hold the fitted
  seasonal profile next to the observed series.

Tabular views (``to_frame``) use the column names of the CSV exports.
"""

from __future__ import annotations

import datetime as dt
import math
import numbers
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .config import (
    DEFAULT_END,
    DEFAULT_START,
    K_DEFAULT,
    K_MAX,
    K_MIN,
    SCALING_DEFAULT,
    SCALING_MAX,
    SCALING_MIN,
    SCALING_STEP,
)
from .exceptions import NoDataError, ValidationError

DateLike = Union[str, dt.date, dt.datetime, pd.Timestamp]

OBSERVATION_COLUMNS = ["id", "lon", "lat", "date", "rainfall"]
PROFILE_COLUMNS = ["date", "rainfall", "gam_profile_scaled"]


def _to_date(value: DateLike) -> dt.date:
    """Coerce ISO strings, datetimes and timestamps to :class:`datetime.date`."""
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    try:
        return dt.date.fromisoformat(str(value))
    except ValueError as e:
        raise ValidationError(f"Invalid ISO date: {value!r}") from e


# ---------------------------------------------------------------------
# Request side
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class Coordinate:
    """A point location in decimal degrees (WGS84)."""

    lon: float
    lat: float

    def __post_init__(self) -> None:
        try:
            lon, lat = float(self.lon), float(self.lat)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Coordinate values must be numbers: {e}") from e
        if not (math.isfinite(lon) and math.isfinite(lat)):
            raise ValidationError("Coordinate values must be finite.")
        if not -180.0 <= lon <= 180.0:
            raise ValidationError(f"Longitude {lon} is outside [-180, 180].")
        if not -90.0 <= lat <= 90.0:
            raise ValidationError(f"Latitude {lat} is outside [-90, 90].")
        object.__setattr__(self, "lon", lon)
        object.__setattr__(self, "lat", lat)


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar range ``[start, end]``."""

    start: dt.date
    end: dt.date

    def __post_init__(self) -> None:
        start, end = _to_date(self.start), _to_date(self.end)
        if start > end:
            raise ValidationError(
                f"Start date {start.isoformat()} is after end date {end.isoformat()}."
            )
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @classmethod
    def from_iso(cls, start: str = DEFAULT_START, end: str = DEFAULT_END) -> "DateRange":
        return cls(_to_date(start), _to_date(end))

    def __len__(self) -> int:
        return (self.end - self.start).days + 1

    def days(self) -> Iterator[dt.date]:
        """Yield every calendar day in the range, ascending."""
        for offset in range(len(self)):
            yield self.start + dt.timedelta(days=offset)


@dataclass(frozen=True)
class FitParameters:
    """User-adjustable inputs of the seasonal fit.

    Attributes
    ----------
    k :
        Spline complexity, the basis dimension of the seasonal curve
        (integer in ``[5, 50]``).
    scaling_factor :
        Multiplier applied to the fitted curve before clamping at zero
        (``[0.5, 2.0]`` in steps of ``0.1``).
    """

    k: int = K_DEFAULT
    scaling_factor: float = SCALING_DEFAULT

    def __post_init__(self) -> None:
        k = self.k
        if (
            isinstance(k, bool)
            or not isinstance(k, numbers.Real)
            or not math.isfinite(k)
            or int(k) != k
        ):
            raise ValidationError(f"Spline complexity k must be an integer, got {k!r}.")
        k = int(k)
        if not K_MIN <= k <= K_MAX:
            raise ValidationError(f"Spline complexity k={k} is outside [{K_MIN}, {K_MAX}].")

        factor = self.scaling_factor
        if (
            isinstance(factor, bool)
            or not isinstance(factor, numbers.Real)
            or not math.isfinite(factor)
        ):
            raise ValidationError(f"Scaling factor must be a number, got {factor!r}.")
        # Tolerate slider steps such as 0.1 * 20 == 2.0000000000000004.
        if not (SCALING_MIN - 1e-9) <= factor <= (SCALING_MAX + 1e-9):
            raise ValidationError(
                f"Scaling factor {factor} is outside [{SCALING_MIN}, {SCALING_MAX}]."
            )
        steps = round((factor - SCALING_MIN) / SCALING_STEP)
        if abs(SCALING_MIN + steps * SCALING_STEP - factor) > 1e-6:
            raise ValidationError(
                f"Scaling factor {factor} is not a multiple of {SCALING_STEP} "
                f"from {SCALING_MIN}."
            )
        object.__setattr__(self, "k", k)
        object.__setattr__(self, "scaling_factor", round(SCALING_MIN + steps * SCALING_STEP, 10))


# ---------------------------------------------------------------------
# Observations
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class RawObservation:
    """One day as delivered by the data source; ``value`` may be missing."""

    date: dt.date
    lon: float
    lat: float
    value: Optional[float] = None


@dataclass(frozen=True)
class ObservationRecord:
    """A cleaned daily observation with a 1-based identifier."""

    id: int
    lon: float
    lat: float
    date: dt.date
    rainfall: float

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or int(self.id) != self.id or int(self.id) < 1:
            raise ValidationError(f"Record id must be a positive integer, got {self.id!r}.")
        if self.rainfall is None:
            raise ValidationError(f"Record {self.id} has no rainfall value.")
        rainfall = float(self.rainfall)
        if not math.isfinite(rainfall):
            raise ValidationError(f"Record {self.id} has a non-finite rainfall value.")
        if rainfall < 0.0:
            raise ValidationError(f"Record {self.id} has negative rainfall ({rainfall}).")
        object.__setattr__(self, "id", int(self.id))
        object.__setattr__(self, "lon", float(self.lon))
        object.__setattr__(self, "lat", float(self.lat))
        object.__setattr__(self, "date", _to_date(self.date))
        object.__setattr__(self, "rainfall", rainfall)


@dataclass(frozen=True)
class ObservationSet:
    """Ordered, non-empty set of :class:`ObservationRecord`.

    Invariants enforced at construction:

    - at least one record (an empty set raises :class:`NoDataError`);
    - identifiers are exactly ``1..n`` in order;
    - dates are strictly ascending.
    """

    records: Tuple[ObservationRecord, ...]

    def __post_init__(self) -> None:
        records = tuple(self.records)
        if not records:
            raise NoDataError("No data available for the selected date range.")
        for position, rec in enumerate(records, start=1):
            if not isinstance(rec, ObservationRecord):
                raise ValidationError(f"Expected ObservationRecord, got {type(rec).__name__}.")
            if rec.id != position:
                raise ValidationError(
                    f"Identifiers must be dense and 1-based: position {position} has id {rec.id}."
                )
        for prev, cur in zip(records, records[1:]):
            if cur.date <= prev.date:
                raise ValidationError(
                    f"Dates must be strictly ascending ({prev.date} then {cur.date})."
                )
        object.__setattr__(self, "records", records)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[ObservationRecord]:
        return iter(self.records)

    @property
    def start(self) -> dt.date:
        return self.records[0].date

    @property
    def end(self) -> dt.date:
        return self.records[-1].date

    def to_frame(self) -> pd.DataFrame:
        """Canonical table with columns ``id, lon, lat, date, rainfall``."""
        df = pd.DataFrame(
            {
                "id": [r.id for r in self.records],
                "lon": [r.lon for r in self.records],
                "lat": [r.lat for r in self.records],
                "date": pd.to_datetime([r.date for r in self.records]),
                "rainfall": [r.rainfall for r in self.records],
            },
            columns=OBSERVATION_COLUMNS,
        )
        return df

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "ObservationSet":
        """Validate a canonical table back into an :class:`ObservationSet`."""
        missing = [c for c in OBSERVATION_COLUMNS if c not in df.columns]
        if missing:
            raise ValidationError(f"Observation table is missing columns: {missing}")
        dates = pd.to_datetime(df["date"], errors="coerce")
        if dates.isna().any():
            raise ValidationError("Observation table contains invalid dates.")
        rainfall = pd.to_numeric(df["rainfall"], errors="coerce")
        records = []
        for rid, lon, lat, day, value in zip(df["id"], df["lon"], df["lat"], dates, rainfall):
            records.append(
                ObservationRecord(
                    id=rid,
                    lon=lon,
                    lat=lat,
                    date=day,
                    rainfall=None if pd.isna(value) else value,
                )
            )
        return cls(tuple(records))


# ---------------------------------------------------------------------
# Profile output
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class PredictedObservation:
    """Observed rainfall next to the seasonal profile for the same day.

    ``profile`` is the raw fitted value and ``profile_scaled`` the value after
    scaling and clamping. Both are ``None`` on day-of-year 366, which is
    excluded from the fit.
    """

    date: dt.date
    rainfall: float
    day_of_year: int
    profile: Optional[float]
    profile_scaled: Optional[float]

    def __post_init__(self) -> None:
        if self.profile_scaled is not None and not self.profile_scaled >= 0.0:
            raise ValidationError(
                f"Scaled profile must be non-negative, got {self.profile_scaled} on {self.date}."
            )


@dataclass(frozen=True)
class ProfileResult:
    """Outcome of one seasonal fit.

    Attributes
    ----------
    predictions :
        One :class:`PredictedObservation` per input record, input order.
    params :
        The :class:`FitParameters` used.
    n_fit :
        Number of records used for fitting (day-of-year 366 excluded).
    lambda_ :
        Smoothing parameter selected by GCV.
    edf :
        Effective degrees of freedom of the fitted curve.
    ssr :
        In-sample sum of squared residuals of the *unscaled* fit.
    metrics :
        In-sample regression metrics of the scaled profile
        (see :func:`rain4xtractor.metrics.regression_metrics`).
    """

    predictions: Tuple[PredictedObservation, ...]
    params: FitParameters
    n_fit: int
    lambda_: float
    edf: float
    ssr: float
    metrics: Dict[str, float] = field(default_factory=dict, compare=False)

    def __len__(self) -> int:
        return len(self.predictions)

    def __iter__(self) -> Iterator[PredictedObservation]:
        return iter(self.predictions)

    def to_frame(self, columns: str = "export") -> pd.DataFrame:
        """Tabular view.

        ``columns="export"`` gives ``date, rainfall, gam_profile_scaled``;
        ``columns="full"`` adds ``day_of_year`` and the unscaled ``gam_profile``.
        """
        if columns not in {"export", "full"}:
            raise ValueError("columns must be 'export' or 'full'.")
        df = pd.DataFrame(
            {
                "date": pd.to_datetime([p.date for p in self.predictions]),
                "rainfall": [p.rainfall for p in self.predictions],
                "day_of_year": [p.day_of_year for p in self.predictions],
                "gam_profile": _nullable(p.profile for p in self.predictions),
                "gam_profile_scaled": _nullable(p.profile_scaled for p in self.predictions),
            }
        )
        if columns == "export":
            return df[PROFILE_COLUMNS]
        return df[["date", "day_of_year", "rainfall", "gam_profile", "gam_profile_scaled"]]


def _nullable(values) -> np.ndarray:
    return np.array([np.nan if v is None else v for v in values], dtype=float)


__all__ = [
    "OBSERVATION_COLUMNS",
    "PROFILE_COLUMNS",
    "Coordinate",
    "DateRange",
    "FitParameters",
    "RawObservation",
    "ObservationRecord",
    "ObservationSet",
    "PredictedObservation",
    "ProfileResult",
]
