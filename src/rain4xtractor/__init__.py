"""
rain4xtractor
=============

Point rainfall extraction from CHIRPS and seasonal rainfall profiles.

The package covers two explicitly triggered stages:

1. Extraction
   ----------
   Daily CHIRPS precipitation for one coordinate and date range is read
   from the CHC server, missing days are dropped, and the remaining days
   become a canonical observation set (``id, lon, lat, date, rainfall``).

   Main entry points
   -----------------
   - :class:`RainfallFetcher`
   - :func:`clean_observations`
   - :class:`ObservationSet`

2. Profile generation
   ------------------
   A cyclic penalized spline over day-of-year (basis dimension ``k``) is fit
   to the cached observations; the in-sample curve is multiplied by a
   scaling factor and clamped at zero.

   Main entry points
   -----------------
   - :func:`fit_profile`
   - :class:`CyclicSplineSmoother`
   - :class:`ProfileResult`

:class:`RainfallSession` ties both stages together with two cached slots
that are only replaced by their own trigger, plus CSV exports.

Example
-------
    >>> from rain4xtractor import RainfallSession
    >>> with RainfallSession() as session:
    ...     session.select_location(lon=32.9, lat=-2.5)
    ...     session.set_date_range("2021-01-01", "2021-12-31")
    ...     session.trigger_fetch()
    ...     session.set_fit_parameters(k=30, scaling_factor=1.0)
    ...     session.trigger_generate()
    ...     session.export_profile("out/")
"""

from __future__ import annotations

import logging

# Public version (update in sync with pyproject.toml)
__version__ = "1.0.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .exceptions import (
    Rain4XtractorError,
    ValidationError,
    FetchError,
    NoDataError,
    ModelFitError,
)
from .config import PipelineConfig
from .models import (
    Coordinate,
    DateRange,
    FitParameters,
    RawObservation,
    ObservationRecord,
    ObservationSet,
    PredictedObservation,
    ProfileResult,
)

# ---------------------------------------------------------------------------
# Extraction stage
# ---------------------------------------------------------------------------

from .fetch import RainfallFetcher, sample_cog
from .clean import clean_observations, raw_to_frame

# ---------------------------------------------------------------------------
# Profile stage
# ---------------------------------------------------------------------------

from .profile import CyclicSplineSmoother, day_of_year, fit_profile
from .metrics import regression_metrics, aggregate_and_score

# ---------------------------------------------------------------------------
# Session, cache slots and exports
# ---------------------------------------------------------------------------

from .store import RainfallSession, ResultStore, Status, StatusLine
from .export import export_observations, export_profile

__all__ = [
    "__version__",
    # errors
    "Rain4XtractorError",
    "ValidationError",
    "FetchError",
    "NoDataError",
    "ModelFitError",
    # data model
    "PipelineConfig",
    "Coordinate",
    "DateRange",
    "FitParameters",
    "RawObservation",
    "ObservationRecord",
    "ObservationSet",
    "PredictedObservation",
    "ProfileResult",
    # extraction
    "RainfallFetcher",
    "sample_cog",
    "clean_observations",
    "raw_to_frame",
    # profile
    "CyclicSplineSmoother",
    "day_of_year",
    "fit_profile",
    "regression_metrics",
    "aggregate_and_score",
    # session
    "RainfallSession",
    "ResultStore",
    "Status",
    "StatusLine",
    "export_observations",
    "export_profile",
]
