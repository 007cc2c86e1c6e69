# src/rain4xtractor/store.py
# SPDX-License-Identifier: MIT
"""
Two-stage, explicitly triggered rainfall pipeline.

A :class:`RainfallSession` carries everything one user works with: the
selected coordinate, the requested date range, the fit parameters, a fetcher
and a :class:`ResultStore` with two cached slots:

``current_observations``
    Replaced only by a *fetch* trigger (:meth:`RainfallSession.trigger_fetch`
    or :meth:`RainfallSession.submit_fetch`).
``current_predictions``
    Replaced only by a *generate* trigger
    (:meth:`RainfallSession.trigger_generate`), computed from whatever
    observations are cached at that moment.

Changing inputs never recomputes anything. Predictions made with an older
``k`` or an older observation set remain visible until the next generate
trigger.

Each slot remembers the input snapshot that produced it, so re-firing a
trigger with unchanged inputs returns the cached artifact. Errors are caught
at the trigger boundary, turned into a status line, and leave the slot as it
was.

Background fetches follow latest-trigger-wins: a new fetch cancels the
pending one, and a superseded fetch that still completes is discarded.
"""

from __future__ import annotations

import datetime as dt
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

import pandas as pd

from . import export
from .clean import clean_observations
from .config import DEFAULT_END, DEFAULT_START, K_DEFAULT, SCALING_DEFAULT, PipelineConfig
from .exceptions import FetchError, NoDataError, Rain4XtractorError, ValidationError
from .fetch import RainfallFetcher
from .models import (
    OBSERVATION_COLUMNS,
    PROFILE_COLUMNS,
    Coordinate,
    DateRange,
    FitParameters,
    ObservationSet,
    ProfileResult,
)
from .profile import fit_profile

logger = logging.getLogger(__name__)

MSG_FETCHING = "Fetching data... Please wait."
MSG_FETCHED = "Data successfully fetched."
MSG_NO_DATA = "No data available for the selected date range."
MSG_NO_LOCATION = "Select a location on the map first."
MSG_NO_OBSERVATIONS = "Fetch rainfall data before generating a profile."


class Status(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    READY = "ready"
    NO_DATA = "no_data"
    ERROR = "error"


@dataclass(frozen=True)
class StatusLine:
    """Pipeline state plus the user-facing message."""

    state: Status = Status.IDLE
    message: str = ""

    def __str__(self) -> str:
        return self.message


FetchKey = Tuple[Coordinate, DateRange]
GenerateKey = Tuple[int, FitParameters]


@dataclass
class ResultStore:
    """The two cached artifacts and the snapshots that produced them.

    ``observations_generation`` increases every time a fetch replaces the
    observation slot; generate snapshots refer to it so a newer observation
    set is never mistaken for the one a profile was fitted on.
    """

    current_observations: Optional[ObservationSet] = None
    current_predictions: Optional[ProfileResult] = None
    observations_key: Optional[FetchKey] = None
    observations_generation: int = 0
    predictions_key: Optional[GenerateKey] = None
    fetch_status: StatusLine = field(default_factory=StatusLine)
    profile_status: StatusLine = field(default_factory=StatusLine)


class RainfallSession:
    """Session context threaded through the fetch and generate stages.

    Parameters
    ----------
    fetcher :
        A :class:`RainfallFetcher` (or compatible object with ``fetch``).
        Defaults to one built from *config*.
    config :
        :class:`PipelineConfig`; its GCV grid is used for profile fits.
    """

    def __init__(
        self,
        fetcher: Optional[RainfallFetcher] = None,
        *,
        config: Optional[PipelineConfig] = None,
        store: Optional[ResultStore] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.fetcher = fetcher or RainfallFetcher(self.config)
        self.store = store or ResultStore()

        self.coordinate: Optional[Coordinate] = None
        self._date_inputs = (DEFAULT_START, DEFAULT_END)
        self._fit_inputs = (K_DEFAULT, SCALING_DEFAULT)

        self._lock = threading.RLock()
        self._fetch_seq = 0
        self._cancel: Optional[threading.Event] = None
        self._pending: Optional[Future] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    # -----------------------------------------------------------------
    # Inputs (never trigger recomputation)
    # -----------------------------------------------------------------

    def select_location(self, lon: float, lat: float) -> Coordinate:
        """Replace the active coordinate (e.g. from a map click)."""
        self.coordinate = Coordinate(lon, lat)
        logger.debug("Selected location lon=%.4f lat=%.4f.", lon, lat)
        return self.coordinate

    def set_date_range(self, start, end) -> None:
        """Record the requested range; it is validated when a fetch fires."""
        self._date_inputs = (start, end)

    def set_fit_parameters(
        self,
        k: Optional[int] = None,
        scaling_factor: Optional[float] = None,
    ) -> None:
        """Record fit inputs; they are validated when a generate fires."""
        cur_k, cur_f = self._fit_inputs
        self._fit_inputs = (
            cur_k if k is None else k,
            cur_f if scaling_factor is None else scaling_factor,
        )

    @property
    def date_range(self) -> DateRange:
        return DateRange(*self._date_inputs)

    @property
    def fit_parameters(self) -> FitParameters:
        return FitParameters(*self._fit_inputs)

    # -----------------------------------------------------------------
    # Fetch stage
    # -----------------------------------------------------------------

    def _fetch_request(self) -> FetchKey:
        if self.coordinate is None:
            raise ValidationError(MSG_NO_LOCATION)
        return self.coordinate, self.date_range

    def _begin_fetch(self) -> Tuple[int, threading.Event]:
        with self._lock:
            if self._cancel is not None:
                self._cancel.set()
            if self._pending is not None and self._pending.cancel():
                logger.info("Cancelled pending fetch #%d.", self._fetch_seq)
            self._fetch_seq += 1
            self._cancel = threading.Event()
            self.store.fetch_status = StatusLine(Status.FETCHING, MSG_FETCHING)
            return self._fetch_seq, self._cancel

    def _cached_fetch(self, key: FetchKey) -> bool:
        with self._lock:
            if self.store.current_observations is not None and self.store.observations_key == key:
                self.store.fetch_status = StatusLine(Status.READY, MSG_FETCHED)
                logger.info("Fetch inputs unchanged; reusing cached observations.")
                return True
        return False

    def _run_fetch(self, seq: int, key: FetchKey, cancel: threading.Event) -> bool:
        coordinate, date_range = key
        observations: Optional[ObservationSet] = None
        try:
            raw = self.fetcher.fetch(coordinate, date_range, cancel=cancel)
            observations = clean_observations(raw)
        except NoDataError:
            status = StatusLine(Status.NO_DATA, MSG_NO_DATA)
        except (FetchError, ValidationError) as e:
            status = StatusLine(Status.ERROR, f"Error fetching data: {e}")
        else:
            status = StatusLine(Status.READY, MSG_FETCHED)

        with self._lock:
            if seq != self._fetch_seq:
                logger.warning("Discarding result of superseded fetch #%d.", seq)
                return False
            self.store.fetch_status = status
            self._pending = None
            if observations is None:
                logger.warning("Fetch #%d failed: %s", seq, status.message)
                return False
            self.store.current_observations = observations
            self.store.observations_key = key
            self.store.observations_generation += 1
        logger.info("Fetch #%d cached %d observations.", seq, len(observations))
        return True

    def trigger_fetch(self, *, force: bool = False) -> bool:
        """Fetch and clean synchronously; replaces ``current_observations`` only.

        Returns ``True`` when the observation slot holds data for the current
        inputs, ``False`` otherwise (see :attr:`ResultStore.fetch_status`).
        """
        try:
            key = self._fetch_request()
        except ValidationError as e:
            self.store.fetch_status = StatusLine(Status.ERROR, str(e))
            return False
        seq, cancel = self._begin_fetch()
        if not force and self._cached_fetch(key):
            return True
        return self._run_fetch(seq, key, cancel)

    def submit_fetch(self, *, force: bool = False) -> "Future[bool]":
        """Start a fetch on the session's worker and return its future.

        The status line reads "fetching" immediately. A later submit (or
        :meth:`trigger_fetch`) supersedes this one.
        """
        try:
            key = self._fetch_request()
        except ValidationError as e:
            self.store.fetch_status = StatusLine(Status.ERROR, str(e))
            return _done(False)
        seq, cancel = self._begin_fetch()
        if not force and self._cached_fetch(key):
            return _done(True)

        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rain4x-fetch")
            future = self._executor.submit(self._run_fetch, seq, key, cancel)
            self._pending = future
        return future

    # -----------------------------------------------------------------
    # Generate stage
    # -----------------------------------------------------------------

    def trigger_generate(self, *, force: bool = False) -> bool:
        """Fit the profile from the cached observations and current parameters.

        Replaces ``current_predictions`` only. On any error the previous
        predictions are kept and the profile status carries the message.
        """
        try:
            params = self.fit_parameters
            if self.coordinate is None:
                raise ValidationError(MSG_NO_LOCATION)
            with self._lock:
                observations = self.store.current_observations
                generation = self.store.observations_generation
            if observations is None:
                raise ValidationError(MSG_NO_OBSERVATIONS)

            key = (generation, params)
            if not force and self.store.predictions_key == key:
                logger.info("Fit inputs unchanged; reusing cached profile.")
                result = self.store.current_predictions
            else:
                result = fit_profile(observations, params, lambdas=self.config.gcv_lambdas)
        except ValidationError as e:
            self.store.profile_status = StatusLine(Status.ERROR, str(e))
            return False
        except Rain4XtractorError as e:
            logger.warning("Profile generation failed: %s", e)
            self.store.profile_status = StatusLine(
                Status.ERROR, f"Error generating profile: {e}"
            )
            return False

        with self._lock:
            self.store.current_predictions = result
            self.store.predictions_key = key
            self.store.profile_status = StatusLine(
                Status.READY,
                f"Profile generated (k={params.k}, scaling={params.scaling_factor:g}).",
            )
        logger.info(
            "Profile k=%d scaling=%g over %d days (edf=%.2f).",
            params.k, params.scaling_factor, result.n_fit, result.edf,
        )
        return True

    # -----------------------------------------------------------------
    # Views and exports
    # -----------------------------------------------------------------

    def observations_frame(self) -> pd.DataFrame:
        """Cached observations as a table; empty (with columns) if none."""
        obs = self.store.current_observations
        if obs is None:
            return pd.DataFrame(columns=OBSERVATION_COLUMNS)
        return obs.to_frame()

    def profile_frame(self) -> pd.DataFrame:
        """Cached profile as ``date, rainfall, gam_profile_scaled``; empty if none."""
        profile = self.store.current_predictions
        if profile is None:
            return pd.DataFrame(columns=PROFILE_COLUMNS)
        return profile.to_frame()

    def export_observations(
        self, directory: Union[str, Path] = ".", *, today: Optional[dt.date] = None
    ) -> Path:
        return export.export_observations(self.store.current_observations, directory, today=today)

    def export_profile(
        self, directory: Union[str, Path] = ".", *, today: Optional[dt.date] = None
    ) -> Path:
        return export.export_profile(self.store.current_predictions, directory, today=today)

    def close(self) -> None:
        """Cancel any pending fetch and stop the worker."""
        with self._lock:
            if self._cancel is not None:
                self._cancel.set()
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True, cancel_futures=True)

    def __enter__(self) -> "RainfallSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _done(value: bool) -> "Future[bool]":
    fut: Future = Future()
    fut.set_result(value)
    return fut


__all__ = [
    "Status",
    "StatusLine",
    "ResultStore",
    "RainfallSession",
    "MSG_FETCHING",
    "MSG_FETCHED",
    "MSG_NO_DATA",
    "MSG_NO_LOCATION",
    "MSG_NO_OBSERVATIONS",
]
