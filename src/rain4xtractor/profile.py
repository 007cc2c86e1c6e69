# src/rain4xtractor/profile.py
# SPDX-License-Identifier: MIT
"""
Seasonal rainfall profile from a daily observation set.

Day-of-year is the only covariate, so every year in the observation set
collapses onto one cyclic 365-day curve. The curve is a penalized regression
spline:

- basis: ``k`` periodic cubic B-splines on equally spaced knots over one
  season (:class:`sklearn.preprocessing.SplineTransformer` with
  ``extrapolation="periodic"``), so day 365 joins smoothly onto day 1;
- penalty: squared cyclic second differences of the coefficients
  (a P-spline penalty; it leaves the seasonal mean unpenalized);
- smoothing parameter: generalized cross-validation over a fixed grid, so
  fits are deterministic.

``k`` bounds the basis dimension: a larger ``k`` allows more local
curvature, a smaller one forces a smoother curve. A fit with ``k`` above the
minimum is never allowed a larger residual sum of squares than the
minimum-``k`` fit on the same data; when GCV would smooth past that point
the smoothing parameter is relaxed.

Leap days (day-of-year 366) are excluded from the fitting input to keep the
seasonal domain at 365 positions. They stay in the output with no profile
value.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.preprocessing import SplineTransformer

from .config import GCV_LAMBDAS, K_DEFAULT, K_MIN, LEAP_DAY_OF_YEAR, SEASON_LENGTH, SPLINE_DEGREE
from .exceptions import ModelFitError
from .metrics import regression_metrics, sum_squared_residuals
from .models import FitParameters, ObservationSet, PredictedObservation, ProfileResult

logger = logging.getLogger(__name__)


def day_of_year(dates: Iterable) -> np.ndarray:
    """Calendar day-of-year (1..366) for each date."""
    return pd.DatetimeIndex(pd.to_datetime(list(dates))).dayofyear.to_numpy(dtype=int)


def _cyclic_difference_penalty(m: int, order: int = 2) -> np.ndarray:
    """``D'D`` for the cyclic difference operator of *order* on *m* coefficients."""
    eye = np.eye(m)
    step = np.roll(eye, 1, axis=1) - eye
    d = eye
    for _ in range(order):
        d = step @ d
    return d.T @ d


class CyclicSplineSmoother:
    """Penalized cyclic cubic spline over day-of-year.

    Parameters
    ----------
    k :
        Number of basis functions (the maximum degrees of freedom).
    lambdas :
        Relative smoothing parameters searched by GCV. Each is multiplied by
        ``tr(B'B) / tr(P)`` so the grid is independent of sample size.

    Attributes
    ----------
    coef_ : ndarray of shape (k,)
    lambda_ : float
        Selected (absolute) smoothing parameter.
    edf_ : float
        Effective degrees of freedom, ``tr(H)``.
    gcv_ : float
        GCV score at ``lambda_``.
    rss_ : float
        Residual sum of squares of the selected fit.
    n_fit_ : int
        Number of fitting rows.
    """

    def __init__(self, k: int = K_DEFAULT, *, lambdas: Sequence[float] = GCV_LAMBDAS) -> None:
        self.k = int(k)
        self.lambdas = tuple(float(v) for v in lambdas)
        knots = np.linspace(0.0, float(SEASON_LENGTH), self.k + 1).reshape(-1, 1)
        self._basis = SplineTransformer(
            degree=SPLINE_DEGREE,
            knots=knots,
            extrapolation="periodic",
            include_bias=True,
        )

    def _design(self, doy: np.ndarray) -> np.ndarray:
        x = (np.asarray(doy, dtype=float) - 1.0).reshape(-1, 1)
        return self._basis.transform(x)

    def fit(
        self,
        doy: Sequence[int],
        y: Sequence[float],
        *,
        max_rss: Optional[float] = None,
    ) -> "CyclicSplineSmoother":
        """Fit the curve, choosing the smoothing parameter by GCV.

        When *max_rss* is given and the GCV choice leaves a larger residual
        sum of squares, the smoothest candidate within *max_rss* is used
        instead. The unpenalized least-squares fit is always a candidate.
        """
        doy = np.asarray(doy, dtype=int)
        y = np.asarray(y, dtype=float)
        if doy.shape != y.shape:
            raise ValueError("doy and y must have the same length.")
        if doy.size and (doy.min() < 1 or doy.max() > SEASON_LENGTH):
            raise ModelFitError(f"Day-of-year values must lie in [1, {SEASON_LENGTH}].")

        n = int(y.size)
        n_unique = int(np.unique(doy).size)
        if n == 0 or n_unique < self.k:
            raise ModelFitError(
                f"Not enough data for k={self.k}: {n_unique} distinct days of year "
                f"({n} rows) after excluding leap days; need at least {self.k}."
            )

        self._basis.fit((doy - 1.0).reshape(-1, 1))
        B = self._design(doy)
        if B.shape[1] != self.k:
            raise ModelFitError(f"Expected {self.k} basis functions, got {B.shape[1]}.")

        P = _cyclic_difference_penalty(self.k)
        BtB, Bty = B.T @ B, B.T @ y
        scale = float(np.trace(BtB) / np.trace(P))

        # (gcv, lambda, edf, coef, rss), ordered from least to most smoothing
        candidates = []
        coef, _, rank, _ = np.linalg.lstsq(B, y, rcond=None)
        candidates.append(self._candidate(y, B, coef, 0.0, float(rank)))
        for rel in sorted(self.lambdas):
            lam = rel * scale
            A = BtB + lam * P
            try:
                coef = np.linalg.solve(A, Bty)
                edf = float(np.trace(np.linalg.solve(A, BtB)))
            except np.linalg.LinAlgError:
                continue
            candidates.append(self._candidate(y, B, coef, lam, edf))

        scored = [c for c in candidates if np.isfinite(c[0])]
        if not scored:
            raise ModelFitError(f"Seasonal fit with k={self.k} is degenerate.")
        best = min(scored, key=lambda c: c[0])

        if max_rss is not None and best[4] > max_rss:
            within = [c for c in candidates if c[4] <= max_rss]
            if within:
                best = within[-1]
            else:
                best = min(candidates, key=lambda c: c[4])
            logger.debug(
                "Cyclic spline k=%d: GCV choice exceeds rss %.4g; using lambda=%.4g.",
                self.k, max_rss, best[1],
            )

        self.gcv_, self.lambda_, self.edf_, self.coef_, self.rss_ = best
        self.n_fit_ = n
        logger.debug(
            "Cyclic spline k=%d: lambda=%.4g edf=%.2f gcv=%.4g (n=%d).",
            self.k, self.lambda_, self.edf_, self.gcv_, n,
        )
        return self

    @staticmethod
    def _candidate(y, B, coef, lam, edf):
        resid = y - B @ coef
        rss = float(resid @ resid)
        denom = y.size - edf
        if denom <= 1e-8 or not np.isfinite(rss):
            gcv = np.inf
        else:
            gcv = y.size * rss / denom**2
        return (gcv, lam, edf, coef, rss)

    def predict(self, doy: Sequence[int]) -> np.ndarray:
        if not hasattr(self, "coef_"):
            raise ModelFitError("Smoother is not fitted.")
        return self._design(np.asarray(doy, dtype=int)) @ self.coef_


def fit_profile(
    observations: ObservationSet,
    params: FitParameters,
    *,
    lambdas: Optional[Sequence[float]] = None,
) -> ProfileResult:
    """
    Fit the seasonal curve to *observations* and return the scaled profile.

    Steps: day-of-year per record; leap days removed from the fitting input;
    cyclic spline fit; in-sample prediction at each record's own day-of-year;
    ``max(prediction * scaling_factor, 0)``.

    The output has one :class:`PredictedObservation` per input record in the
    input order. Leap-day records carry ``profile=None`` and
    ``profile_scaled=None``.

    Raises
    ------
    ModelFitError
        If the fit is underdetermined for ``params.k`` or numerically
        degenerate.
    """
    dates = [rec.date for rec in observations]
    rainfall = np.array([rec.rainfall for rec in observations], dtype=float)
    doy = day_of_year(dates)
    fit_mask = doy != LEAP_DAY_OF_YEAR

    lambdas = GCV_LAMBDAS if lambdas is None else lambdas
    x, y = doy[fit_mask], rainfall[fit_mask]

    # A larger basis never fits worse than the smallest one on the same data.
    max_rss = None
    if params.k > K_MIN:
        reference = CyclicSplineSmoother(K_MIN, lambdas=lambdas).fit(x, y)
        max_rss = reference.rss_ * (1.0 - 1e-9)

    smoother = CyclicSplineSmoother(params.k, lambdas=lambdas)
    smoother.fit(x, y, max_rss=max_rss)

    profile = np.full(rainfall.shape, np.nan)
    profile[fit_mask] = smoother.predict(doy[fit_mask])
    scaled = np.maximum(profile * params.scaling_factor, 0.0)
    if not np.all(np.isfinite(profile[fit_mask])):
        raise ModelFitError("Seasonal fit produced non-finite values.")

    predictions = tuple(
        PredictedObservation(
            date=day,
            rainfall=float(obs),
            day_of_year=int(d),
            profile=float(p) if keep else None,
            profile_scaled=float(s) if keep else None,
        )
        for day, obs, d, p, s, keep in zip(dates, rainfall, doy, profile, scaled, fit_mask)
    )

    n_leap = int((~fit_mask).sum())
    if n_leap:
        logger.info("Excluded %d leap-day record(s) from the seasonal fit.", n_leap)

    return ProfileResult(
        predictions=predictions,
        params=params,
        n_fit=int(fit_mask.sum()),
        lambda_=float(smoother.lambda_),
        edf=float(smoother.edf_),
        ssr=sum_squared_residuals(rainfall[fit_mask], profile[fit_mask]),
        metrics=regression_metrics(rainfall, scaled),
    )


__all__ = ["day_of_year", "CyclicSplineSmoother", "fit_profile"]
