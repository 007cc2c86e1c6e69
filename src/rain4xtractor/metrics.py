# src/rain4xtractor/metrics.py
# SPDX-License-Identifier: MIT
"""
Goodness-of-fit measures for seasonal rainfall profiles.

- :func:`sum_squared_residuals` — in-sample SSR, used to compare fits of
  different spline complexity on the same observations.
- :func:`kge` — Kling–Gupta efficiency (Gupta et al., 2009).
- :func:`nse` — Nash–Sutcliffe efficiency.
- :func:`regression_metrics` — MAE, RMSE, R², KGE, NSE in a single dict.
- :func:`aggregate_and_score` — monthly (or other) totals of observed vs.
  profile rainfall, then the metrics above on the totals.

Pairs where either side is missing (e.g. the day-of-year 366 row of a leap
year, which has no profile value) are dropped before scoring. Undefined
metrics are returned as ``numpy.nan``.
"""

from __future__ import annotations

from typing import Dict, Iterable, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error

_METRIC_KEYS = ("MAE", "RMSE", "R2", "KGE", "NSE")

_FREQ_ALIAS = {
    "M": "ME",  # month end
    "A": "YE",
    "Y": "YE",
    "Q": "QE",
}


def _nan_metrics() -> Dict[str, float]:
    return {key: np.nan for key in _METRIC_KEYS}


def _paired(
    observed: Iterable[float],
    predicted: Iterable[float],
) -> Tuple[np.ndarray, np.ndarray]:
    """Return float arrays of equal shape with non-finite pairs removed.

    Raises
    ------
    ValueError
        If the two inputs differ in length.
    """
    yt = np.asarray(observed, dtype=float)
    yp = np.asarray(predicted, dtype=float)
    if yt.shape != yp.shape:
        raise ValueError(
            f"Shapes of observed {yt.shape} and predicted {yp.shape} do not match."
        )
    keep = np.isfinite(yt) & np.isfinite(yp)
    return yt[keep], yp[keep]


def sum_squared_residuals(observed: Iterable[float], predicted: Iterable[float]) -> float:
    """Sum of squared residuals over the finite pairs (``0.0`` if none)."""
    yt, yp = _paired(observed, predicted)
    return float(np.sum((yt - yp) ** 2))


def kge(observed: Iterable[float], predicted: Iterable[float]) -> float:
    """
    Kling–Gupta efficiency.

    .. math::

        \\mathrm{KGE} = 1 - \\sqrt{(r - 1)^2 + (\\alpha - 1)^2 + (\\beta - 1)^2}

    with ``r`` the Pearson correlation, ``alpha`` the ratio of standard
    deviations and ``beta`` the ratio of means (predicted / observed).

    Returns ``nan`` for fewer than two pairs, a constant or zero-mean observed
    series, or a constant profile (a flat seasonal curve has no defined
    correlation).
    """
    yt, yp = _paired(observed, predicted)
    if yt.size < 2:
        return np.nan

    mu_o, mu_p = float(np.mean(yt)), float(np.mean(yp))
    sd_o, sd_p = float(np.std(yt, ddof=1)), float(np.std(yp, ddof=1))
    if sd_o == 0.0 or mu_o == 0.0 or sd_p == 0.0:
        return np.nan

    r = float(np.corrcoef(yt, yp)[0, 1])
    if not np.isfinite(r):
        return np.nan
    return float(1.0 - np.sqrt((r - 1.0) ** 2 + (sd_p / sd_o - 1.0) ** 2 + (mu_p / mu_o - 1.0) ** 2))


def nse(observed: Iterable[float], predicted: Iterable[float]) -> float:
    """
    Nash–Sutcliffe efficiency, ``1 - SSR / SST``.

    Unlike R² it is unbounded below; a profile worse than the observed mean
    scores negative. ``nan`` for fewer than two pairs or zero variance.
    """
    yt, yp = _paired(observed, predicted)
    if yt.size < 2:
        return np.nan
    sst = float(np.sum((yt - np.mean(yt)) ** 2))
    if sst == 0.0:
        return np.nan
    return float(1.0 - np.sum((yt - yp) ** 2) / sst)


def regression_metrics(observed: Iterable[float], predicted: Iterable[float]) -> Dict[str, float]:
    """
    MAE, RMSE, R² (squared Pearson correlation), KGE and NSE.

    R² is deliberately the squared correlation rather than
    ``sklearn.metrics.r2_score``; the variance-explained reading is already
    covered by NSE.

    A single remaining pair follows the aggregation convention: a perfect
    match scores 1.0 on every efficiency, a mismatch 0.0.
    """
    yt, yp = _paired(observed, predicted)
    if yt.size == 0:
        return _nan_metrics()

    mae = float(mean_absolute_error(yt, yp))
    rmse = float(np.sqrt(mean_squared_error(yt, yp)))

    if yt.size == 1:
        score = 1.0 if float(yt[0]) == float(yp[0]) else 0.0
        return {"MAE": mae, "RMSE": rmse, "R2": score, "KGE": score, "NSE": score}

    if float(np.std(yt, ddof=1)) == 0.0 or float(np.std(yp, ddof=1)) == 0.0:
        r2 = np.nan
    else:
        r2 = float(np.corrcoef(yt, yp)[0, 1] ** 2)

    out = {"MAE": mae, "RMSE": rmse, "R2": r2, "KGE": kge(yt, yp), "NSE": nse(yt, yp)}
    return {key: (val if np.isfinite(val) else np.nan) for key, val in out.items()}


def aggregate_and_score(
    profile_df: pd.DataFrame,
    *,
    date_col: str = "date",
    y_col: str = "rainfall",
    yhat_col: str = "gam_profile_scaled",
    freq: str = "M",
    agg: str = "sum",
) -> Tuple[Dict[str, float], pd.DataFrame]:
    """
    Aggregate a daily profile table to *freq* and score the aggregated series.

    Typical use is monthly rainfall totals from
    :meth:`rain4xtractor.models.ProfileResult.to_frame`.

    Parameters
    ----------
    profile_df : pandas.DataFrame
        Table with at least ``[date_col, y_col, yhat_col]``.
    freq : str, default "M"
        Pandas resampling frequency; legacy aliases (``"M"``, ``"A"``, ``"Y"``,
        ``"Q"``) are mapped to their period-end spellings.
    agg : {"sum", "mean", "median"}
        Aggregation applied to both columns.

    Returns
    -------
    metrics : dict
        :func:`regression_metrics` on the aggregated values.
    agg_df : pandas.DataFrame
        Aggregated ``[y_col, yhat_col]`` indexed by period.
    """
    agg = agg.lower()
    if agg not in {"sum", "mean", "median"}:
        raise ValueError("agg must be one of: 'sum', 'mean', or 'median'.")
    freq = _FREQ_ALIAS.get(freq, freq)

    df = profile_df[[date_col, y_col, yhat_col]].copy()
    df[date_col] = pd.to_datetime(df[date_col], errors="coerce")
    # Rows without a profile value (day 366) are left out of both totals.
    df = df.dropna(subset=[date_col, y_col, yhat_col])
    if df.empty:
        return _nan_metrics(), df

    agg_df = getattr(df.set_index(date_col).sort_index().resample(freq), agg)().dropna()
    if agg_df.empty:
        return _nan_metrics(), agg_df

    return regression_metrics(agg_df[y_col].to_numpy(), agg_df[yhat_col].to_numpy()), agg_df


__all__ = [
    "sum_squared_residuals",
    "kge",
    "nse",
    "regression_metrics",
    "aggregate_and_score",
]
