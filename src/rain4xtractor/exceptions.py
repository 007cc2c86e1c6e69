# src/rain4xtractor/exceptions.py
# SPDX-License-Identifier: MIT
"""
Error taxonomy for rain4xtractor.

Every error raised by the pipeline derives from :class:`Rain4XtractorError`
so that the trigger boundary in :mod:`rain4xtractor.store` can convert any of
them into a status message without catching unrelated exceptions.
"""

from __future__ import annotations


class Rain4XtractorError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(Rain4XtractorError, ValueError):
    """Invalid input: bad coordinate or date range, malformed records, or a
    trigger fired before its prerequisites exist."""


class FetchError(Rain4XtractorError):
    """The remote precipitation service could not be reached or read."""


class NoDataError(Rain4XtractorError):
    """The service returned no usable rows, or every row was missing."""


class ModelFitError(Rain4XtractorError):
    """The seasonal fit is underdetermined or numerically degenerate."""


__all__ = [
    "Rain4XtractorError",
    "ValidationError",
    "FetchError",
    "NoDataError",
    "ModelFitError",
]
