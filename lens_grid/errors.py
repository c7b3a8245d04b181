"""
Error taxonomy for the lens grid pipeline.

Every error is a ValueError so request routers can map it to a 400 response
the same way they map plain validation failures.
"""
from __future__ import annotations


class LensGridError(ValueError):
    """Base class; `name` is the value reported in the response `error` field."""

    name = "LensGridError"


class InvalidBoundsError(LensGridError):
    """Bounding box with north <= south or east <= west (or non-finite edges)."""

    name = "InvalidBoundsError"


class EmptyLensSelectionError(LensGridError):
    name = "EmptyLensSelectionError"


class NoValidLensesError(LensGridError):
    """All requested lenses are unknown or have no backing dataset."""

    name = "NoValidLensesError"


class EmptyInputError(LensGridError):
    name = "EmptyInputError"


class SourceUnavailableError(LensGridError):
    """Columnar file present but unreadable or missing required columns."""

    name = "SourceUnavailableError"


class SearchBackendError(LensGridError):
    """Top-K backend unreachable, returned a non-2xx status or a malformed body."""

    name = "SearchBackendError"


def error_name(exc: BaseException) -> str:
    """Response-facing error name for any exception."""
    if isinstance(exc, LensGridError):
        return exc.name
    if isinstance(exc, ValueError):
        return "ValidationError"
    return "InternalError"
