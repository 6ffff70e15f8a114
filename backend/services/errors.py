"""
Service-level exceptions.

Each maps to one HTTP status in ``main.py``; services raise them and never
build responses themselves.
"""

from typing import Any


class EquiCareError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class MissingTranscriptError(EquiCareError):
    """Transcript text was absent or blank."""

    status_code = 400

    def __init__(self, message: str = "Missing transcript"):
        super().__init__(message)


class UpstreamError(EquiCareError):
    """The language model API returned a non-success response."""

    status_code = 502


class StoreError(EquiCareError):
    """A store read or write failed."""

    status_code = 502


class NotFoundError(EquiCareError):
    status_code = 404
