"""
errors.py — Failure conditions raised while loading and selecting counties.

Every condition here is recoverable: the caller reports ``status_message``
to the user and the boundary layer falls back to its empty state.
"""

from __future__ import annotations

from typing import Optional


class CountyLabelError(Exception):
    """Base class for county-label failures."""

    status_message = "Error loading county boundary"


class NoDataFound(CountyLabelError):
    """The source returned no usable county near the requested point."""

    def __init__(self, status_message: str = "No counties found in this area") -> None:
        super().__init__(status_message)
        self.status_message = status_message


class GeometryAssemblyFailure(CountyLabelError):
    """A relation's outer ways could not be closed into any ring."""

    def __init__(self, relation_id: int) -> None:
        super().__init__(f"Relation {relation_id} has no closable outer ring")
        self.relation_id = relation_id


# Status texts shown to the user, keyed by failure category.
_SOURCE_MESSAGES: dict[str, str] = {
    "bad_request":  "Invalid query. Try moving to a different location.",
    "rate_limited": "Too many requests. Please wait a moment and try again.",
    "timeout":      "Server timeout. Try again later.",
    "network":      "Network error. Check your internet connection.",
}


class SourceUnavailable(CountyLabelError):
    """
    The boundary data source could not be reached or refused the query.

    Attributes:
        category:    One of ``bad_request``, ``rate_limited``, ``timeout``,
                     ``network`` or ``unknown``.
        status_code: HTTP status from the source, when there was a response.
    """

    def __init__(self, category: str, detail: str, status_code: Optional[int] = None) -> None:
        super().__init__(detail)
        self.category = category
        self.detail = detail
        self.status_code = status_code

    @classmethod
    def from_status(cls, status_code: int, reason: str = "") -> SourceUnavailable:
        if status_code == 400:
            category = "bad_request"
        elif status_code == 429:
            category = "rate_limited"
        elif status_code == 504:
            category = "timeout"
        else:
            category = "unknown"
        return cls(category, f"HTTP {status_code}: {reason}".rstrip(": "), status_code)

    @property
    def status_message(self) -> str:
        return "Error loading county boundary: " + _SOURCE_MESSAGES.get(self.category, self.detail)


class LoadInProgress(CountyLabelError):
    """A boundary fetch is already running for the current activation."""

    status_message = "Counties are already loading"


class UnknownFeature(CountyLabelError):
    """No loaded county has the requested id."""

    def __init__(self, feature_id: int) -> None:
        super().__init__(f"County {feature_id} is not loaded")
        self.feature_id = feature_id
        self.status_message = f"County {feature_id} is not loaded"
