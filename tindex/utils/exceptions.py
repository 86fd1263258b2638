"""Exception hierarchy for tindex.

Provides the error taxonomy shared by the tracker client, the tracker
service, the storage layer and the statistics importer.
"""

from __future__ import annotations

from typing import Any


class TIndexError(Exception):
    """Base exception for all tindex errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize tindex error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ConfigurationError(TIndexError):
    """Configuration validation errors."""


class TrackerError(TIndexError):
    """Tracker admin API communication errors."""


class TrackerConnectionError(TrackerError):
    """The tracker could not be reached (connection refused, timeout...)."""


class TrackerResponseError(TrackerError):
    """The tracker answered with an unexpected status or payload."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        body: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """Initialize tracker response error."""
        super().__init__(message, details)
        self.status = status
        self.body = body


class ServiceError(TIndexError):
    """Domain-level errors exposed by the tracker service."""


class TrackerOfflineError(ServiceError):
    """The tracker admin API is unreachable."""


class WhitelistingError(ServiceError):
    """The tracker rejected a whitelist mutation."""


class TorrentNotFoundError(ServiceError):
    """The tracker has no record for the info-hash."""


class InternalServerError(ServiceError):
    """Unexpected response shape, decode failure or unclassified failure."""


class DatabaseError(ServiceError):
    """Persistence layer failure affecting a single operation."""


class DatabaseUnavailableError(DatabaseError):
    """The persistence layer cannot be used at all."""
