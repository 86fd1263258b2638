"""Tracker admin API client and service."""

from __future__ import annotations

from tindex.tracker.api import ConnectionInfo, TrackerApiClient, TrackerResponse
from tindex.tracker.service import TrackerService

__all__ = [
    "ConnectionInfo",
    "TrackerApiClient",
    "TrackerResponse",
    "TrackerService",
]
