"""tindex - tracker integration and statistics synchronization for a torrent index."""

from __future__ import annotations

__version__ = "0.1.0"

from tindex.models import PeerId, Peer, TorrentInfo, TrackerKey
from tindex.utils.exceptions import (
    DatabaseError,
    DatabaseUnavailableError,
    InternalServerError,
    ServiceError,
    TIndexError,
    TorrentNotFoundError,
    TrackerOfflineError,
    WhitelistingError,
)

__all__ = [
    "DatabaseError",
    "DatabaseUnavailableError",
    "InternalServerError",
    "Peer",
    "PeerId",
    "ServiceError",
    "TIndexError",
    "TorrentInfo",
    "TorrentNotFoundError",
    "TrackerKey",
    "TrackerOfflineError",
    "WhitelistingError",
    "__version__",
]
