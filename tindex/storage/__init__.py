"""Persistence for torrents and tracker keys."""

from __future__ import annotations

from tindex.storage.database import Database
from tindex.storage.sqlite import SqliteDatabase, TorrentStats

__all__ = ["Database", "SqliteDatabase", "TorrentStats"]
