"""Pytest configuration and shared fixtures for tindex tests."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from typing import Any

import pytest

from tindex.config import config as config_module
from tindex.models import TrackerConfig, TrackerKey
from tindex.tracker.api import TrackerResponse
from tindex.utils.exceptions import DatabaseUnavailableError
from tindex.utils.shutdown import clear_shutdown


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("asyncio", "marks tests as async (deselect with '-m \"not asyncio\"')"),
        ("integration", "marks tests as integration tests"),
        ("unit", "marks tests as unit tests"),
        ("tracker", "marks tests as tracker tests"),
        ("storage", "marks tests as storage tests"),
        ("importer", "marks tests as statistics importer tests"),
        ("config", "marks tests as configuration tests"),
        ("cli", "marks tests as CLI tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _isolate_tindex_env(monkeypatch, tmp_path):
    """Keep tests away from user config files and TINDEX_* variables."""
    for name in list(os.environ):
        if name.startswith("TINDEX_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    # setup_logging detaches the package logger from root; caplog needs it back
    package_logger = logging.getLogger("tindex")
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
    root_logger.setLevel(logging.WARNING)


@pytest.fixture(autouse=True)
def cleanup_global_state():
    """Reset the shutdown flag and the global configuration between tests."""
    clear_shutdown()
    config_module._config_manager = None
    yield
    clear_shutdown()
    config_module._config_manager = None


class FakeDatabase:
    """In-memory ``Database`` used by service and importer tests.

    Unlike the SQLite implementation, ``get_user_tracker_key`` returns the
    newest key even when it has expired, so callers' own expiry checks can
    be exercised.
    """

    def __init__(self, info_hashes: list[str] | None = None):
        self.info_hashes = list(info_hashes or [])
        self.keys: dict[int, list[TrackerKey]] = {}
        self.stats: dict[str, tuple[int, int, int]] = {}
        self.update_errors: dict[str, Exception] = {}
        self.enumeration_error_after: int | None = None
        self.update_delay = 0.0

    async def get_user_tracker_key(self, user_id: int) -> TrackerKey | None:
        keys = self.keys.get(user_id)
        if not keys:
            return None
        return max(keys, key=lambda k: k.valid_until)

    async def add_tracker_key(self, user_id: int, tracker_key: TrackerKey) -> None:
        self.keys.setdefault(user_id, []).append(tracker_key)

    async def list_torrent_info_hashes(self):
        for index, info_hash in enumerate(self.info_hashes):
            if self.enumeration_error_after is not None and index >= self.enumeration_error_after:
                msg = "database went away"
                raise DatabaseUnavailableError(msg)
            await asyncio.sleep(0)
            yield info_hash

    async def update_torrent_stats(
        self,
        info_hash: str,
        seeders: int,
        leechers: int,
        completed: int,
    ) -> None:
        if self.update_delay:
            await asyncio.sleep(self.update_delay)
        error = self.update_errors.get(info_hash)
        if error is not None:
            raise error
        self.stats[info_hash] = (seeders, leechers, completed)


def make_tracker_key(key: str = "mCGfCr8nvixxA0h8B4iz0sT8V3FIQLi7", ttl: int = 3600) -> TrackerKey:
    """Build a key valid for ``ttl`` seconds from now (negative for expired)."""
    return TrackerKey(key=key, valid_until=int(time.time()) + ttl)


def torrent_info_body(info_hash: str, seeders: int = 5, leechers: int = 2, completed: int = 10, **extra: Any) -> str:
    """JSON body of a tracker torrent-info response."""
    payload: dict[str, Any] = {
        "info_hash": info_hash,
        "seeders": seeders,
        "completed": completed,
        "leechers": leechers,
    }
    payload.update(extra)
    return json.dumps(payload)


def ok(body: str = "") -> TrackerResponse:
    return TrackerResponse(status=200, body=body)


@pytest.fixture
def fake_database():
    """Empty in-memory database."""
    return FakeDatabase()


@pytest.fixture
def tracker_config():
    """Private tracker configuration pointing at an unreachable API."""
    return TrackerConfig(
        url="https://tracker.example.com:7070/announce",
        mode="private",
        api_url="http://tracker.example.com:1212",
        token="MyAccessToken",
        token_valid_seconds=1000,
    )
