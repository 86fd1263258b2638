"""Tracker service for tindex.

Turns the tracker admin API's HTTP semantics into domain outcomes and owns
the per-user announce key cache.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import ValidationError

from tindex.models import TorrentInfo, TrackerKey
from tindex.tracker.api import TrackerApiClient
from tindex.utils.exceptions import (
    DatabaseError,
    InternalServerError,
    TorrentNotFoundError,
    TrackerError,
    TrackerOfflineError,
    WhitelistingError,
)
from tindex.utils.logging_config import LoggingContext, get_logger

if TYPE_CHECKING:
    from tindex.models import TrackerConfig
    from tindex.storage.database import Database

# Plaintext body some tracker versions send with a 200 instead of a 404
TORRENT_NOT_KNOWN = "torrent not known"


@dataclass
class _KeyLock:
    """Per-user issuance lock and the number of callers holding or awaiting it."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class TrackerService:
    """Service for whitelist, announce key and torrent info operations."""

    def __init__(
        self,
        tracker_config: TrackerConfig,
        api_client: TrackerApiClient,
        database: Database,
    ):
        """Initialize the tracker service.

        Args:
            tracker_config: Tracker section of the configuration
            api_client: Started (or to be started) admin API client
            database: Storage for issued tracker keys

        """
        self.tracker_config = tracker_config
        self.api_client = api_client
        self.database = database
        self.logger = get_logger(__name__)
        self._key_locks: dict[int, _KeyLock] = {}

    @classmethod
    def from_config(cls, tracker_config: TrackerConfig, database: Database) -> TrackerService:
        """Build the service and its API client from configuration."""
        return cls(tracker_config, TrackerApiClient.from_config(tracker_config), database)

    async def start(self) -> None:
        """Start the underlying API client."""
        await self.api_client.start()

    async def stop(self) -> None:
        """Stop the underlying API client."""
        await self.api_client.stop()

    async def __aenter__(self) -> TrackerService:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    # --- Whitelist ---

    async def whitelist_info_hash(self, info_hash: str) -> None:
        """Add a torrent to the tracker whitelist.

        Calling it again for an already whitelisted torrent succeeds as long
        as the tracker answers 2xx.

        Raises:
            TrackerOfflineError: If the tracker cannot be reached
            WhitelistingError: If the tracker rejects the request

        """
        with LoggingContext("whitelist torrent", logger=self.logger, info_hash=info_hash):
            try:
                response = await self.api_client.whitelist_torrent(info_hash)
            except TrackerError as e:
                msg = f"Tracker offline while whitelisting {info_hash}"
                raise TrackerOfflineError(msg) from e

            if not response.ok:
                msg = f"Tracker rejected whitelisting {info_hash}: HTTP {response.status}"
                raise WhitelistingError(msg, {"status": response.status})

    async def remove_info_hash_from_whitelist(self, info_hash: str) -> None:
        """Remove a torrent from the tracker whitelist.

        Raises:
            InternalServerError: On any failure; the tracker does not tell
                "not whitelisted" apart from other errors

        """
        with LoggingContext("remove torrent from whitelist", logger=self.logger, info_hash=info_hash):
            try:
                response = await self.api_client.remove_torrent_from_whitelist(info_hash)
            except TrackerError as e:
                msg = f"Failed to remove {info_hash} from whitelist"
                raise InternalServerError(msg) from e

            if not response.ok:
                msg = f"Failed to remove {info_hash} from whitelist: HTTP {response.status}"
                raise InternalServerError(msg, {"status": response.status})

    # --- Announce keys ---

    async def get_announce_url(self, user_id: int | None = None) -> str:
        """Return the announce URL a user should put in their torrent client.

        Private trackers get a personal URL carrying the user's key; public
        and listed trackers, or anonymous callers, get the plain URL.
        """
        if user_id is not None and self.tracker_config.mode.is_private():
            return await self.get_personal_announce_url(user_id)
        return self.tracker_config.url

    async def get_personal_announce_url(self, user_id: int) -> str:
        """Return ``{tracker_url}/{key}`` for the user, issuing a key if needed.

        A cached, non-expired key is reused without contacting the tracker.
        Concurrent calls for the same user issue at most one new key.

        Raises:
            TrackerOfflineError: If a new key was needed and could not be
                issued by the tracker or stored

        """
        tracker_key = await self._cached_key(user_id)
        if tracker_key is None:
            tracker_key = await self._issue_key_once(user_id)
        return self._announce_url_with_key(tracker_key)

    def _announce_url_with_key(self, tracker_key: TrackerKey) -> str:
        return f"{self.tracker_config.url}/{tracker_key.key}"

    async def _cached_key(self, user_id: int) -> TrackerKey | None:
        tracker_key = await self.database.get_user_tracker_key(user_id)
        if tracker_key is None or tracker_key.is_expired():
            return None
        return tracker_key

    async def _issue_key_once(self, user_id: int) -> TrackerKey:
        """Issue a key for the user unless a concurrent caller just did."""
        entry = self._key_locks.get(user_id)
        if entry is None:
            entry = self._key_locks[user_id] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                tracker_key = await self._cached_key(user_id)
                if tracker_key is not None:
                    return tracker_key
                return await self._retrieve_new_tracker_key(user_id)
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._key_locks.pop(user_id, None)

    async def _retrieve_new_tracker_key(self, user_id: int) -> TrackerKey:
        with LoggingContext("issue tracker key", logger=self.logger, user_id=user_id):
            try:
                tracker_key = await self.api_client.issue_key(self.tracker_config.token_valid_seconds)
            except TrackerError as e:
                msg = f"Tracker offline while issuing a key for user {user_id}"
                raise TrackerOfflineError(msg) from e

            try:
                await self.database.add_tracker_key(user_id, tracker_key)
            except DatabaseError as e:
                msg = f"Could not store the tracker key issued for user {user_id}"
                raise TrackerOfflineError(msg) from e
        return tracker_key

    # --- Torrent info ---

    async def get_torrent_info(self, info_hash: str) -> TorrentInfo:
        """Fetch live swarm statistics for one torrent.

        Raises:
            TorrentNotFoundError: If the tracker does not know the torrent
            InternalServerError: On transport failures, unexpected statuses
                or bodies that do not decode

        """
        try:
            response = await self.api_client.get_torrent_info(info_hash)
        except TrackerError as e:
            msg = f"Failed to fetch torrent info for {info_hash}: {e.message}"
            raise InternalServerError(msg) from e

        if response.status == 404 or response.body == TORRENT_NOT_KNOWN:
            msg = f"Torrent {info_hash} not found on tracker"
            raise TorrentNotFoundError(msg)

        if not response.ok:
            msg = f"Unexpected tracker response for {info_hash}: HTTP {response.status}"
            raise InternalServerError(msg, {"status": response.status})

        try:
            return TorrentInfo.model_validate_json(response.body)
        except ValidationError as e:
            self.logger.error(
                "Failed to parse torrent info from tracker response. Body: %s",
                response.body,
            )
            msg = f"Malformed torrent info for {info_hash}"
            raise InternalServerError(msg) from e
