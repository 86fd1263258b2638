"""Persistence capability consumed by the tracker service and the importer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from tindex.models import TrackerKey


@runtime_checkable
class Database(Protocol):
    """The storage operations the tracker integration needs.

    Implementations raise ``DatabaseError`` for failures scoped to one call
    and ``DatabaseUnavailableError`` when storage cannot be used at all.
    """

    async def get_user_tracker_key(self, user_id: int) -> TrackerKey | None:
        """Return the user's non-expired tracker key, if any."""
        ...

    async def add_tracker_key(self, user_id: int, tracker_key: TrackerKey) -> None:
        """Store a newly issued key for the user."""
        ...

    def list_torrent_info_hashes(self) -> AsyncIterator[str]:
        """Lazily yield every torrent's info-hash, each exactly once."""
        ...

    async def update_torrent_stats(
        self,
        info_hash: str,
        seeders: int,
        leechers: int,
        completed: int,
    ) -> None:
        """Overwrite a torrent's tracker counters in its own transaction."""
        ...
