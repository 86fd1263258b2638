"""Tracker statistics importer.

Refreshes seeder, leecher and completed counts for every stored torrent in
one pass, with a bounded number of tracker lookups in flight. A failure on
one torrent is recorded and the pass moves on; only losing the database
aborts it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from tindex.config.config import get_config
from tindex.storage.sqlite import SqliteDatabase
from tindex.tracker.service import TrackerService
from tindex.utils.exceptions import (
    DatabaseError,
    DatabaseUnavailableError,
    ServiceError,
    TorrentNotFoundError,
)
from tindex.utils.logging_config import LoggingContext, get_logger
from tindex.utils.shutdown import is_shutting_down
from tindex.utils.tasks import BackgroundTaskGroup

if TYPE_CHECKING:
    from tindex.models import Config
    from tindex.storage.database import Database


class OutcomeKind(str, Enum):
    """Result of refreshing one torrent."""

    UPDATED = "updated"
    NOT_FOUND_ON_TRACKER = "not_found_on_tracker"
    FAILED = "failed"


@dataclass(frozen=True)
class ImportOutcome:
    """Per-torrent import result."""

    info_hash: str
    kind: OutcomeKind
    reason: str | None = None


@dataclass
class ImportSummary:
    """Aggregated counts for one import pass."""

    attempted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    duration: float = 0.0
    cancelled: bool = False

    def record(self, outcome: ImportOutcome) -> None:
        """Count a finished torrent."""
        if outcome.kind is OutcomeKind.UPDATED:
            self.updated += 1
        elif outcome.kind is OutcomeKind.NOT_FOUND_ON_TRACKER:
            self.skipped += 1
        else:
            self.failed += 1


class StatisticsImporter:
    """Imports live torrent statistics from the tracker into the database."""

    def __init__(
        self,
        database: Database,
        tracker_service: TrackerService,
        max_concurrent_requests: int = 10,
    ):
        """Initialize the importer.

        Args:
            database: Source of info-hashes and sink for statistics
            tracker_service: Service used to fetch live torrent info
            max_concurrent_requests: Maximum tracker lookups in flight

        """
        if max_concurrent_requests < 1:
            msg = f"max_concurrent_requests must be at least 1, got {max_concurrent_requests}"
            raise ValueError(msg)
        self.database = database
        self.tracker_service = tracker_service
        self.max_concurrent_requests = max_concurrent_requests
        self.logger = get_logger(__name__)
        self._stop_requested = False

    def request_stop(self) -> None:
        """Stop scheduling new torrents; in-flight ones still finish."""
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        """True once a stop was requested here or process shutdown began."""
        return self._stop_requested or is_shutting_down()

    async def import_torrent_statistics(self, info_hash: str) -> ImportOutcome:
        """Refresh the stored statistics of a single torrent.

        Raises:
            DatabaseUnavailableError: If the database cannot be used at all

        """
        try:
            torrent_info = await self.tracker_service.get_torrent_info(info_hash)
        except TorrentNotFoundError:
            self.logger.debug("Torrent %s not found on tracker, skipping", info_hash)
            return ImportOutcome(info_hash, OutcomeKind.NOT_FOUND_ON_TRACKER)
        except ServiceError as e:
            self.logger.warning("Failed to get torrent info for %s: %s", info_hash, e)
            return ImportOutcome(info_hash, OutcomeKind.FAILED, str(e))

        try:
            await self.database.update_torrent_stats(
                info_hash,
                seeders=torrent_info.seeders,
                leechers=torrent_info.leechers,
                completed=torrent_info.completed,
            )
        except DatabaseUnavailableError:
            raise
        except DatabaseError as e:
            self.logger.warning("Failed to store statistics for %s: %s", info_hash, e)
            return ImportOutcome(info_hash, OutcomeKind.FAILED, str(e))

        self.logger.debug(
            "Updated %s: seeders=%d leechers=%d completed=%d",
            info_hash,
            torrent_info.seeders,
            torrent_info.leechers,
            torrent_info.completed,
        )
        return ImportOutcome(info_hash, OutcomeKind.UPDATED)

    async def run(self) -> ImportSummary:
        """Run one import pass over every stored torrent.

        Returns:
            Summary of the pass; ``cancelled`` is set when a stop request
            ended it early

        Raises:
            DatabaseUnavailableError: If the database failed during the pass;
                in-flight lookups are cancelled first

        """
        summary = ImportSummary()
        semaphore = asyncio.Semaphore(self.max_concurrent_requests)
        workers = BackgroundTaskGroup()
        aborted = asyncio.Event()
        start_time = time.monotonic()

        async def _worker(info_hash: str) -> None:
            try:
                outcome = await self.import_torrent_statistics(info_hash)
            except DatabaseUnavailableError:
                # Cancel siblings so their slots are released
                aborted.set()
                workers.cancel()
                raise
            except Exception as e:
                self.logger.exception("Unexpected error importing %s", info_hash)
                outcome = ImportOutcome(info_hash, OutcomeKind.FAILED, repr(e))
            finally:
                semaphore.release()
            summary.record(outcome)

        info_hashes = self.database.list_torrent_info_hashes()

        with LoggingContext("tracker statistics import", log_level=logging.INFO, logger=self.logger):
            try:
                async for info_hash in info_hashes:
                    if aborted.is_set():
                        break
                    if self.stop_requested:
                        summary.cancelled = True
                        break

                    # Acquire a slot before creating the worker
                    await semaphore.acquire()
                    if aborted.is_set() or self.stop_requested:
                        semaphore.release()
                        summary.cancelled = not aborted.is_set()
                        break

                    summary.attempted += 1
                    workers.create(_worker(info_hash))

                await workers.wait()
            finally:
                await workers.cancel_and_wait()
                aclose = getattr(info_hashes, "aclose", None)
                if aclose is not None:
                    await aclose()

        summary.duration = time.monotonic() - start_time

        if summary.cancelled:
            self.logger.warning("Statistics import stopped early on request")
        self.logger.info(
            "Statistics import finished: %d attempted, %d updated, %d skipped, %d failed in %.2fs",
            summary.attempted,
            summary.updated,
            summary.skipped,
            summary.failed,
            summary.duration,
        )
        return summary


async def run_importer(config: Config | None = None) -> ImportSummary:
    """Build the importer from configuration and run one pass.

    Uses the process-wide configuration when none is given.

    Raises:
        DatabaseUnavailableError: If the database cannot be opened or fails mid-run

    """
    if config is None:
        config = get_config()
    importer_config = config.tracker_statistics_importer
    database = SqliteDatabase(config.database.path, page_size=importer_config.page_size)
    await database.initialize()

    async with TrackerService.from_config(config.tracker, database) as tracker_service:
        importer = StatisticsImporter(
            database,
            tracker_service,
            max_concurrent_requests=importer_config.max_concurrent_requests,
        )
        return await importer.run()
