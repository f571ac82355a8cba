"""Sync service - fetches Harvest time entries and stores them in one transaction."""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from database import get_engine
from integrations.exceptions import SyncInProgressError
from integrations.harvest_protocol import SyncMetrics
from services.harvest_connector import HarvestConnector
from services.time_entry_store import TimeEntryStore

logger = logging.getLogger(__name__)


@dataclass
class SyncRunResult:
    """Outcome of one end-to-end sync."""

    from_date: date
    to_date: date
    entries_processed: int
    entries_stored: int
    fetch_time_ms: float
    metrics: Optional[SyncMetrics]
    dry_run: bool = False

    @property
    def entries_per_second(self) -> int:
        if self.entries_processed == 0 or self.fetch_time_ms <= 0:
            return 0
        return round(self.entries_processed / (self.fetch_time_ms / 1000))

    @property
    def cache_hit_rate(self) -> Optional[float]:
        """Hit rate for reporting; 1.0 when no reference ids were looked up."""
        if self.metrics is None:
            return None
        total = self.metrics.cache_hits + self.metrics.cache_misses
        return 1.0 if total == 0 else self.metrics.cache_hits / total


class HarvestSyncService:
    """Runs Harvest syncs against a long-lived connector.

    The connector is built on first use (which validates credentials and
    warms its caches) and reused for every later sync. One sync runs at a
    time per service instance.
    """

    def __init__(
        self,
        engine: Optional[AsyncEngine] = None,
        connector: Optional[HarvestConnector] = None,
        store: Optional[TimeEntryStore] = None,
    ):
        """Initialize with optional collaborators for dependency injection.

        Args:
            engine: Database engine. Defaults to the application engine.
            connector: Pre-built connector. If None, one is created from
                settings on first use.
            store: Time entry sink. If None, one is created for ``engine``.
        """
        self._engine = engine or get_engine()
        self._connector = connector
        self._store = store
        # Checked and acquired without an await in between, so no waiter ever queues.
        self._sync_lock = asyncio.Lock()

    def is_sync_in_progress(self) -> bool:
        return self._sync_lock.locked()

    @property
    def store(self) -> TimeEntryStore:
        if self._store is None:
            self._store = TimeEntryStore(self._engine)
        return self._store

    @property
    def connector(self) -> Optional[HarvestConnector]:
        """The connector if it has been built, else None."""
        return self._connector

    async def get_connector(self) -> HarvestConnector:
        """Return the connector, building and preloading it on first call.

        Raises:
            ConfigurationError: If Harvest credentials are not configured.
        """
        if self._connector is None:
            connector = HarvestConnector(self._engine)
            await connector.preload_cache()
            self._connector = connector
        return self._connector

    def get_last_sync_metrics(self) -> Optional[SyncMetrics]:
        if self._connector is None:
            return None
        return self._connector.get_last_sync_metrics()

    async def run(
        self,
        from_date: date,
        to_date: date,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
        *,
        dry_run: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncRunResult:
        """Fetch entries for the range and upsert them.

        Args:
            dry_run: Fetch and resolve only; nothing is written.
            cancel_event: Forwarded to the connector.

        Raises:
            SyncInProgressError: Another sync is running on this service.
            ConfigurationError: Harvest credentials are not configured.
            SyncError: Fetching or mapping failed; nothing was written.
            SyncCancelledError: ``cancel_event`` was set; nothing was written.
            TransactionFailure: The upsert failed and was rolled back.
        """
        if self._sync_lock.locked():
            logger.warning("Sync blocked: another sync is already in progress")
            raise SyncInProgressError("Sync already in progress")

        async with self._sync_lock:
            logger.info(
                "Harvest sync started: %s to %s (client_id=%s, project_id=%s)",
                from_date, to_date, client_id, project_id,
            )
            connector = await self.get_connector()

            started = time.perf_counter()
            entries = await connector.get_time_entries(
                from_date, to_date, client_id, project_id, cancel_event=cancel_event
            )
            fetch_time_ms = (time.perf_counter() - started) * 1000

            stored = 0
            if dry_run:
                logger.info("Dry run: skipping storage of %d entries", len(entries))
            else:
                stored = await self.store.upsert(entries)

            return SyncRunResult(
                from_date=from_date,
                to_date=to_date,
                entries_processed=len(entries),
                entries_stored=stored,
                fetch_time_ms=fetch_time_ms,
                metrics=connector.get_last_sync_metrics(),
                dry_run=dry_run,
            )

    async def aclose(self) -> None:
        if self._connector is not None:
            await self._connector.aclose()
