"""Harvest connector - pages time entries and maps them to local ids.

Intended to be constructed once per process and reused across syncs so
the reference-id caches stay warm (see ``main.lifespan``). The caches
and metrics belong to one instance and are not safe to share between
concurrently running syncs; ``SyncService`` serializes calls.
"""

import asyncio
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Mapping, Optional, Union

import psutil
from sqlalchemy.ext.asyncio import AsyncEngine

from config import settings
from integrations.exceptions import SyncCancelledError, SyncError
from integrations.harvest_client import PER_PAGE, HarvestAPIClient
from integrations.harvest_protocol import (
    CanonicalTimeEntry,
    EntityKind,
    HarvestClient,
    HarvestProject,
    HarvestTask,
    HarvestUser,
    ProjectBudget,
    RawTimeEntry,
    SyncMetrics,
)
from integrations.retry import RetryOutcome
from services.entity_resolver import EntityIdResolver, IdCache
from utils.lru_cache import BoundedLRUCache, CacheMetrics

logger = logging.getLogger(__name__)


def process_memory_mb() -> float:
    """Resident set size of this process in MiB."""
    return psutil.Process().memory_info().rss / (1024 * 1024)


@dataclass
class _SyncCounters:
    """Mutable counters for the sync in progress; frozen into SyncMetrics at the end."""

    harvest_requests: int = 0
    db_query_count: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    retry_attempts: int = 0
    retry_delay_ms: float = 0.0
    lookup_failures: list[str] = field(default_factory=list)

    def record_retry(self, outcome: RetryOutcome) -> None:
        self.retry_attempts += max(outcome.attempts - 1, 0)
        self.retry_delay_ms += outcome.total_delay_ms

    def freeze(self, entries_processed: int, cache: dict[str, CacheMetrics]) -> SyncMetrics:
        return SyncMetrics(
            harvest_requests=self.harvest_requests,
            db_query_count=self.db_query_count,
            cache_hits=self.cache_hits,
            cache_misses=self.cache_misses,
            entries_processed=entries_processed,
            retry_attempts=self.retry_attempts,
            retry_delay_ms=self.retry_delay_ms,
            lookup_failures=tuple(self.lookup_failures),
            cache=cache,
        )


class HarvestConnector:
    """Fetches Harvest time entries and resolves their references locally."""

    def __init__(
        self,
        engine: AsyncEngine,
        api_client: Optional[HarvestAPIClient] = None,
        *,
        cache_max_size: Union[int, Mapping[EntityKind, int], None] = None,
        cache_ttl_ms: Optional[int] = None,
        memory_threshold_mb: Optional[int] = None,
        memory_probe: Callable[[], float] = process_memory_mb,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize the connector.

        Args:
            engine: Database engine holding the reference tables.
            api_client: Harvest API client. Built from settings if omitted,
                which raises ``ConfigurationError`` when credentials are missing.
            cache_max_size: Entries per cache, either one size for every kind or
                per-kind overrides (defaults from settings).
            cache_ttl_ms: Cache TTL; 0 disables expiry (default from settings).
            memory_threshold_mb: RSS above which caches are trimmed before a sync.
            memory_probe: Returns current process memory in MiB.
            clock: Monotonic clock for cache expiry, injectable for tests.
        """
        self._api = api_client or HarvestAPIClient()
        if cache_max_size is None:
            sizes = dict(settings.cache_sizes)
        elif isinstance(cache_max_size, int):
            sizes = dict.fromkeys(EntityKind, cache_max_size)
        else:
            sizes = {**settings.cache_sizes, **cache_max_size}
        ttl_ms = settings.cache_ttl_ms if cache_ttl_ms is None else cache_ttl_ms
        cache_kwargs = {"clock": clock} if clock is not None else {}
        self._caches: dict[EntityKind, IdCache] = {
            kind: BoundedLRUCache(sizes[kind], ttl_ms, **cache_kwargs) for kind in EntityKind
        }
        self._resolver = EntityIdResolver(engine, self._caches)
        self._memory_threshold_mb = (
            memory_threshold_mb
            if memory_threshold_mb is not None
            else settings.MEMORY_WARNING_THRESHOLD_MB
        )
        self._memory_probe = memory_probe
        self._last_metrics: Optional[SyncMetrics] = None

    @property
    def provider_name(self) -> str:
        return self._api.provider_name

    async def aclose(self) -> None:
        await self._api.aclose()

    async def get_time_entries(
        self,
        from_date: date,
        to_date: date,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> list[CanonicalTimeEntry]:
        """Fetch all entries in [from_date, to_date] and map them to local ids.

        Pages are fetched sequentially and accumulated before a single
        resolution pass, so each entity kind costs at most one query per
        sync. Output order matches upstream pagination order.

        Args:
            cancel_event: Checked between page fetches and before resolution.

        Raises:
            SyncCancelledError: ``cancel_event`` was set.
            SyncError: Any other failure, with the call's context attached.
        """
        counters = _SyncCounters()
        try:
            self.check_memory()
            raw_entries = await self._fetch_all_pages(
                from_date, to_date, client_id, project_id, counters, cancel_event
            )
            _raise_if_cancelled(cancel_event)

            resolution = await self._resolver.resolve(raw_entries)
            counters.cache_hits += resolution.cache_hits
            counters.cache_misses += resolution.cache_misses
            counters.db_query_count += resolution.db_queries
            counters.lookup_failures.extend(f.kind for f in resolution.failures)

            entries = [
                CanonicalTimeEntry.from_raw(raw, resolution.local_ids(raw))
                for raw in raw_entries
            ]
        except SyncCancelledError:
            logger.info("Harvest sync cancelled (%s to %s)", from_date, to_date)
            raise
        except Exception as e:
            logger.warning(
                "Harvest get_time_entries failed (from=%s to=%s client_id=%s project_id=%s)",
                from_date, to_date, client_id, project_id,
                exc_info=True,
            )
            raise SyncError(
                "HarvestConnector.get_time_entries",
                e,
                provider_name=self.provider_name,
                from_date=from_date,
                to_date=to_date,
                client_id=client_id,
                project_id=project_id,
            ) from e

        self._last_metrics = counters.freeze(len(entries), self.get_cache_metrics())
        logger.info(
            "Harvest: %d entries from %d request(s), %d lookup queries, cache hit rate %.0f%%",
            len(entries),
            counters.harvest_requests,
            counters.db_query_count,
            self._last_metrics.cache_hit_rate * 100,
        )
        return entries

    async def _fetch_all_pages(
        self,
        from_date: date,
        to_date: date,
        client_id: Optional[str],
        project_id: Optional[str],
        counters: _SyncCounters,
        cancel_event: Optional[asyncio.Event],
    ) -> list[RawTimeEntry]:
        params: dict[str, object] = {
            "from": from_date.strftime("%Y-%m-%d"),
            "to": to_date.strftime("%Y-%m-%d"),
            "per_page": PER_PAGE,
        }
        if client_id:
            params["client_id"] = client_id
        if project_id:
            params["project_id"] = project_id

        raw_entries: list[RawTimeEntry] = []
        page: Optional[int] = 1
        while page is not None:
            _raise_if_cancelled(cancel_event)
            counters.harvest_requests += 1
            outcome = RetryOutcome()
            try:
                data = await self._api.get_json(
                    "/time_entries", {**params, "page": page}, outcome=outcome
                )
            finally:
                counters.record_retry(outcome)
            raw_entries.extend(data.get("time_entries") or [])
            page = data.get("next_page")
        return raw_entries

    def get_last_sync_metrics(self) -> Optional[SyncMetrics]:
        """Metrics of the most recent successful sync, or ``None``."""
        return self._last_metrics

    async def preload_cache(self) -> None:
        """Warm all four caches from the full reference tables.

        Failures are logged and swallowed; syncs then start with cold caches.
        """
        try:
            counts = await asyncio.gather(
                *(self._resolver.load_all(kind) for kind in EntityKind)
            )
        except Exception:
            logger.warning(
                "Failed to preload Harvest id caches, will lazy-load as needed",
                exc_info=True,
            )
            return
        logger.info(
            "Preloaded cache with %d clients, %d projects, %d tasks, %d people",
            *counts,
        )

    def get_cache_metrics(self) -> dict[str, CacheMetrics]:
        return {kind.value: cache.metrics() for kind, cache in self._caches.items()}

    def clear_caches(self) -> None:
        for cache in self._caches.values():
            cache.clear()
        logger.info("Harvest id caches cleared")

    def check_memory(self) -> bool:
        """Trim caches if process memory is above the warning threshold.

        Expired entries go first; if memory is still high the caches are
        cleared. Only called between syncs, never during resolution.

        Returns:
            True if the threshold was exceeded.
        """
        if self._memory_threshold_mb <= 0:
            return False
        used_mb = self._memory_probe()
        if used_mb <= self._memory_threshold_mb:
            return False

        total = sum(cache.size for cache in self._caches.values())
        logger.warning(
            "High memory usage: %.0fMB (threshold %dMB), %d cached ids",
            used_mb, self._memory_threshold_mb, total,
        )
        purged = sum(cache.purge_expired() for cache in self._caches.values())
        if purged:
            logger.info("Purged %d expired cache entries", purged)
        if self._memory_probe() > self._memory_threshold_mb:
            self.clear_caches()
        return True

    async def get_current_month_entries(
        self, client_id: Optional[str] = None, today: Optional[date] = None
    ) -> list[CanonicalTimeEntry]:
        today = today or date.today()
        last_day = calendar.monthrange(today.year, today.month)[1]
        return await self.get_time_entries(
            today.replace(day=1), today.replace(day=last_day), client_id
        )

    async def get_clients(self, is_active: bool = True) -> list[HarvestClient]:
        return await self._api.get_clients(is_active)

    async def get_projects(self, is_active: bool = True) -> list[HarvestProject]:
        return await self._api.get_projects(is_active)

    async def get_tasks(self) -> list[HarvestTask]:
        return await self._api.get_tasks()

    async def get_users(self, is_active: bool = True) -> list[HarvestUser]:
        return await self._api.get_users(is_active)

    async def get_project_budget(self, project_id: str) -> ProjectBudget:
        return await self._api.get_project_budget(project_id)

    async def test_connection(self) -> bool:
        return await self._api.test_connection()


def _raise_if_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise SyncCancelledError("Harvest sync cancelled", provider_name="Harvest")
