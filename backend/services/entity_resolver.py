"""Batch resolution of Harvest reference ids to local ids.

For a whole sync's raw entries, collects the unique Harvest ids per entity
kind, serves what it can from the bounded caches, and issues at most one
``WHERE harvest_id IN (...)`` query per kind for the rest. The four kinds
are looked up concurrently. Ids with no local row are cached as ``None``
so they are not queried again while the entry lives.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine

from integrations.exceptions import ReferenceLookupError
from integrations.harvest_protocol import EntityKind, RawTimeEntry, extract_harvest_id
from models import Client, Person, Project, Task
from utils.lru_cache import BoundedLRUCache

logger = logging.getLogger(__name__)

MODELS = {
    EntityKind.CLIENT: Client,
    EntityKind.PROJECT: Project,
    EntityKind.TASK: Task,
    EntityKind.PERSON: Person,
}

IdMapping = dict[str, Optional[str]]
IdCache = BoundedLRUCache[str, Optional[str]]

_MISSING = object()


@dataclass
class ResolutionResult:
    """Per-kind mappings for every id seen, plus what it cost to build them."""

    mappings: dict[EntityKind, IdMapping] = field(
        default_factory=lambda: {kind: {} for kind in EntityKind}
    )
    cache_hits: int = 0
    cache_misses: int = 0
    db_queries: int = 0
    failures: list[ReferenceLookupError] = field(default_factory=list)

    def local_ids(self, raw: RawTimeEntry) -> dict[EntityKind, Optional[str]]:
        """Local ids for one raw entry (``None`` where unresolved)."""
        result = {}
        for kind in EntityKind:
            harvest_id = extract_harvest_id(raw, kind)
            result[kind] = self.mappings[kind].get(harvest_id) if harvest_id else None
        return result


def collect_harvest_ids(entries: Iterable[RawTimeEntry], kind: EntityKind) -> list[str]:
    """Unique Harvest ids of ``kind`` in first-seen order."""
    seen: dict[str, None] = {}
    for entry in entries:
        harvest_id = extract_harvest_id(entry, kind)
        if harvest_id is not None:
            seen.setdefault(harvest_id, None)
    return list(seen)


class EntityIdResolver:
    """Cache-first, batch-on-miss resolver over the four reference tables."""

    def __init__(self, engine: AsyncEngine, caches: dict[EntityKind, IdCache]):
        self._engine = engine
        self._caches = caches

    async def resolve(self, entries: list[RawTimeEntry]) -> ResolutionResult:
        """Resolve every reference in ``entries``.

        Lookup failures for one kind do not affect the others: the failed
        kind's batch is recorded as unresolved (``None``) and the error is
        reported in ``ResolutionResult.failures``.
        """
        result = ResolutionResult()
        pending: dict[EntityKind, list[str]] = {}

        for kind in EntityKind:
            cache = self._caches[kind]
            to_lookup = []
            for harvest_id in collect_harvest_ids(entries, kind):
                cached = cache.get(harvest_id, _MISSING)
                if cached is _MISSING:
                    to_lookup.append(harvest_id)
                else:
                    result.mappings[kind][harvest_id] = cached
            result.cache_hits += len(result.mappings[kind])
            result.cache_misses += len(to_lookup)
            if to_lookup:
                pending[kind] = to_lookup

        if not pending:
            return result

        lookups = await asyncio.gather(
            *(self._lookup_kind(kind, ids) for kind, ids in pending.items())
        )
        for (kind, ids), (mapping, error) in zip(pending.items(), lookups):
            result.db_queries += 1
            if error is not None:
                result.failures.append(error)
            cache = self._caches[kind]
            for harvest_id in ids:
                local_id = mapping.get(harvest_id)
                cache.set(harvest_id, local_id)
                result.mappings[kind][harvest_id] = local_id

        logger.debug(
            "Resolved references: %d cache hits, %d misses, %d queries",
            result.cache_hits, result.cache_misses, result.db_queries,
        )
        return result

    async def _lookup_kind(
        self, kind: EntityKind, harvest_ids: list[str]
    ) -> tuple[IdMapping, Optional[ReferenceLookupError]]:
        """One ``IN`` query for ``kind``; missing ids map to ``None``."""
        model = MODELS[kind]
        try:
            async with self._engine.connect() as conn:
                rows = await conn.execute(
                    select(model.id, model.harvest_id).where(model.harvest_id.in_(harvest_ids))
                )
                found = {str(harvest_id): local_id for local_id, harvest_id in rows}
        except Exception as e:
            error = ReferenceLookupError(kind.value, len(harvest_ids), e)
            logger.warning(
                "Reference lookup failed for %s (%d ids); treating batch as unresolved",
                kind.value, len(harvest_ids), exc_info=True,
            )
            return {harvest_id: None for harvest_id in harvest_ids}, error

        return {harvest_id: found.get(harvest_id) for harvest_id in harvest_ids}, None

    async def load_all(self, kind: EntityKind) -> int:
        """Warm ``kind``'s cache from the full reference table."""
        model = MODELS[kind]
        async with self._engine.connect() as conn:
            rows = await conn.execute(
                select(model.id, model.harvest_id).where(model.harvest_id.is_not(None))
            )
            count = 0
            for local_id, harvest_id in rows:
                self._caches[kind].set(str(harvest_id), local_id)
                count += 1
        return count
