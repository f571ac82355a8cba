"""Tests for the batch entity-id resolver."""

import asyncio

from sqlalchemy import text
from sqlalchemy.pool import NullPool

from database import build_engine
from integrations.exceptions import ReferenceLookupError
from integrations.harvest_protocol import EntityKind
from services.entity_resolver import EntityIdResolver, collect_harvest_ids
from tests.fixtures import CLIENT_IDS, PERSON_IDS, make_raw_entry
from utils.lru_cache import BoundedLRUCache


def _caches(max_size: int = 100):
    return {kind: BoundedLRUCache(max_size) for kind in EntityKind}


class TestCollectHarvestIds:
    def test_unique_in_first_seen_order(self):
        entries = [
            make_raw_entry(1, client=102),
            make_raw_entry(2, client=101, nested=False),
            make_raw_entry(3, client=102),
        ]
        assert collect_harvest_ids(entries, EntityKind.CLIENT) == ["102", "101"]

    def test_missing_references_skipped(self):
        entries = [make_raw_entry(1, task=None)]
        assert collect_harvest_ids(entries, EntityKind.TASK) == []


class TestResolve:
    def test_one_query_per_kind_on_cold_cache(self, seeded_engine):
        resolver = EntityIdResolver(seeded_engine, _caches())
        entries = [make_raw_entry(1), make_raw_entry(2, client=102, user=402)]

        result = asyncio.run(resolver.resolve(entries))

        assert result.db_queries == 4
        assert result.cache_hits == 0
        assert result.cache_misses == 2 + 1 + 1 + 2
        assert result.mappings[EntityKind.CLIENT] == {"101": "client-1", "102": "client-2"}
        assert result.local_ids(entries[1])[EntityKind.PERSON] == PERSON_IDS["402"]

    def test_missing_id_cached_as_none(self, seeded_engine):
        caches = _caches()
        resolver = EntityIdResolver(seeded_engine, caches)
        entries = [make_raw_entry(1, client=999)]

        first = asyncio.run(resolver.resolve(entries))
        second = asyncio.run(resolver.resolve(entries))

        assert first.mappings[EntityKind.CLIENT] == {"999": None}
        assert caches[EntityKind.CLIENT].has("999")
        assert second.db_queries == 0
        assert second.cache_hits == 4
        assert second.local_ids(entries[0])[EntityKind.CLIENT] is None

    def test_partial_cache_queries_only_misses(self, seeded_engine):
        caches = _caches()
        caches[EntityKind.CLIENT].set("101", CLIENT_IDS["101"])
        resolver = EntityIdResolver(seeded_engine, caches)

        result = asyncio.run(
            resolver.resolve([make_raw_entry(1), make_raw_entry(2, client=102)])
        )

        assert result.cache_hits == 1
        assert result.mappings[EntityKind.CLIENT]["102"] == "client-2"

    def test_numeric_and_string_ids_share_cache_key(self, seeded_engine):
        resolver = EntityIdResolver(seeded_engine, _caches())
        entries = [make_raw_entry(1, client=101), {**make_raw_entry(2), "client": {"id": "101"}}]

        result = asyncio.run(resolver.resolve(entries))

        assert list(result.mappings[EntityKind.CLIENT]) == ["101"]

    def test_mappings_survive_eviction(self, seeded_engine):
        resolver = EntityIdResolver(seeded_engine, _caches(max_size=1))
        entries = [make_raw_entry(1), make_raw_entry(2, client=102)]

        result = asyncio.run(resolver.resolve(entries))

        assert result.local_ids(entries[0])[EntityKind.CLIENT] == "client-1"
        assert result.local_ids(entries[1])[EntityKind.CLIENT] == "client-2"

    def test_empty_input(self, seeded_engine):
        result = asyncio.run(EntityIdResolver(seeded_engine, _caches()).resolve([]))
        assert result.db_queries == 0
        assert result.failures == []


class TestLookupFailure:
    def test_failed_kind_degrades_to_none_without_affecting_others(self, seeded_engine):
        async def drop_people():
            async with seeded_engine.begin() as conn:
                await conn.execute(text("DROP TABLE people"))

        asyncio.run(drop_people())
        caches = _caches()
        resolver = EntityIdResolver(seeded_engine, caches)

        result = asyncio.run(resolver.resolve([make_raw_entry(1)]))

        ids = result.local_ids(make_raw_entry(1))
        assert ids[EntityKind.PERSON] is None
        assert ids[EntityKind.CLIENT] == "client-1"
        assert ids[EntityKind.PROJECT] == "project-1"
        assert ids[EntityKind.TASK] == "task-1"
        assert len(result.failures) == 1
        assert isinstance(result.failures[0], ReferenceLookupError)
        assert result.failures[0].kind == "people"

    def test_unreachable_database(self, tmp_path):
        engine = build_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nope.db'}", poolclass=NullPool
        )
        resolver = EntityIdResolver(engine, _caches())

        result = asyncio.run(resolver.resolve([make_raw_entry(1)]))

        assert {f.kind for f in result.failures} == {"clients", "projects", "tasks", "people"}
        assert all(v is None for v in result.local_ids(make_raw_entry(1)).values())


class TestLoadAll:
    def test_warms_cache_from_table(self, seeded_engine):
        caches = _caches()
        resolver = EntityIdResolver(seeded_engine, caches)

        count = asyncio.run(resolver.load_all(EntityKind.CLIENT))

        assert count == 2
        assert dict(caches[EntityKind.CLIENT].items()) == CLIENT_IDS
