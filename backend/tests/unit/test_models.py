"""Unit tests for SQLAlchemy models."""

import asyncio
from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from database import get_session_local
from models import Client, Project, TimeEntry
from tests.fixtures import CLIENT_IDS


def _add_and_commit(engine, *objects):
    async def go():
        async with get_session_local(engine)() as db:
            db.add_all(objects)
            await db.commit()

    asyncio.run(go())


def test_reference_row_defaults(engine):
    """Reference rows get a generated id and timestamps."""
    _add_and_commit(engine, Client(harvest_id="555", name="Acme"))

    async def load():
        async with get_session_local(engine)() as db:
            return (await db.execute(select(Client))).scalar_one()

    client = asyncio.run(load())
    assert len(client.id) == 36
    assert client.is_active is True
    assert client.created_at is not None


def test_harvest_id_is_unique(seeded_engine):
    with pytest.raises(IntegrityError):
        _add_and_commit(seeded_engine, Client(harvest_id="101", name="Duplicate"))


def test_harvest_id_unique_per_table(seeded_engine):
    """The same Harvest id may exist in different reference tables."""
    _add_and_commit(seeded_engine, Project(harvest_id="101", name="Shares a client id"))


def test_time_entry_defaults(seeded_engine):
    _add_and_commit(
        seeded_engine,
        TimeEntry(harvest_entry_id="9001", date=date(2024, 1, 15), client_id=CLIENT_IDS["101"]),
    )

    async def load():
        async with get_session_local(seeded_engine)() as db:
            return (await db.execute(select(TimeEntry))).scalar_one()

    entry = asyncio.run(load())
    assert entry.hours == 0.0
    assert entry.billable_flag is False
    assert entry.currency == "GBP"
    assert entry.project_id is None
    assert entry.synced_at is not None


def test_time_entry_natural_key_is_unique(engine):
    _add_and_commit(engine, TimeEntry(harvest_entry_id="1", date=date(2024, 1, 1)))
    with pytest.raises(IntegrityError):
        _add_and_commit(engine, TimeEntry(harvest_entry_id="1", date=date(2024, 1, 2)))
