"""Transactional sink for canonical time entries.

One sync's rows are written in a single transaction:
BEGIN -> chunked upsert -> COMMIT, or ROLLBACK on any failure. The
connection is acquired for the duration of the write and always
released, whichever path is taken.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncEngine

from config import settings
from database import max_bind_parameters
from integrations.exceptions import TransactionFailure
from integrations.harvest_protocol import CanonicalTimeEntry
from models import TimeEntry, generate_uuid
from services.batch_insert import batch_insert, safe_batch_size

logger = logging.getLogger(__name__)

TABLE = TimeEntry.__tablename__
KEY_COLUMN = "harvest_entry_id"

# Column order of every upserted row; ``id`` is only used on first insert.
COLUMNS: tuple[str, ...] = (
    "id",
    KEY_COLUMN,
    "date",
    "hours",
    "billable_flag",
    "invoiced_flag",
    "notes",
    "client_id",
    "project_id",
    "task_id",
    "person_id",
    "billable_rate",
    "billable_amount",
    "cost_rate",
    "cost_amount",
    "currency",
    "external_ref",
    "synced_at",
)

UPDATE_COLUMNS = tuple(c for c in COLUMNS if c not in ("id", KEY_COLUMN))

CONFLICT_CLAUSE = (
    f"ON CONFLICT ({KEY_COLUMN}) DO UPDATE SET "
    + ", ".join(f"{c} = EXCLUDED.{c}" for c in UPDATE_COLUMNS)
)

COLUMN_TYPES = {c: TimeEntry.__table__.c[c].type for c in COLUMNS}


def entry_to_row(entry: CanonicalTimeEntry, synced_at: datetime) -> tuple[Any, ...]:
    return (
        generate_uuid(),
        entry.entry_id,
        entry.date,
        entry.hours,
        entry.billable_flag,
        entry.invoiced_flag,
        entry.notes,
        entry.client_id,
        entry.project_id,
        entry.task_id,
        entry.person_id,
        entry.billable_rate,
        entry.billable_amount,
        entry.cost_rate,
        entry.cost_amount,
        entry.currency,
        entry.external_ref,
        synced_at,
    )


class TimeEntryStore:
    """Writes canonical entries to ``time_entries`` with full-overwrite upserts."""

    def __init__(self, engine: AsyncEngine, batch_size: Optional[int] = None):
        """Initialize with an engine and an optional explicit chunk size.

        Without ``batch_size`` the configured ``SYNC_BATCH_SIZE`` is used,
        lowered if needed so a chunk fits the backend's parameter limit.
        """
        self._engine = engine
        configured = batch_size or settings.SYNC_BATCH_SIZE or 1
        self.batch_size = safe_batch_size(
            len(COLUMNS), max_bind_parameters(engine), ceiling=configured
        )

    async def upsert(self, entries: Sequence[CanonicalTimeEntry]) -> int:
        """Store ``entries`` in one transaction.

        Returns:
            Number of distinct entries written.

        Raises:
            TransactionFailure: Any error while upserting; the transaction
                has been rolled back and the connection released.
        """
        # One row per key: ON CONFLICT DO UPDATE cannot touch a row twice in
        # one statement. Pages can repeat an entry; the later copy wins.
        unique = {e.entry_id: e for e in entries}
        if len(unique) < len(entries):
            logger.info(
                "Dropped %d repeated time entries before upsert", len(entries) - len(unique)
            )
        synced_at = datetime.now(timezone.utc)
        rows = [entry_to_row(e, synced_at) for e in unique.values()]

        async with self._engine.connect() as conn:
            transaction = await conn.begin()
            try:
                statements = await batch_insert(
                    conn,
                    TABLE,
                    COLUMNS,
                    rows,
                    CONFLICT_CLAUSE,
                    batch_size=self.batch_size,
                    column_types=COLUMN_TYPES,
                )
                await transaction.commit()
            except Exception as e:
                await transaction.rollback()
                logger.error(
                    "Time entry upsert failed, rolled back %d entries", len(rows),
                    exc_info=True,
                )
                raise TransactionFailure(
                    f"Failed to store {len(rows)} time entries: {e}",
                    entry_count=len(rows),
                ) from e

        logger.info(
            "Stored %d time entries in %d statement(s)", len(rows), statements
        )
        return len(rows)
