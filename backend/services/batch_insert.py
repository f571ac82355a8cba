"""Chunked multi-row INSERT .. ON CONFLICT helper.

Each chunk becomes one statement whose bind parameters are numbered
contiguously (``:p1 .. :pN``) row by row, column by column. Chunking keeps
every statement under the backend's bind-parameter ceiling: the default of
1000 rows x 11-18 columns stays well below SQLite's 32766 and PostgreSQL's
65535. For wider rows, or an engine with a lower limit (SQLite builds
older than 3.32 allow 999), derive the size with :func:`safe_batch_size`.
"""

import logging
from typing import Any, Mapping, Optional, Protocol, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.types import TypeEngine

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000

RecordRow = Sequence[Any]


class StatementSink(Protocol):
    """Anything that can execute a textual statement: a connection or session."""

    async def execute(self, statement: Any, parameters: Any = None) -> Any: ...


def chunk_records(records: Sequence[RecordRow], chunk_size: int) -> list[Sequence[RecordRow]]:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be greater than 0")
    return [records[i:i + chunk_size] for i in range(0, len(records), chunk_size)]


def safe_batch_size(column_count: int, max_parameters: int, ceiling: int = DEFAULT_BATCH_SIZE) -> int:
    """Largest row count whose parameters fit under ``max_parameters``.

    Capped at ``ceiling`` so statements stay a reasonable size even when
    the engine would allow more.
    """
    if column_count <= 0:
        raise ValueError("column_count must be greater than 0")
    return max(1, min(ceiling, max_parameters // column_count))


def build_insert_query(
    table: str,
    columns: Sequence[str],
    records: Sequence[RecordRow],
    conflict_clause: str,
) -> tuple[str, dict[str, Any]]:
    """Build one ``INSERT .. VALUES (..),(..) <conflict_clause>`` and its parameters.

    Raises:
        ValueError: If a row's length differs from ``len(columns)``.
    """
    width = len(columns)
    params: dict[str, Any] = {}
    value_groups = []
    for row_index, record in enumerate(records):
        if len(record) != width:
            raise ValueError(
                f"row {row_index} has {len(record)} values, expected {width}"
            )
        placeholders = []
        for column_index, value in enumerate(record):
            name = f"p{row_index * width + column_index + 1}"
            params[name] = value
            placeholders.append(f":{name}")
        value_groups.append(f"({', '.join(placeholders)})")

    query = (
        f"INSERT INTO {table} ({', '.join(columns)}) "
        f"VALUES {', '.join(value_groups)} "
        f"{conflict_clause}"
    ).strip()
    return query, params


async def batch_insert(
    sink: StatementSink,
    table: str,
    columns: Sequence[str],
    records: Sequence[RecordRow],
    conflict_clause: str,
    batch_size: int = DEFAULT_BATCH_SIZE,
    column_types: Optional[Mapping[str, TypeEngine]] = None,
) -> int:
    """Insert ``records`` in chunks of at most ``batch_size`` rows.

    Args:
        sink: Transactional handle; the caller owns BEGIN/COMMIT/ROLLBACK.
        column_types: Optional SQLAlchemy types per column so values such as
            dates are bound with the backend's conversion rules.

    Returns:
        Number of statements executed (0 when ``records`` is empty).
    """
    if not records:
        return 0

    chunks = chunk_records(records, batch_size)
    width = len(columns)
    for index, chunk in enumerate(chunks):
        query, params = build_insert_query(table, columns, chunk, conflict_clause)
        statement = text(query)
        if column_types:
            typed = [
                bindparam(name, type_=column_types[columns[(int(name[1:]) - 1) % width]])
                for name in params
                if columns[(int(name[1:]) - 1) % width] in column_types
            ]
            if typed:
                statement = statement.bindparams(*typed)
        logger.debug(
            "%s: upserting chunk %d/%d (%d rows)", table, index + 1, len(chunks), len(chunk)
        )
        await sink.execute(statement, params)
    return len(chunks)
