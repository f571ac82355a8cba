"""Shared utilities for ORM models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HarvestReferenceMixin:
    """Columns shared by every table that mirrors a Harvest entity.

    ``harvest_id`` is the upstream id stored as text so lookups match the
    string keys used by the resolver cache.
    """

    id = Column(String(36), primary_key=True, default=generate_uuid)
    harvest_id = Column(String, nullable=True, unique=True, index=True)
    name = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
