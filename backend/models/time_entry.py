"""TimeEntry model - the synced, storage-ready Harvest time entry."""

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, String, Text

from database import Base
from models.utils import generate_uuid, utcnow


class TimeEntry(Base):
    """One row per Harvest time entry.

    ``harvest_entry_id`` is the natural key; re-syncing an entry overwrites
    every other column via ``ON CONFLICT (harvest_entry_id) DO UPDATE``.
    Reference ids are ``NULL`` when the Harvest entity has no local row.
    """

    __tablename__ = "time_entries"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    harvest_entry_id = Column(String, nullable=False, unique=True)
    date = Column(Date, nullable=False)
    hours = Column(Float, nullable=False, default=0.0)
    billable_flag = Column(Boolean, nullable=False, default=False)
    invoiced_flag = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=True)
    task_id = Column(String(36), ForeignKey("tasks.id"), nullable=True)
    person_id = Column(String(36), ForeignKey("people.id"), nullable=True)
    billable_rate = Column(Float, nullable=False, default=0.0)
    billable_amount = Column(Float, nullable=False, default=0.0)
    cost_rate = Column(Float, nullable=False, default=0.0)
    cost_amount = Column(Float, nullable=False, default=0.0)
    currency = Column(String(3), nullable=False, default="GBP")
    external_ref = Column(String, nullable=True)
    synced_at = Column(DateTime, default=utcnow, onupdate=utcnow)
