"""Time entries API endpoints (read-only view of synced data)."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import TimeEntry
from schemas import TimeEntryResponse

router = APIRouter(prefix="/api/time-entries", tags=["time-entries"])


@router.get("", response_model=list[TimeEntryResponse])
async def list_time_entries(
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    client_id: Optional[str] = Query(default=None, description="Local client id"),
    project_id: Optional[str] = Query(default=None, description="Local project id"),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """List stored time entries, newest first."""
    query = select(TimeEntry)
    if start_date:
        query = query.where(TimeEntry.date >= start_date)
    if end_date:
        query = query.where(TimeEntry.date <= end_date)
    if client_id:
        query = query.where(TimeEntry.client_id == client_id)
    if project_id:
        query = query.where(TimeEntry.project_id == project_id)
    query = query.order_by(TimeEntry.date.desc(), TimeEntry.harvest_entry_id).offset(offset).limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
