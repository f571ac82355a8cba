"""Pydantic schemas for the Harvest sync endpoints."""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, model_validator


class SyncRequest(BaseModel):
    """Request body for triggering a Harvest sync."""

    from_date: date
    to_date: date
    client_id: Optional[str] = None
    project_id: Optional[str] = None
    dry_run: bool = False

    @model_validator(mode="after")
    def validate_date_range(self) -> "SyncRequest":
        if self.from_date > self.to_date:
            raise ValueError("from_date must be on or before to_date")
        return self


class SyncPeriod(BaseModel):
    from_date: date
    to_date: date


class PerformanceResponse(BaseModel):
    """Timing and efficiency figures for one sync."""

    fetch_time_ms: float
    entries_per_second: int
    harvest_api_requests: Optional[int] = None
    db_query_count: Optional[int] = None
    cache_hit_rate: Optional[float] = None


class SyncResponse(BaseModel):
    """Response schema for a completed sync."""

    success: bool = True
    entries_processed: int
    entries_stored: int
    dry_run: bool = False
    period: SyncPeriod
    source: Literal["harvest"] = "harvest"
    performance: PerformanceResponse


class CacheMetricsResponse(BaseModel):
    size: int
    max_size: int
    hits: int
    misses: int
    hit_rate: float
    ttl_ms: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class SyncMetricsResponse(BaseModel):
    """Metrics of the most recent successful sync."""

    harvest_requests: int
    db_query_count: int
    cache_hits: int
    cache_misses: int
    cache_hit_rate: float
    entries_processed: int
    retry_attempts: int
    retry_delay_ms: float
    lookup_failures: list[str]
    cache: dict[str, CacheMetricsResponse]

    model_config = ConfigDict(from_attributes=True)


class TimeEntryResponse(BaseModel):
    """Response schema for a stored time entry."""

    id: str
    harvest_entry_id: str
    date: date
    hours: float
    billable_flag: bool
    invoiced_flag: bool
    notes: Optional[str] = None
    client_id: Optional[str] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    person_id: Optional[str] = None
    billable_rate: float
    billable_amount: float
    cost_rate: float
    cost_amount: float
    currency: str
    external_ref: Optional[str] = None
    synced_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
