"""Pydantic schemas for API request/response validation."""

from schemas.sync import (
    CacheMetricsResponse,
    PerformanceResponse,
    SyncMetricsResponse,
    SyncPeriod,
    SyncRequest,
    SyncResponse,
    TimeEntryResponse,
)

__all__ = [
    "CacheMetricsResponse",
    "PerformanceResponse",
    "SyncMetricsResponse",
    "SyncPeriod",
    "SyncRequest",
    "SyncResponse",
    "TimeEntryResponse",
]
