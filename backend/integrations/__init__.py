"""External API integrations.

This package contains:
- Harvest protocol: raw/canonical time entry types and sync metrics
- Harvest client: async Harvest v2 API client
- Retry: status-classified retry with backoff
- Exceptions: connector error hierarchy
"""

from integrations.harvest_protocol import (
    CanonicalTimeEntry,
    EntityKind,
    RawTimeEntry,
    SyncMetrics,
)

__all__ = [
    "CanonicalTimeEntry",
    "EntityKind",
    "RawTimeEntry",
    "SyncMetrics",
]
