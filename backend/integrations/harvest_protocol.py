"""Record types shared by the Harvest client, resolver and connector.

Raw time entries are the JSON objects returned by ``GET /time_entries``.
References to clients, projects, tasks and users arrive either nested
(``{"client": {"id": 7, "name": "Acme"}}``) or flat (``{"client_id": 7}``);
:func:`extract_harvest_id` accepts both so no other code has to care.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional

from utils.lru_cache import CacheMetrics

# One element of the ``time_entries`` array, consumed once per sync.
RawTimeEntry = dict[str, Any]

CURRENCY = "GBP"


class EntityKind(str, Enum):
    """A Harvest entity referenced by time entries; value is the local table."""

    CLIENT = "clients"
    PROJECT = "projects"
    TASK = "tasks"
    PERSON = "people"

    @property
    def nested_key(self) -> str:
        # Harvest calls people "users"
        return "user" if self is EntityKind.PERSON else self.name.lower()

    @property
    def flat_key(self) -> str:
        return f"{self.nested_key}_id"


def _normalize_id(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def extract_harvest_id(raw: RawTimeEntry, kind: EntityKind) -> Optional[str]:
    """Return the upstream id for ``kind`` as a string, nested form first.

    Ids are coerced to strings so cache keys are stable whether Harvest
    sends numbers or strings.
    """
    nested = raw.get(kind.nested_key)
    if isinstance(nested, dict):
        found = _normalize_id(nested.get("id"))
        if found is not None:
            return found
    return _normalize_id(raw.get(kind.flat_key))


def _nested_str(raw: RawTimeEntry, key: str, attr: str) -> str:
    nested = raw.get(key)
    if isinstance(nested, dict):
        return nested.get(attr) or ""
    return ""


@dataclass
class CanonicalTimeEntry:
    """A Harvest time entry mapped to local ids, ready for storage.

    ``billable_amount`` is 0 for non-billable entries whatever the rate;
    ``cost_amount`` is always hours * cost_rate.
    """

    entry_id: str
    date: date
    hours: float
    billable_flag: bool
    notes: str
    client_id: Optional[str]
    project_id: Optional[str]
    task_id: Optional[str]
    person_id: Optional[str]
    billable_rate: float
    billable_amount: float
    cost_rate: float
    cost_amount: float
    currency: str = CURRENCY
    external_ref: Optional[str] = None
    invoiced_flag: bool = False
    client_name: str = ""
    project_name: str = ""
    task_name: str = ""
    first_name: str = ""
    last_name: str = ""
    role: str = ""

    @classmethod
    def from_raw(
        cls,
        raw: RawTimeEntry,
        local_ids: dict[EntityKind, Optional[str]],
    ) -> "CanonicalTimeEntry":
        """Map one raw entry, substituting resolved local ids (or ``None``)."""
        hours = float(raw.get("hours") or 0)
        billable = bool(raw.get("billable"))
        billable_rate = float(raw.get("billable_rate") or 0)
        cost_rate = float(raw.get("cost_rate") or 0)
        external = raw.get("external_reference")
        external_ref = _normalize_id(external.get("id")) if isinstance(external, dict) else None
        assignment = raw.get("user_assignment")
        role = (assignment.get("role") or "") if isinstance(assignment, dict) else ""

        return cls(
            entry_id=str(raw["id"]),
            date=date.fromisoformat(raw["spent_date"]),
            hours=hours,
            billable_flag=billable,
            notes=raw.get("notes") or "",
            client_id=local_ids.get(EntityKind.CLIENT),
            project_id=local_ids.get(EntityKind.PROJECT),
            task_id=local_ids.get(EntityKind.TASK),
            person_id=local_ids.get(EntityKind.PERSON),
            billable_rate=billable_rate,
            billable_amount=hours * billable_rate if billable else 0.0,
            cost_rate=cost_rate,
            cost_amount=hours * cost_rate,
            external_ref=external_ref,
            invoiced_flag=bool(raw.get("is_locked")),
            client_name=_nested_str(raw, "client", "name"),
            project_name=_nested_str(raw, "project", "name"),
            task_name=_nested_str(raw, "task", "name"),
            first_name=_nested_str(raw, "user", "first_name"),
            last_name=_nested_str(raw, "user", "last_name"),
            role=role,
        )


@dataclass
class HarvestClient:
    id: int
    name: str
    is_active: bool


@dataclass
class HarvestProject:
    id: int
    name: str
    client_id: Optional[int]
    is_active: bool
    code: Optional[str] = None


@dataclass
class HarvestTask:
    id: int
    name: str
    billable_by_default: bool
    is_active: bool
    default_hourly_rate: Optional[float] = None


@dataclass
class HarvestUser:
    id: int
    first_name: str
    last_name: str
    email: str
    is_active: bool


@dataclass
class ProjectBudget:
    budget: Optional[float]
    budget_by: Optional[str]
    budget_is_monthly: bool


@dataclass(frozen=True)
class SyncMetrics:
    """Counters for one ``get_time_entries`` call.

    Built fresh per call and frozen when the call finishes; never merged
    across syncs.
    """

    harvest_requests: int = 0
    db_query_count: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    entries_processed: int = 0
    retry_attempts: int = 0
    retry_delay_ms: float = 0.0
    lookup_failures: tuple[str, ...] = ()
    cache: dict[str, CacheMetrics] = field(default_factory=dict)

    @property
    def cache_hit_rate(self) -> float:
        """Share of reference ids served from cache (0 when none were requested)."""
        total = self.cache_hits + self.cache_misses
        return 0.0 if total == 0 else self.cache_hits / total
