"""Test fixtures and sample data."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from database import get_session_local
from models import Client, Person, Project, Task

# Local ids of the seeded reference rows, keyed by Harvest id
CLIENT_IDS = {"101": "client-1", "102": "client-2"}
PROJECT_IDS = {"201": "project-1", "202": "project-2"}
TASK_IDS = {"301": "task-1"}
PERSON_IDS = {"401": "person-1", "402": "person-2"}


async def seed_reference_data(engine: AsyncEngine) -> None:
    """Insert a small set of clients, projects, tasks and people."""
    SessionLocal = get_session_local(engine)
    async with SessionLocal() as db:
        for harvest_id, local_id in CLIENT_IDS.items():
            db.add(Client(id=local_id, harvest_id=harvest_id, name=f"Client {harvest_id}"))
        for harvest_id, local_id in PROJECT_IDS.items():
            db.add(Project(id=local_id, harvest_id=harvest_id, name=f"Project {harvest_id}"))
        for harvest_id, local_id in TASK_IDS.items():
            db.add(Task(id=local_id, harvest_id=harvest_id, name=f"Task {harvest_id}"))
        for harvest_id, local_id in PERSON_IDS.items():
            db.add(Person(id=local_id, harvest_id=harvest_id, name=f"Person {harvest_id}"))
        await db.commit()


def make_raw_entry(
    entry_id: int,
    *,
    client: int | None = 101,
    project: int | None = 201,
    task: int | None = 301,
    user: int | None = 401,
    hours: float = 8,
    billable: bool = True,
    billable_rate: float | None = 100,
    cost_rate: float | None = 50,
    spent_date: str = "2024-01-15",
    notes: str | None = "Work",
    nested: bool = True,
) -> dict[str, Any]:
    """Build a Harvest ``time_entries`` element.

    With ``nested=False`` references use the flat ``client_id`` form.
    """
    raw: dict[str, Any] = {
        "id": entry_id,
        "spent_date": spent_date,
        "hours": hours,
        "billable": billable,
        "billable_rate": billable_rate,
        "cost_rate": cost_rate,
        "notes": notes,
        "is_locked": False,
    }
    refs = {"client": client, "project": project, "task": task, "user": user}
    for key, harvest_id in refs.items():
        if harvest_id is None:
            continue
        if nested:
            raw[key] = {"id": harvest_id, "name": f"{key} {harvest_id}"}
        else:
            raw[f"{key}_id"] = harvest_id
    return raw
