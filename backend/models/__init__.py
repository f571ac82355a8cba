"""SQLAlchemy ORM models."""

from .client import Client
from .person import Person
from .project import Project
from .task import Task
from .time_entry import TimeEntry
from .utils import generate_uuid

__all__ = ["Client", "Person", "Project", "Task", "TimeEntry", "generate_uuid"]
