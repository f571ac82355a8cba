"""Task model - a Harvest task type (e.g. Design, Development)."""

from sqlalchemy import Boolean, Column

from database import Base
from models.utils import HarvestReferenceMixin


class Task(HarvestReferenceMixin, Base):
    __tablename__ = "tasks"

    billable_by_default = Column(Boolean, default=True)
    is_active = Column(Boolean, default=True)
