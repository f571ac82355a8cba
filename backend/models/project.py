"""Project model - a Harvest project owned by a client."""

from sqlalchemy import Boolean, Column, ForeignKey, String

from database import Base
from models.utils import HarvestReferenceMixin


class Project(HarvestReferenceMixin, Base):
    """A local project row keyed by its Harvest project id."""

    __tablename__ = "projects"

    code = Column(String, nullable=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=True)
    is_active = Column(Boolean, default=True)
