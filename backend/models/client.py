"""Client model - a billed customer mirrored from Harvest."""

from sqlalchemy import Boolean, Column

from database import Base
from models.utils import HarvestReferenceMixin


class Client(HarvestReferenceMixin, Base):
    """A local client row keyed by its Harvest client id."""

    __tablename__ = "clients"

    is_active = Column(Boolean, default=True)
