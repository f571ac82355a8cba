"""Person model - a Harvest user who logs time."""

from sqlalchemy import Boolean, Column, String

from database import Base
from models.utils import HarvestReferenceMixin


class Person(HarvestReferenceMixin, Base):
    """A local person row keyed by the Harvest user id."""

    __tablename__ = "people"

    email = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
