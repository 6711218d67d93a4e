"""Profile model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from civic_portal.database import Base


class Profile(Base):
    """Optional contact details a user attaches after registration."""
    __tablename__ = "profiles"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    full_name = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    country = Column(String, nullable=True)
