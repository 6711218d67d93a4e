"""Revoked token model definitions."""

from sqlalchemy import Column, DateTime, String
from civic_portal.database import Base


class RevokedToken(Base):
    """Access tokens invalidated by logout before their expiry."""
    __tablename__ = "revoked_tokens"

    jti = Column(String, primary_key=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
