"""Complaint model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text

from civic_portal.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Complaint(Base):
    """Represents a citizen complaint and its admin response."""
    __tablename__ = "complaints"
    __table_args__ = (
        Index("idx_complaints_owner_created", "owner_id", "created_at"),
        Index("idx_complaints_status_category", "status", "category"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String, nullable=False)
    location = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    response = Column(Text, nullable=True)
    response_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    # Optimistic concurrency token; bumped by every versioned write.
    version = Column(Integer, nullable=False, default=1)
