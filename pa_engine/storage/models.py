"""SQLAlchemy ORM models for the durable metadata cache."""
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, JSON, Index
from sqlalchemy.orm import declarative_base


def _utcnow():
    """Return current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


Base = declarative_base()


class MetadataCacheModel(Base):
    """Cached drug metadata lookup, keyed by type and normalized parameters."""
    __tablename__ = "metadata_cache"

    key = Column(String(500), primary_key=True)
    cache_type = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=True)

    cached_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('ix_metadata_cache_type', 'cache_type'),
        Index('ix_metadata_cache_expires', 'expires_at'),
    )
