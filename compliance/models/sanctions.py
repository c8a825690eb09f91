"""
Cached sanctions screening results.
"""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, String

from compliance.models.base import BaseModel, utcnow


class CachedSanctionsResult(BaseModel):
    """Latest screening result for an address."""

    __tablename__ = "sanctions_cache"

    address = Column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
        doc="Screened address, one cache entry per address"
    )

    result = Column(
        JSON,
        nullable=False,
        doc="Serialized screening result"
    )

    cached_at = Column(
        DateTime,
        default=utcnow,
        nullable=False,
        doc="When the result was cached"
    )

    def __repr__(self) -> str:
        return f"<CachedSanctionsResult(address={self.address}, cached_at={self.cached_at})>"

    def age(self, now: Optional[datetime] = None) -> timedelta:
        return (now or utcnow()) - self.cached_at

    def is_stale(self, validity_days: int, now: Optional[datetime] = None) -> bool:
        """Stale once older than the validity window, measured in fractional days."""
        return self.age(now) > timedelta(days=validity_days)
