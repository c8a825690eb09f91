"""
Append-only audit log model.
"""
from sqlalchemy import Column, DateTime, String, Text

from compliance.models.base import BaseModel, utcnow


class AuditLogEntry(BaseModel):
    """Immutable compliance audit entry."""

    __tablename__ = "audit_logs"

    event_type = Column(
        String(100),
        nullable=False,
        index=True,
        doc="Event code, e.g. KYC_SUBMITTED"
    )

    address = Column(
        String(255),
        nullable=False,
        index=True,
        doc="Address the event is attributed to"
    )

    details = Column(Text, nullable=True, doc="Human-readable event details")

    severity = Column(String(20), nullable=True, doc="Severity, e.g. CRITICAL")

    timestamp = Column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True,
        doc="UTC time the entry was written"
    )

    def __repr__(self) -> str:
        return f"<AuditLogEntry(event_type={self.event_type}, address={self.address}, timestamp={self.timestamp})>"
