"""
SQL audit logger. Insert-only: entries are never updated or deleted.
"""

from datetime import datetime
from typing import Callable, List

from sqlalchemy.orm import Session

from compliance.models.audit import AuditLogEntry
from compliance.models.base import utcnow
from compliance.repositories.base import BaseRepository
from compliance.services.interfaces import AuditLogger
from compliance.utils.logging import log_audit_event


class AuditLogRepository(BaseRepository[AuditLogEntry]):
    """Repository for audit log entries."""

    def __init__(self, db: Session):
        """Initialize audit log repository."""
        super().__init__(AuditLogEntry, db)

    def get_by_address_since(self, address: str, from_date: datetime) -> List[AuditLogEntry]:
        """
        Get entries for an address written at or after a point in time.

        Args:
            address: Address to filter by
            from_date: Start of the time window

        Returns:
            Entries ordered by timestamp
        """
        return (
            self.db.query(AuditLogEntry)
            .filter(AuditLogEntry.address == address)
            .filter(AuditLogEntry.timestamp >= from_date)
            .order_by(AuditLogEntry.timestamp)
            .all()
        )


class SQLAuditLogger(AuditLogger):
    """Audit logger persisting entries through a SQLAlchemy session."""

    def __init__(self, db: Session, clock: Callable = utcnow):
        self.entries = AuditLogRepository(db)
        self.clock = clock

    async def log(self, entry: AuditLogEntry) -> None:
        entry.timestamp = self.clock()
        self.entries.add(entry)
        log_audit_event(entry.event_type, entry.address, entry.severity, entry.details)

    async def get_events(self, address: str, from_date: datetime) -> List[AuditLogEntry]:
        return self.entries.get_by_address_since(address, from_date)
