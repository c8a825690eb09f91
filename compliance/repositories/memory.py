"""
In-memory collaborators for tests and local development.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Dict, List, Optional

from compliance.core.exceptions import DuplicateKYCError
from compliance.models.audit import AuditLogEntry
from compliance.models.base import utcnow
from compliance.models.kyc import KYCRecord
from compliance.models.sanctions import CachedSanctionsResult
from compliance.schemas.compliance import SanctionsCheckResult
from compliance.services.interfaces import AuditLogger, ComplianceDataRepository
from compliance.utils.logging import log_audit_event


class InMemoryComplianceRepository(ComplianceDataRepository):
    """Dictionary-backed compliance data repository.

    Writes for one address are serialized with a per-address lock, so two
    concurrent submissions cannot both replace the record.
    """

    def __init__(self, clock: Callable = utcnow):
        self.clock = clock
        self._kyc_records: Dict[str, KYCRecord] = {}
        self._sanctions_cache: Dict[str, CachedSanctionsResult] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def _address_lock(self, address: str):
        """Hold the write lock for an address; dropped once nobody holds or awaits it."""
        lock = self._locks.get(address)
        if lock is None:
            lock = self._locks[address] = asyncio.Lock()
        self._lock_users[address] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[address] -= 1
            if not self._lock_users[address]:
                del self._lock_users[address]
                del self._locks[address]

    async def get_kyc(self, address: str) -> Optional[KYCRecord]:
        return self._kyc_records.get(address)

    async def save_kyc(self, record: KYCRecord) -> KYCRecord:
        async with self._address_lock(record.address):
            existing = self._kyc_records.get(record.address)
            if existing is not None and existing.is_valid(self.clock()):
                raise DuplicateKYCError(record.address)

            self._kyc_records[record.address] = record
            return record

    async def get_cached_sanctions_result(self, address: str) -> Optional[CachedSanctionsResult]:
        return self._sanctions_cache.get(address)

    async def cache_sanctions_result(self, address: str, result: SanctionsCheckResult) -> None:
        self._sanctions_cache[address] = CachedSanctionsResult(
            address=address,
            result=result.model_dump(),
            cached_at=self.clock(),
        )


class InMemoryAuditLogger(AuditLogger):
    """List-backed append-only audit logger."""

    def __init__(self, clock: Callable = utcnow):
        self.clock = clock
        self._entries: List[AuditLogEntry] = []

    @property
    def entries(self) -> List[AuditLogEntry]:
        """Copy of all entries in write order."""
        return list(self._entries)

    def event_types(self, address: Optional[str] = None) -> List[str]:
        return [
            entry.event_type
            for entry in self._entries
            if address is None or entry.address == address
        ]

    async def log(self, entry: AuditLogEntry) -> None:
        entry.timestamp = self.clock()
        self._entries.append(entry)
        log_audit_event(entry.event_type, entry.address, entry.severity, entry.details)

    async def get_events(self, address: str, from_date: datetime) -> List[AuditLogEntry]:
        return sorted(
            (
                entry for entry in self._entries
                if entry.address == address and entry.timestamp >= from_date
            ),
            key=lambda entry: entry.timestamp,
        )
