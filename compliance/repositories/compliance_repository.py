"""
SQL repository for KYC records and cached sanctions results.
"""

from typing import Callable, Optional

from sqlalchemy.orm import Session

from compliance.core.exceptions import DuplicateKYCError
from compliance.models.base import utcnow
from compliance.models.kyc import KYCRecord
from compliance.models.sanctions import CachedSanctionsResult
from compliance.repositories.base import BaseRepository
from compliance.schemas.compliance import SanctionsCheckResult
from compliance.services.interfaces import ComplianceDataRepository

# Columns copied when a new submission replaces an existing record
KYC_RECORD_FIELDS = (
    "legal_name",
    "date_of_birth",
    "jurisdiction",
    "accreditation_level",
    "document_hash",
    "submitted_at",
    "expires_at",
    "is_approved",
    "status",
)


class KYCRecordRepository(BaseRepository[KYCRecord]):
    """Repository for KYC record operations."""

    def __init__(self, db: Session):
        """Initialize KYC record repository."""
        super().__init__(KYCRecord, db)

    def get_by_address(self, address: str) -> Optional[KYCRecord]:
        """
        Get the KYC record for an address.

        Args:
            address: Record address

        Returns:
            KYC record if found
        """
        return self.get_one_by(address=address)


class SanctionsCacheRepository(BaseRepository[CachedSanctionsResult]):
    """Repository for cached sanctions results."""

    def __init__(self, db: Session):
        """Initialize sanctions cache repository."""
        super().__init__(CachedSanctionsResult, db)

    def get_by_address(self, address: str) -> Optional[CachedSanctionsResult]:
        return self.get_one_by(address=address)


class SQLComplianceRepository(ComplianceDataRepository):
    """Compliance data repository backed by a SQLAlchemy session.

    The unique constraint on ``kyc_records.address`` keeps one current record
    per address. A concurrent insert that loses the race surfaces as a
    ``RepositoryError`` from the failed commit.
    """

    def __init__(self, db: Session, clock: Callable = utcnow):
        """
        Initialize repository.

        Args:
            db: Database session
            clock: Returns the current naive UTC time
        """
        self.db = db
        self.clock = clock
        self.kyc_records = KYCRecordRepository(db)
        self.sanctions_cache = SanctionsCacheRepository(db)

    async def get_kyc(self, address: str) -> Optional[KYCRecord]:
        return self.kyc_records.get_by_address(address)

    async def save_kyc(self, record: KYCRecord) -> KYCRecord:
        existing = self.kyc_records.get_by_address(record.address)

        if existing is None:
            return self.kyc_records.add(record)

        if existing.is_valid(self.clock()):
            raise DuplicateKYCError(record.address)

        for field in KYC_RECORD_FIELDS:
            setattr(existing, field, getattr(record, field))
        return self.kyc_records.add(existing)

    async def get_cached_sanctions_result(self, address: str) -> Optional[CachedSanctionsResult]:
        return self.sanctions_cache.get_by_address(address)

    async def cache_sanctions_result(self, address: str, result: SanctionsCheckResult) -> None:
        entry = self.sanctions_cache.get_by_address(address)
        if entry is None:
            entry = CachedSanctionsResult(address=address)

        entry.result = result.model_dump()
        entry.cached_at = self.clock()
        self.sanctions_cache.add(entry)
