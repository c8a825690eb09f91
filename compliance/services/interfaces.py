"""
Collaborator interfaces consumed by the compliance service.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from compliance.models.audit import AuditLogEntry
from compliance.models.kyc import KYCRecord
from compliance.models.sanctions import CachedSanctionsResult
from compliance.schemas.compliance import (
    ComplianceViolation,
    SanctionsCheckResult,
    SanctionsScreeningRequest,
)


class ComplianceDataRepository(ABC):
    """Persistence for KYC records and cached sanctions results."""

    @abstractmethod
    async def get_kyc(self, address: str) -> Optional[KYCRecord]:
        """
        Get the current KYC record for an address.

        Args:
            address: Address to look up

        Returns:
            KYC record if found, None otherwise
        """
        pass

    @abstractmethod
    async def save_kyc(self, record: KYCRecord) -> KYCRecord:
        """
        Insert or replace the KYC record for ``record.address``.

        Args:
            record: KYC record to persist

        Returns:
            Persisted record

        Raises:
            DuplicateKYCError: If an approved, unexpired record already exists
        """
        pass

    @abstractmethod
    async def get_cached_sanctions_result(self, address: str) -> Optional[CachedSanctionsResult]:
        """
        Get the cached screening result for an address.

        Args:
            address: Screened address

        Returns:
            Cache entry if present, regardless of age
        """
        pass

    @abstractmethod
    async def cache_sanctions_result(self, address: str, result: SanctionsCheckResult) -> None:
        """
        Cache a screening result, replacing any previous entry for the address.

        Args:
            address: Screened address
            result: Fresh screening result
        """
        pass


class SanctionsScreeningProvider(ABC):
    """External sanctions screening."""

    @abstractmethod
    async def screen(self, request: SanctionsScreeningRequest) -> SanctionsCheckResult:
        """
        Screen an address, name and jurisdiction against sanctions lists.

        Args:
            request: Screening request

        Returns:
            Screening result

        Raises:
            ProviderError: If the screening could not be completed
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get provider name for logs and errors."""
        pass


class AuditLogger(ABC):
    """Append-only audit trail."""

    @abstractmethod
    async def log(self, entry: AuditLogEntry) -> None:
        """
        Append an audit entry.

        Args:
            entry: Entry to append; its timestamp is set at write time
        """
        pass

    @abstractmethod
    async def get_events(self, address: str, from_date: datetime) -> List[AuditLogEntry]:
        """
        Get entries for an address written at or after ``from_date``.

        Args:
            address: Address to filter by
            from_date: Start of the time window (UTC)

        Returns:
            Entries ordered by timestamp
        """
        pass


class LockupChecker(ABC):
    """Lockup and vesting restrictions on outgoing transfers."""

    @abstractmethod
    async def check(self, address: str, amount: Decimal) -> List[ComplianceViolation]:
        """
        Check whether ``address`` may transfer ``amount``.

        Args:
            address: Sending address
            amount: Amount to transfer

        Returns:
            Violations, empty when the transfer is not restricted
        """
        pass
