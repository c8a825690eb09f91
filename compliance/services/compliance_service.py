"""
Compliance authorization service: KYC validity, sanctions screening and
transfer authorization with an immutable audit trail.

Every public operation is fail-safe. Screening and authorization fail closed
(block/deny), lookups fail to a safe default, and no exception reaches the
caller.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from compliance.core.config import settings
from compliance.core.exceptions import DuplicateKYCError, EncryptionError
from compliance.core.result import Outcome, attempt, fail_safe
from compliance.models.audit import AuditLogEntry
from compliance.models.base import utcnow
from compliance.models.kyc import KYCRecord, KYCStatus, one_year_after
from compliance.schemas.compliance import (
    ComplianceEvent,
    ComplianceViolation,
    KYCData,
    KYCSubmissionResult,
    SanctionsCheckResult,
    SanctionsScreeningRequest,
    TransferAuthorizationResult,
)
from compliance.services.interfaces import (
    AuditLogger,
    ComplianceDataRepository,
    LockupChecker,
    SanctionsScreeningProvider,
)
from compliance.services.lockup import NoLockupChecker
from compliance.utils.encryption import encrypt_pii
from compliance.utils.logging import get_logger

logger = get_logger(__name__)

MINIMUM_AGE_YEARS = 18

VALID_KYC_ON_FILE = "Valid KYC already on file"
SANCTIONS_SCREENING_FAILED = "Failed sanctions screening - contact support"
SYSTEM_ERROR_RETRY = "System error - please try again"


class AuditEventType(str, Enum):
    """Audit event codes written by the service."""
    KYC_VALIDATION_FAILED = "KYC_VALIDATION_FAILED"
    KYC_SUBMITTED = "KYC_SUBMITTED"
    KYC_EXPIRED = "KYC_EXPIRED"
    SANCTIONS_MATCH = "SANCTIONS_MATCH"
    TRANSFER_DENIED = "TRANSFER_DENIED"


class Severity(str, Enum):
    """Audit severities."""
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class ViolationCode(str, Enum):
    """Compliance violation codes."""
    SENDER_KYC_INVALID = "SENDER_KYC_INVALID"
    RECIPIENT_KYC_INVALID = "RECIPIENT_KYC_INVALID"
    SENDER_SANCTIONED = "SENDER_SANCTIONED"
    RECIPIENT_SANCTIONED = "RECIPIENT_SANCTIONED"
    KYC_INVALID = "KYC_INVALID"
    SANCTIONED = "SANCTIONED"
    SYSTEM_ERROR = "SYSTEM_ERROR"


def _violation(code: ViolationCode, message: str) -> ComplianceViolation:
    return ComplianceViolation(code=code.value, message=message)


def _submission_system_error() -> KYCSubmissionResult:
    return KYCSubmissionResult(success=False, errors=[SYSTEM_ERROR_RETRY])


def _authorization_system_error() -> TransferAuthorizationResult:
    return TransferAuthorizationResult(
        is_authorized=False,
        violations=[_violation(ViolationCode.SYSTEM_ERROR, "System error during authorization")],
    )


class ComplianceService:
    """Rule-based compliance decisions over injected collaborators."""

    def __init__(
        self,
        repository: ComplianceDataRepository,
        sanctions_provider: SanctionsScreeningProvider,
        audit_logger: AuditLogger,
        lockup_checker: Optional[LockupChecker] = None,
        sanctions_cache_validity_days: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize compliance service.

        Args:
            repository: KYC record and sanctions cache persistence
            sanctions_provider: External sanctions screening
            audit_logger: Append-only audit trail
            lockup_checker: Lockup restrictions, none applied when omitted
            sanctions_cache_validity_days: Cache window, defaults to settings
            clock: Returns the current naive UTC time
        """
        if sanctions_cache_validity_days is None:
            sanctions_cache_validity_days = settings.SANCTIONS_CACHE_VALIDITY_DAYS
        if sanctions_cache_validity_days < 0:
            raise ValueError("Sanctions cache validity must be zero or positive")

        self.repository = repository
        self.sanctions_provider = sanctions_provider
        self.audit_logger = audit_logger
        self.lockup_checker = lockup_checker or NoLockupChecker()
        self.sanctions_cache_validity_days = sanctions_cache_validity_days
        self.clock = clock

    # KYC management

    @fail_safe(_submission_system_error, "submit_kyc")
    async def submit_kyc(self, address: str, kyc_data: KYCData) -> KYCSubmissionResult:
        """
        Submit KYC data for compliance review.

        Validation failures are audited and returned as readable messages.
        An existing valid record, a sanctions match, or a system error reject
        the submission without writing anything.

        Args:
            address: Submitting address
            kyc_data: Submitted KYC data

        Returns:
            Submission result with errors on failure
        """
        logger.info("Submitting KYC", address=address)

        errors = self._validate_kyc_data(kyc_data)
        if errors:
            logger.warning("KYC validation failed", address=address, errors=errors)
            await self._audit(
                AuditEventType.KYC_VALIDATION_FAILED,
                address,
                "; ".join(errors),
                Severity.WARNING,
            )
            return KYCSubmissionResult(success=False, errors=errors)

        existing = await attempt(self.repository.get_kyc(address), "get_kyc", address=address)
        if existing.failed:
            return _submission_system_error()

        if existing.value is not None and existing.value.is_valid(self.clock()):
            logger.warning("Valid KYC already exists", address=address)
            return KYCSubmissionResult(success=False, errors=[VALID_KYC_ON_FILE])

        screening = await self.screen_for_sanctions(address, kyc_data.legal_name, kyc_data.jurisdiction)
        if screening.is_match:
            logger.error("Sanctions match on KYC submission", address=address, match_type=screening.match_type)
            await self._audit(
                AuditEventType.SANCTIONS_MATCH,
                address,
                f"Match Type: {screening.match_type}; Lists: {', '.join(screening.matched_lists)}",
                Severity.CRITICAL,
            )
            return KYCSubmissionResult(success=False, errors=[SANCTIONS_SCREENING_FAILED])

        try:
            record = self._build_kyc_record(address, kyc_data)
        except EncryptionError as e:
            logger.error("PII encryption failed", address=address, error=e.message)
            return _submission_system_error()

        saved = await attempt(self.repository.save_kyc(record), "save_kyc", address=address)
        if saved.failed:
            if isinstance(saved.error, DuplicateKYCError):
                return KYCSubmissionResult(success=False, errors=[VALID_KYC_ON_FILE])
            return _submission_system_error()

        logger.info("KYC submitted", address=address)
        await self._audit(
            AuditEventType.KYC_SUBMITTED,
            address,
            f"Accreditation Level: {kyc_data.accreditation_level}; Jurisdiction: {kyc_data.jurisdiction}",
        )
        return KYCSubmissionResult(success=True)

    @fail_safe(lambda: False, "verify_kyc")
    async def verify_kyc(self, address: str) -> bool:
        """
        Check that an address has an approved, unexpired KYC record.

        Every check of an expired record writes a ``KYC_EXPIRED`` audit entry.
        """
        outcome = await attempt(self.repository.get_kyc(address), "get_kyc", address=address)
        if outcome.failed:
            return False

        record = outcome.value
        if record is None:
            logger.warning("No KYC found", address=address)
            return False

        if not record.is_approved:
            logger.warning("KYC not approved", address=address)
            return False

        if record.is_expired(self.clock()):
            logger.warning("KYC expired", address=address)
            await self._audit(AuditEventType.KYC_EXPIRED, address)
            return False

        return True

    async def is_kyc_valid(self, address: str) -> bool:
        """Alias of ``verify_kyc``."""
        return await self.verify_kyc(address)

    @fail_safe(lambda: KYCStatus.NONE, "get_kyc_status")
    async def get_kyc_status(self, address: str) -> KYCStatus:
        """Stored KYC status, ``KYCStatus.NONE`` when absent or unreadable."""
        outcome = await attempt(self.repository.get_kyc(address), "get_kyc", address=address)
        if outcome.failed or outcome.value is None:
            return KYCStatus.NONE
        return KYCStatus(outcome.value.status)

    # Sanctions screening

    @fail_safe(SanctionsCheckResult.default_block, "screen_for_sanctions")
    async def screen_for_sanctions(
        self, address: str, name: str, jurisdiction: str
    ) -> SanctionsCheckResult:
        """
        Screen an address against sanctions lists, cache first.

        A cached result is served while it is within the validity window.
        Otherwise the provider is called and the cache entry replaced. Any
        failure returns a blocking result (``ERROR_DEFAULT_BLOCK``).

        Args:
            address: Address to screen
            name: Name to screen, may be empty
            jurisdiction: Jurisdiction code, may be empty

        Returns:
            Screening result
        """
        logger.info("Screening address against sanctions lists", address=address)

        cached = await attempt(
            self.repository.get_cached_sanctions_result(address),
            "get_cached_sanctions_result",
            address=address,
        )
        if cached.failed:
            return SanctionsCheckResult.default_block()

        entry = cached.value
        if entry is not None and not entry.is_stale(self.sanctions_cache_validity_days, self.clock()):
            logger.info("Using cached sanctions result", address=address)
            return SanctionsCheckResult.model_validate(entry.result)

        request = SanctionsScreeningRequest(
            address=address, name=name or "", jurisdiction=jurisdiction or ""
        )
        screened = await attempt(
            self.sanctions_provider.screen(request),
            "sanctions_screen",
            address=address,
            provider=self.sanctions_provider.get_provider_name(),
        )
        if screened.failed:
            return SanctionsCheckResult.default_block()

        result = screened.value
        stored = await attempt(
            self.repository.cache_sanctions_result(address, result),
            "cache_sanctions_result",
            address=address,
        )
        if stored.failed:
            return SanctionsCheckResult.default_block()

        if result.is_match:
            logger.error("Sanctions match", address=address, match_type=result.match_type)
            await self._audit(
                AuditEventType.SANCTIONS_MATCH,
                address,
                f"Type: {result.match_type}; Lists: {', '.join(result.matched_lists)}",
                Severity.CRITICAL,
            )

        return result

    async def is_sanctioned(self, address: str) -> bool:
        """Screen by address only; name and jurisdiction are left blank."""
        result = await self.screen_for_sanctions(address, "", "")
        return result.is_match

    # Transfer authorization

    @fail_safe(_authorization_system_error, "authorize_transfer")
    async def authorize_transfer(
        self, from_address: str, to_address: str, amount: Decimal
    ) -> TransferAuthorizationResult:
        """
        Authorize a transfer.

        All checks run regardless of earlier failures so the caller sees
        every violation. Denials are audited against the sender.

        Args:
            from_address: Sending address
            to_address: Receiving address
            amount: Amount to transfer

        Returns:
            Authorization result with all violations
        """
        amount = Decimal(str(amount))
        logger.info("Authorizing transfer", from_address=from_address, to_address=to_address, amount=str(amount))

        violations: List[ComplianceViolation] = []

        if not await self.verify_kyc(from_address):
            violations.append(
                _violation(ViolationCode.SENDER_KYC_INVALID, "Sender KYC is invalid or expired")
            )

        if not await self.verify_kyc(to_address):
            violations.append(
                _violation(ViolationCode.RECIPIENT_KYC_INVALID, "Recipient KYC is invalid or expired")
            )

        if await self.is_sanctioned(from_address):
            violations.append(_violation(ViolationCode.SENDER_SANCTIONED, "Sender is sanctioned"))

        if await self.is_sanctioned(to_address):
            violations.append(_violation(ViolationCode.RECIPIENT_SANCTIONED, "Recipient is sanctioned"))

        lockups = await attempt(
            self.lockup_checker.check(from_address, amount), "lockup_check", address=from_address
        )
        if lockups.failed:
            return _authorization_system_error()
        violations.extend(lockups.value)

        is_authorized = not violations
        if not is_authorized:
            codes = "; ".join(violation.code for violation in violations)
            logger.warning("Transfer denied", from_address=from_address, violations=codes)
            await self._audit(
                AuditEventType.TRANSFER_DENIED,
                from_address,
                f"To: {to_address}; Amount: {amount}; Violations: {codes}",
            )

        return TransferAuthorizationResult(is_authorized=is_authorized, violations=violations)

    async def check_compliance(self, address: str) -> List[ComplianceViolation]:
        """KYC validity and sanctions violations for an address."""
        violations = []

        if not await self.verify_kyc(address):
            violations.append(_violation(ViolationCode.KYC_INVALID, "KYC is invalid or expired"))

        if await self.is_sanctioned(address):
            violations.append(_violation(ViolationCode.SANCTIONED, "Address is sanctioned"))

        return violations

    # Audit trail

    @fail_safe(lambda: None, "log_compliance_event")
    async def log_compliance_event(self, event: ComplianceEvent) -> None:
        """Append a caller-supplied event; the timestamp is set at write time."""
        entry = AuditLogEntry(
            event_type=event.event_type,
            address=event.address,
            details=event.details,
            severity=event.severity,
        )
        await attempt(self.audit_logger.log(entry), "audit_log", event_type=event.event_type)

    @fail_safe(list, "get_audit_trail")
    async def get_audit_trail(self, address: str, days: Optional[int] = None) -> List[ComplianceEvent]:
        """
        Audit events for an address over the last ``days`` days.

        Args:
            address: Address to query
            days: Lookback window, defaults to settings.AUDIT_TRAIL_DEFAULT_DAYS (90)

        Returns:
            Events ordered by timestamp, empty on failure
        """
        if days is None:
            days = settings.AUDIT_TRAIL_DEFAULT_DAYS

        from_date = self.clock() - timedelta(days=days)
        outcome = await attempt(
            self.audit_logger.get_events(address, from_date), "get_audit_events", address=address
        )
        if outcome.failed:
            return []

        return [ComplianceEvent.model_validate(entry) for entry in outcome.value]

    # Helpers

    def _validate_kyc_data(self, data: KYCData) -> List[str]:
        """
        Validate a KYC submission.

        Age uses calendar-year subtraction, so an applicant whose 18th
        birthday falls later this year already passes.

        Returns:
            All validation messages, empty when valid
        """
        errors = []
        today = self.clock().date()

        if not data.legal_name or not data.legal_name.strip():
            errors.append("Legal name is required")

        if data.date_of_birth is None:
            errors.append("Date of birth is required")
        else:
            if data.date_of_birth > today:
                errors.append("Date of birth cannot be in the future")

            if today.year - data.date_of_birth.year < MINIMUM_AGE_YEARS:
                errors.append(f"Must be at least {MINIMUM_AGE_YEARS} years old")

        if not data.jurisdiction or not data.jurisdiction.strip() or len(data.jurisdiction) != 2:
            errors.append("Valid jurisdiction code required")

        if not data.document_hash or not data.document_hash.strip():
            errors.append("Document hash is required")

        return errors

    def _build_kyc_record(self, address: str, data: KYCData) -> KYCRecord:
        """New pending record with PII encrypted before it leaves the service."""
        submitted_at = self.clock()
        return KYCRecord(
            address=address,
            legal_name=encrypt_pii(data.legal_name),
            date_of_birth=encrypt_pii(data.date_of_birth.isoformat()),
            jurisdiction=data.jurisdiction,
            accreditation_level=data.accreditation_level,
            document_hash=data.document_hash,
            submitted_at=submitted_at,
            expires_at=one_year_after(submitted_at),
            is_approved=False,
            status=KYCStatus.PENDING,
        )

    async def _audit(
        self,
        event_type: AuditEventType,
        address: str,
        details: Optional[str] = None,
        severity: Optional[Severity] = None,
    ) -> Outcome[None]:
        """Write an audit entry. Failures are logged and do not change the decision."""
        entry = AuditLogEntry(
            event_type=event_type.value,
            address=address,
            details=details,
            severity=severity.value if severity else None,
        )
        return await attempt(
            self.audit_logger.log(entry), "audit_log", event_type=event_type.value, address=address
        )


def build_compliance_service(
    db: Session,
    sanctions_provider: Optional[SanctionsScreeningProvider] = None,
    lockup_checker: Optional[LockupChecker] = None,
    sanctions_cache_validity_days: Optional[int] = None,
    clock: Callable[[], datetime] = utcnow,
) -> ComplianceService:
    """
    Wire a compliance service with SQL collaborators.

    Args:
        db: Database session
        sanctions_provider: Screening provider, the configured one when omitted
        lockup_checker: Lockup restrictions, none when omitted
        sanctions_cache_validity_days: Cache window, defaults to settings
        clock: Shared by the service and every collaborator

    Returns:
        Compliance service
    """
    from compliance.repositories.audit_repository import SQLAuditLogger
    from compliance.repositories.compliance_repository import SQLComplianceRepository
    from compliance.services.sanctions_provider import SanctionsProviderFactory

    return ComplianceService(
        repository=SQLComplianceRepository(db, clock=clock),
        sanctions_provider=sanctions_provider or SanctionsProviderFactory.from_settings(),
        audit_logger=SQLAuditLogger(db, clock=clock),
        lockup_checker=lockup_checker,
        sanctions_cache_validity_days=sanctions_cache_validity_days,
        clock=clock,
    )
