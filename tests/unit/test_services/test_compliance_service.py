"""
Unit tests for the compliance service.
"""
import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, Mock

import pytest

from compliance.core.exceptions import DuplicateKYCError, ProviderError
from compliance.models.kyc import KYCRecord, KYCStatus
from compliance.repositories.memory import InMemoryAuditLogger, InMemoryComplianceRepository
from compliance.schemas.compliance import (
    ERROR_DEFAULT_BLOCK,
    ComplianceEvent,
    ComplianceViolation,
    KYCData,
    SanctionsCheckResult,
)
from compliance.services.compliance_service import ComplianceService
from compliance.services.lockup import VestingLockupChecker, VestingSchedule
from compliance.services.sanctions_provider import DenylistSanctionsProvider
from compliance.utils.encryption import decrypt_field

SANCTIONED = "addr-sanctioned"


@pytest.fixture
def repository(clock):
    return InMemoryComplianceRepository(clock=clock)


@pytest.fixture
def audit_logger(clock):
    return InMemoryAuditLogger(clock=clock)


@pytest.fixture
def provider():
    return DenylistSanctionsProvider(denylist=[SANCTIONED])


@pytest.fixture
def service(repository, provider, audit_logger, clock):
    """Compliance service over in-memory collaborators."""
    return ComplianceService(
        repository=repository,
        sanctions_provider=provider,
        audit_logger=audit_logger,
        sanctions_cache_validity_days=30,
        clock=clock,
    )


@pytest.fixture
def jane_doe():
    return KYCData(
        legal_name="Jane Doe",
        date_of_birth=date(1990, 1, 1),
        jurisdiction="US",
        accreditation_level="accredited",
        document_hash="abc123",
    )


async def approve(repository, address):
    record = await repository.get_kyc(address)
    record.is_approved = True
    record.status = KYCStatus.APPROVED


async def add_approved_record(repository, address, clock):
    record = KYCRecord(
        address=address,
        legal_name="enc:placeholder",
        date_of_birth="enc:placeholder",
        jurisdiction="US",
        accreditation_level=None,
        document_hash="hash",
        submitted_at=clock(),
        expires_at=clock() + timedelta(days=365),
        is_approved=True,
        status=KYCStatus.APPROVED,
    )
    await repository.save_kyc(record)


class TestServiceConstruction:
    """Test cases for service construction."""

    def test_negative_cache_validity_rejected(self, repository, provider, audit_logger):
        with pytest.raises(ValueError):
            ComplianceService(repository, provider, audit_logger, sanctions_cache_validity_days=-1)

    def test_cache_validity_defaults_to_settings(self, repository, provider, audit_logger):
        service = ComplianceService(repository, provider, audit_logger)

        assert service.sanctions_cache_validity_days == 30


class TestSubmitKYC:
    """Test cases for KYC submission."""

    @pytest.mark.asyncio
    async def test_submit_kyc_success(self, service, repository, audit_logger, jane_doe, clock):
        """A clean submission persists a pending record expiring a year later."""
        result = await service.submit_kyc("addr1", jane_doe)

        assert result.success is True
        assert result.errors == []

        record = await repository.get_kyc("addr1")
        assert record.status == KYCStatus.PENDING
        assert record.is_approved is False
        assert record.submitted_at == clock()
        assert record.expires_at == datetime(2026, 6, 15, 12, 0, 0)
        assert (record.expires_at - record.submitted_at).days == 365
        assert record.jurisdiction == "US"
        assert record.document_hash == "abc123"
        assert audit_logger.event_types("addr1") == ["KYC_SUBMITTED"]

    @pytest.mark.asyncio
    async def test_submit_kyc_encrypts_pii(self, service, repository, jane_doe):
        await service.submit_kyc("addr1", jane_doe)

        record = await repository.get_kyc("addr1")
        assert record.legal_name != "Jane Doe"
        assert record.legal_name.startswith("enc:")
        assert decrypt_field(record.legal_name) == "Jane Doe"
        assert decrypt_field(record.date_of_birth) == "1990-01-01"

    @pytest.mark.asyncio
    async def test_prefixed_legal_name_still_encrypted(self, service, repository, jane_doe):
        jane_doe.legal_name = "enc:Jane Doe"

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.success is True
        record = await repository.get_kyc("addr1")
        assert "Jane Doe" not in record.legal_name
        assert decrypt_field(record.legal_name) == "enc:Jane Doe"

    @pytest.mark.asyncio
    async def test_submitted_audit_details(self, service, audit_logger, jane_doe):
        await service.submit_kyc("addr1", jane_doe)

        entry = audit_logger.entries[-1]
        assert entry.event_type == "KYC_SUBMITTED"
        assert "accredited" in entry.details
        assert "US" in entry.details
        assert "Jane" not in entry.details

    @pytest.mark.asyncio
    async def test_submit_kyc_collects_all_validation_errors(self, service, repository, audit_logger):
        result = await service.submit_kyc("addr1", KYCData())

        assert result.success is False
        assert result.errors == [
            "Legal name is required",
            "Date of birth is required",
            "Valid jurisdiction code required",
            "Document hash is required",
        ]
        assert await repository.get_kyc("addr1") is None

        entry = audit_logger.entries[-1]
        assert entry.event_type == "KYC_VALIDATION_FAILED"
        assert entry.severity == "WARNING"
        assert entry.details == "; ".join(result.errors)

    @pytest.mark.asyncio
    async def test_blank_legal_name_rejected(self, service, jane_doe):
        jane_doe.legal_name = "   "

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.errors == ["Legal name is required"]

    @pytest.mark.asyncio
    async def test_future_date_of_birth_rejected(self, service, jane_doe):
        jane_doe.date_of_birth = date(2026, 1, 1)

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.success is False
        assert "Date of birth cannot be in the future" in result.errors

    @pytest.mark.asyncio
    async def test_under_eighteen_rejected(self, service, jane_doe):
        jane_doe.date_of_birth = date(2008, 1, 1)

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.errors == ["Must be at least 18 years old"]

    @pytest.mark.asyncio
    async def test_age_uses_calendar_year_difference(self, service, jane_doe):
        """Turning 18 later this year already passes."""
        jane_doe.date_of_birth = date(2007, 12, 31)

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.success is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("jurisdiction", ["", "  ", "U", "USA"])
    async def test_invalid_jurisdiction_rejected(self, service, jane_doe, jurisdiction):
        jane_doe.jurisdiction = jurisdiction

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.errors == ["Valid jurisdiction code required"]

    @pytest.mark.asyncio
    async def test_resubmission_after_approval_rejected(self, service, repository, audit_logger, jane_doe):
        await service.submit_kyc("addr1", jane_doe)
        await approve(repository, "addr1")

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.success is False
        assert result.errors == ["Valid KYC already on file"]
        # Duplicate rejection is not audited
        assert audit_logger.event_types("addr1") == ["KYC_SUBMITTED"]

    @pytest.mark.asyncio
    async def test_resubmission_while_pending_replaces_record(self, service, repository, jane_doe, clock):
        await service.submit_kyc("addr1", jane_doe)
        clock.advance(timedelta(days=10))
        jane_doe.document_hash = "def456"

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.success is True
        record = await repository.get_kyc("addr1")
        assert record.document_hash == "def456"
        assert record.submitted_at == clock()

    @pytest.mark.asyncio
    async def test_resubmission_after_expiry_allowed(self, service, repository, jane_doe, clock):
        await service.submit_kyc("addr1", jane_doe)
        await approve(repository, "addr1")
        clock.advance(timedelta(days=366))

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.success is True
        assert (await repository.get_kyc("addr1")).status == KYCStatus.PENDING

    @pytest.mark.asyncio
    async def test_sanctioned_address_rejected(self, service, repository, audit_logger, jane_doe):
        result = await service.submit_kyc(SANCTIONED, jane_doe)

        assert result.success is False
        assert result.errors == ["Failed sanctions screening - contact support"]
        assert await repository.get_kyc(SANCTIONED) is None
        assert audit_logger.event_types(SANCTIONED).count("SANCTIONS_MATCH") == 2
        assert all(entry.severity == "CRITICAL" for entry in audit_logger.entries)

    @pytest.mark.asyncio
    async def test_duplicate_error_from_repository_maps_to_on_file(self, service, repository, jane_doe):
        repository.save_kyc = AsyncMock(side_effect=DuplicateKYCError("addr1"))

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.errors == ["Valid KYC already on file"]

    @pytest.mark.asyncio
    async def test_repository_failure_is_system_error(self, service, repository, jane_doe):
        repository.get_kyc = AsyncMock(side_effect=RuntimeError("connection lost"))

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.success is False
        assert result.errors == ["System error - please try again"]

    @pytest.mark.asyncio
    async def test_save_failure_is_system_error(self, service, repository, audit_logger, jane_doe):
        repository.save_kyc = AsyncMock(side_effect=RuntimeError("disk full"))

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.errors == ["System error - please try again"]
        assert "KYC_SUBMITTED" not in audit_logger.event_types()

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_change_result(self, service, audit_logger, jane_doe):
        audit_logger.log = AsyncMock(side_effect=RuntimeError("audit store down"))

        result = await service.submit_kyc("addr1", jane_doe)

        assert result.success is True

    @pytest.mark.asyncio
    async def test_concurrent_submissions_keep_approved_record(self, service, repository, jane_doe, clock):
        await add_approved_record(repository, "addr1", clock)

        results = await asyncio.gather(
            service.submit_kyc("addr1", jane_doe),
            service.submit_kyc("addr1", jane_doe),
        )

        assert all(r.errors == ["Valid KYC already on file"] for r in results)
        assert (await repository.get_kyc("addr1")).is_approved is True


class TestVerifyKYC:
    """Test cases for KYC verification."""

    @pytest.mark.asyncio
    async def test_unknown_address(self, service):
        assert await service.verify_kyc("nobody") is False
        assert await service.get_kyc_status("nobody") == KYCStatus.NONE

    @pytest.mark.asyncio
    async def test_pending_record_not_valid(self, service, jane_doe):
        await service.submit_kyc("addr1", jane_doe)

        assert await service.verify_kyc("addr1") is False
        assert await service.get_kyc_status("addr1") == KYCStatus.PENDING

    @pytest.mark.asyncio
    async def test_approved_record_valid(self, service, repository, clock):
        await add_approved_record(repository, "addr1", clock)

        assert await service.verify_kyc("addr1") is True
        assert await service.is_kyc_valid("addr1") is True
        assert await service.get_kyc_status("addr1") == KYCStatus.APPROVED

    @pytest.mark.asyncio
    async def test_valid_at_exact_expiry(self, service, repository, clock):
        await add_approved_record(repository, "addr1", clock)
        clock.advance(timedelta(days=365))

        assert await service.verify_kyc("addr1") is True

    @pytest.mark.asyncio
    async def test_expired_record_not_valid_and_audited_each_time(self, service, repository, audit_logger, clock):
        await add_approved_record(repository, "addr1", clock)
        clock.advance(timedelta(days=365, seconds=1))

        assert await service.verify_kyc("addr1") is False
        assert await service.verify_kyc("addr1") is False

        assert audit_logger.event_types("addr1") == ["KYC_EXPIRED", "KYC_EXPIRED"]
        # Status is never rewritten to reflect expiry
        assert await service.get_kyc_status("addr1") == KYCStatus.APPROVED

    @pytest.mark.asyncio
    async def test_repository_error_fails_closed(self, service, repository):
        repository.get_kyc = AsyncMock(side_effect=RuntimeError("timeout"))

        assert await service.verify_kyc("addr1") is False
        assert await service.get_kyc_status("addr1") == KYCStatus.NONE


class TestScreenForSanctions:
    """Test cases for sanctions screening."""

    @pytest.fixture
    def mock_provider(self):
        provider = Mock()
        provider.screen = AsyncMock(return_value=SanctionsCheckResult.clear())
        provider.get_provider_name.return_value = "mock"
        return provider

    @pytest.fixture
    def mocked_service(self, repository, mock_provider, audit_logger, clock):
        return ComplianceService(
            repository, mock_provider, audit_logger, sanctions_cache_validity_days=30, clock=clock
        )

    @pytest.mark.asyncio
    async def test_fresh_cache_served_without_provider_call(self, mocked_service, mock_provider):
        first = await mocked_service.screen_for_sanctions("addr1", "Jane Doe", "US")
        second = await mocked_service.screen_for_sanctions("addr1", "Jane Doe", "US")

        assert first.is_match is False
        assert second == first
        mock_provider.screen.assert_called_once()

    @pytest.mark.asyncio
    async def test_cache_valid_at_window_boundary(self, mocked_service, mock_provider, clock):
        await mocked_service.screen_for_sanctions("addr1", "", "")
        clock.advance(timedelta(days=30))

        await mocked_service.screen_for_sanctions("addr1", "", "")

        mock_provider.screen.assert_called_once()

    @pytest.mark.asyncio
    async def test_stale_cache_triggers_fresh_screening(self, mocked_service, mock_provider, repository, clock):
        await mocked_service.screen_for_sanctions("addr1", "", "")
        clock.advance(timedelta(days=30, hours=1))
        mock_provider.screen.return_value = SanctionsCheckResult(
            is_match=True, match_type="ADDRESS_MATCH", matched_lists=["OFAC"]
        )

        result = await mocked_service.screen_for_sanctions("addr1", "", "")

        assert result.is_match is True
        assert mock_provider.screen.call_count == 2
        cached = await repository.get_cached_sanctions_result("addr1")
        assert cached.result["is_match"] is True
        assert cached.cached_at == clock()

    @pytest.mark.asyncio
    async def test_screening_request_fields(self, mocked_service, mock_provider):
        await mocked_service.screen_for_sanctions("addr1", "Jane Doe", "US")

        request = mock_provider.screen.call_args.args[0]
        assert request.address == "addr1"
        assert request.name == "Jane Doe"
        assert request.jurisdiction == "US"

    @pytest.mark.asyncio
    async def test_match_audited_as_critical(self, mocked_service, mock_provider, audit_logger):
        mock_provider.screen.return_value = SanctionsCheckResult(
            is_match=True, match_type="NAME_MATCH", matched_lists=["OFAC", "UN"]
        )

        await mocked_service.screen_for_sanctions("addr1", "Bad Actor", "")

        entry = audit_logger.entries[-1]
        assert entry.event_type == "SANCTIONS_MATCH"
        assert entry.severity == "CRITICAL"
        assert "NAME_MATCH" in entry.details
        assert "OFAC, UN" in entry.details

    @pytest.mark.asyncio
    async def test_provider_error_blocks(self, mocked_service, mock_provider, repository):
        mock_provider.screen.side_effect = ProviderError("mock", "HTTP 503")

        result = await mocked_service.screen_for_sanctions("addr1", "", "")

        assert result.is_match is True
        assert result.match_type == ERROR_DEFAULT_BLOCK
        assert await repository.get_cached_sanctions_result("addr1") is None

    @pytest.mark.asyncio
    async def test_cache_read_error_blocks(self, mocked_service, mock_provider, repository):
        repository.get_cached_sanctions_result = AsyncMock(side_effect=RuntimeError("read failed"))

        result = await mocked_service.screen_for_sanctions("addr1", "", "")

        assert result.match_type == ERROR_DEFAULT_BLOCK
        mock_provider.screen.assert_not_called()

    @pytest.mark.asyncio
    async def test_cache_write_error_blocks(self, mocked_service, repository):
        repository.cache_sanctions_result = AsyncMock(side_effect=RuntimeError("write failed"))

        result = await mocked_service.screen_for_sanctions("addr1", "", "")

        assert result.is_match is True
        assert result.match_type == ERROR_DEFAULT_BLOCK

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, mocked_service, mock_provider):
        mock_provider.screen.side_effect = asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await mocked_service.screen_for_sanctions("addr1", "", "")

    @pytest.mark.asyncio
    async def test_is_sanctioned_screens_address_only(self, mocked_service, mock_provider):
        assert await mocked_service.is_sanctioned("addr1") is False

        request = mock_provider.screen.call_args.args[0]
        assert request.name == ""
        assert request.jurisdiction == ""


class TestAuthorizeTransfer:
    """Test cases for transfer authorization."""

    @pytest.mark.asyncio
    async def test_authorized_when_all_checks_pass(self, service, repository, audit_logger, clock):
        await add_approved_record(repository, "alice", clock)
        await add_approved_record(repository, "bob", clock)

        result = await service.authorize_transfer("alice", "bob", Decimal("100"))

        assert result.is_authorized is True
        assert result.violations == []
        assert "TRANSFER_DENIED" not in audit_logger.event_types()

    @pytest.mark.asyncio
    async def test_returns_all_violations_at_once(self, service, audit_logger):
        result = await service.authorize_transfer(SANCTIONED, SANCTIONED, Decimal("1"))

        assert result.is_authorized is False
        assert result.violation_codes == [
            "SENDER_KYC_INVALID",
            "RECIPIENT_KYC_INVALID",
            "SENDER_SANCTIONED",
            "RECIPIENT_SANCTIONED",
        ]

    @pytest.mark.asyncio
    async def test_expired_sanctioned_sender_to_sanctioned_verified_recipient(
        self, repository, audit_logger, clock
    ):
        provider = DenylistSanctionsProvider(denylist=["sender", "recipient"])
        service = ComplianceService(
            repository, provider, audit_logger, sanctions_cache_validity_days=30, clock=clock
        )
        await add_approved_record(repository, "sender", clock)
        clock.advance(timedelta(days=366))
        await add_approved_record(repository, "recipient", clock)

        result = await service.authorize_transfer("sender", "recipient", Decimal("5"))

        assert result.is_authorized is False
        assert result.violation_codes == [
            "SENDER_KYC_INVALID",
            "SENDER_SANCTIONED",
            "RECIPIENT_SANCTIONED",
        ]

    @pytest.mark.asyncio
    async def test_denial_audited_against_sender(self, service, repository, audit_logger, clock):
        await add_approved_record(repository, "alice", clock)

        result = await service.authorize_transfer("alice", "bob", Decimal("25.5"))

        assert result.violation_codes == ["RECIPIENT_KYC_INVALID"]
        denied = [e for e in audit_logger.entries if e.event_type == "TRANSFER_DENIED"]
        assert len(denied) == 1
        assert denied[0].address == "alice"
        assert "bob" in denied[0].details
        assert "25.5" in denied[0].details
        assert "RECIPIENT_KYC_INVALID" in denied[0].details

    @pytest.mark.asyncio
    async def test_provider_failure_denies_both_parties(self, service, repository, provider, clock):
        await add_approved_record(repository, "alice", clock)
        await add_approved_record(repository, "bob", clock)
        provider.screen = AsyncMock(side_effect=ProviderError("denylist", "down"))

        result = await service.authorize_transfer("alice", "bob", Decimal("1"))

        assert result.violation_codes == ["SENDER_SANCTIONED", "RECIPIENT_SANCTIONED"]

    @pytest.mark.asyncio
    async def test_lockup_violation_included(self, repository, provider, audit_logger, clock):
        lockup = VestingLockupChecker(clock=clock)
        lockup.set_schedule(
            "alice",
            VestingSchedule(total_amount=Decimal("1000"), start=clock() - timedelta(days=100)),
        )
        service = ComplianceService(
            repository, provider, audit_logger, lockup_checker=lockup, clock=clock
        )
        await add_approved_record(repository, "alice", clock)
        await add_approved_record(repository, "bob", clock)

        allowed = await service.authorize_transfer("alice", "bob", Decimal("250"))
        denied = await service.authorize_transfer("alice", "bob", Decimal("250.01"))

        assert allowed.is_authorized is True
        assert denied.violation_codes == ["LOCKUP_RESTRICTED"]

    @pytest.mark.asyncio
    async def test_lockup_checker_error_is_system_error(self, repository, provider, audit_logger, clock):
        lockup = Mock()
        lockup.check = AsyncMock(side_effect=RuntimeError("vesting data unavailable"))
        service = ComplianceService(
            repository, provider, audit_logger, lockup_checker=lockup, clock=clock
        )

        result = await service.authorize_transfer("alice", "bob", Decimal("1"))

        assert result.is_authorized is False
        assert result.violation_codes == ["SYSTEM_ERROR"]
        assert "TRANSFER_DENIED" not in audit_logger.event_types()

    @pytest.mark.asyncio
    async def test_lockup_checker_receives_sender_and_amount(self, repository, provider, audit_logger, clock):
        lockup = Mock()
        lockup.check = AsyncMock(return_value=[])
        service = ComplianceService(
            repository, provider, audit_logger, lockup_checker=lockup, clock=clock
        )

        await service.authorize_transfer("alice", "bob", Decimal("42"))

        lockup.check.assert_awaited_once_with("alice", Decimal("42"))


class TestCheckCompliance:
    """Test cases for address compliance checks."""

    @pytest.mark.asyncio
    async def test_unknown_clean_address(self, service):
        violations = await service.check_compliance("addrX")

        assert [v.code for v in violations] == ["KYC_INVALID"]

    @pytest.mark.asyncio
    async def test_sanctioned_unknown_address(self, service):
        violations = await service.check_compliance(SANCTIONED)

        assert [v.code for v in violations] == ["KYC_INVALID", "SANCTIONED"]

    @pytest.mark.asyncio
    async def test_compliant_address(self, service, repository, clock):
        await add_approved_record(repository, "alice", clock)

        assert await service.check_compliance("alice") == []

    @pytest.mark.asyncio
    async def test_violations_are_models(self, service):
        violations = await service.check_compliance("addrX")

        assert isinstance(violations[0], ComplianceViolation)
        assert violations[0].message


class TestAuditTrail:
    """Test cases for the audit trail."""

    @pytest.mark.asyncio
    async def test_logged_event_returned_with_write_time(self, service, clock):
        event = ComplianceEvent(
            event_type="MANUAL_REVIEW",
            address="addr1",
            details="Reviewed by compliance officer",
            severity="INFO",
            timestamp=datetime(2000, 1, 1),
        )

        await service.log_compliance_event(event)
        trail = await service.get_audit_trail("addr1")

        assert len(trail) == 1
        assert trail[0].event_type == "MANUAL_REVIEW"
        assert trail[0].timestamp == clock()

    @pytest.mark.asyncio
    async def test_default_window_is_ninety_days(self, service, clock):
        await service.log_compliance_event(ComplianceEvent(event_type="NOTE", address="addr1"))
        clock.advance(timedelta(days=91))

        assert await service.get_audit_trail("addr1") == []
        assert len(await service.get_audit_trail("addr1", days=100)) == 1

    @pytest.mark.asyncio
    async def test_trail_ordered_and_filtered_by_address(self, service, clock):
        await service.log_compliance_event(ComplianceEvent(event_type="FIRST", address="addr1"))
        clock.advance(timedelta(minutes=1))
        await service.log_compliance_event(ComplianceEvent(event_type="OTHER", address="addr2"))
        clock.advance(timedelta(minutes=1))
        await service.log_compliance_event(ComplianceEvent(event_type="SECOND", address="addr1"))

        trail = await service.get_audit_trail("addr1")

        assert [e.event_type for e in trail] == ["FIRST", "SECOND"]

    @pytest.mark.asyncio
    async def test_logging_failure_swallowed(self, service, audit_logger):
        audit_logger.log = AsyncMock(side_effect=RuntimeError("audit store down"))

        await service.log_compliance_event(ComplianceEvent(event_type="NOTE", address="addr1"))

    @pytest.mark.asyncio
    async def test_trail_error_returns_empty(self, service, audit_logger):
        audit_logger.get_events = AsyncMock(side_effect=RuntimeError("query failed"))

        assert await service.get_audit_trail("addr1") == []
