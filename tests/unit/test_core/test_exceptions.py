"""
Unit tests for the exception hierarchy.
"""
import pytest

from compliance.core.exceptions import (
    BusinessLogicError,
    ComplianceBaseException,
    DuplicateKYCError,
    EncryptionError,
    ProviderError,
    RepositoryError,
    ValidationError,
)


class TestExceptions:
    """Test cases for compliance exceptions."""

    @pytest.mark.parametrize(
        "error,code",
        [
            (ValidationError("bad jurisdiction", field="jurisdiction"), "VALIDATION_ERROR"),
            (BusinessLogicError("not allowed"), "BUSINESS_LOGIC_ERROR"),
            (DuplicateKYCError("addr1"), "DUPLICATE_KYC"),
            (ProviderError("http", "HTTP 502"), "PROVIDER_ERROR"),
            (RepositoryError(), "REPOSITORY_ERROR"),
            (EncryptionError(), "ENCRYPTION_ERROR"),
        ],
    )
    def test_codes(self, error, code):
        assert isinstance(error, ComplianceBaseException)
        assert error.code == code

    def test_details(self):
        assert ValidationError("bad", field="jurisdiction").details == {"field": "jurisdiction"}
        assert DuplicateKYCError("addr1").details == {"address": "addr1"}
        assert ProviderError("http", "HTTP 502", status_code=502).details == {
            "provider": "http",
            "status_code": 502,
        }

    def test_message(self):
        error = DuplicateKYCError("addr1")

        assert error.message == "Valid KYC already on file for addr1"
        assert str(error) == error.message

    def test_duplicate_kyc_is_business_rule_violation(self):
        error = DuplicateKYCError("addr1")

        assert isinstance(error, BusinessLogicError)
        assert error.code == "DUPLICATE_KYC"
