"""
Custom exception classes for the compliance service.
"""
from typing import Any, Dict, Optional


class ComplianceBaseException(Exception):
    """Base exception for the compliance service."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(ComplianceBaseException):
    """Raised when input validation fails."""

    def __init__(self, message: str, field: str = None, **kwargs):
        details = {"field": field} if field else {}
        details.update(kwargs)
        super().__init__(message, "VALIDATION_ERROR", details)


class BusinessLogicError(ComplianceBaseException):
    """Raised when business logic rules are violated."""

    def __init__(self, message: str, code: str = "BUSINESS_LOGIC_ERROR", **kwargs):
        super().__init__(message, code, kwargs)


class DuplicateKYCError(BusinessLogicError):
    """Raised when a valid KYC record already exists for an address."""

    def __init__(self, address: str, **kwargs):
        super().__init__(
            f"Valid KYC already on file for {address}",
            code="DUPLICATE_KYC",
            address=address,
            **kwargs,
        )


class ProviderError(ComplianceBaseException):
    """Raised when the sanctions screening provider returns an error."""

    def __init__(self, provider: str, message: str, **kwargs):
        details = {"provider": provider}
        details.update(kwargs)
        super().__init__(message, "PROVIDER_ERROR", details)


class RepositoryError(ComplianceBaseException):
    """Raised when a persistence operation fails."""

    def __init__(self, message: str = "Repository operation failed", **kwargs):
        super().__init__(message, "REPOSITORY_ERROR", kwargs)


class EncryptionError(ComplianceBaseException):
    """Raised when encryption/decryption operations fail."""

    def __init__(self, message: str = "Encryption operation failed", **kwargs):
        super().__init__(message, "ENCRYPTION_ERROR", kwargs)
