"""
Pydantic schemas for compliance inputs and results.
"""

from compliance.schemas.compliance import (
    ERROR_DEFAULT_BLOCK,
    ComplianceEvent,
    ComplianceViolation,
    KYCData,
    KYCSubmissionResult,
    SanctionsCheckResult,
    SanctionsScreeningRequest,
    TransferAuthorizationResult,
)

__all__ = [
    "ERROR_DEFAULT_BLOCK",
    "ComplianceEvent",
    "ComplianceViolation",
    "KYCData",
    "KYCSubmissionResult",
    "SanctionsCheckResult",
    "SanctionsScreeningRequest",
    "TransferAuthorizationResult",
]
