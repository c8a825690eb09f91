"""
Compliance request and result schemas.
"""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from compliance.models.kyc import KYCStatus

# Match type reported when screening could not complete
ERROR_DEFAULT_BLOCK = "ERROR_DEFAULT_BLOCK"


class KYCData(BaseModel):
    """KYC submission data.

    Unvalidated here: the service validates and reports every problem
    as a readable message instead of rejecting the payload up front.
    """

    legal_name: str = Field("", description="Legal name (PII, encrypted at rest)")
    date_of_birth: Optional[date] = Field(None, description="Date of birth (PII, encrypted at rest)")
    jurisdiction: str = Field("", description="ISO 3166-1 alpha-2 jurisdiction code")
    accreditation_level: Optional[str] = Field(None, description="Investor accreditation level")
    document_hash: str = Field("", description="Hash of the identity document bundle")


class KYCSubmissionResult(BaseModel):
    """Outcome of a KYC submission."""

    success: bool = Field(..., description="Whether the submission was accepted")
    errors: List[str] = Field(default_factory=list, description="Readable failure reasons")


class SanctionsScreeningRequest(BaseModel):
    """Screening request passed to a sanctions provider."""

    address: str = Field(..., description="Address to screen")
    name: str = Field("", description="Name to screen, may be empty")
    jurisdiction: str = Field("", description="Jurisdiction code, may be empty")


class SanctionsCheckResult(BaseModel):
    """Result of a sanctions screening."""

    is_match: bool = Field(False, description="Whether the subject matched a list")
    match_type: Optional[str] = Field(None, description="Provider match code")
    matched_lists: List[str] = Field(default_factory=list, description="Names of matched lists")
    match_score: float = Field(0.0, description="Provider match score")

    @classmethod
    def default_block(cls) -> "SanctionsCheckResult":
        """Result used when screening fails: treat the subject as a match."""
        return cls(is_match=True, match_type=ERROR_DEFAULT_BLOCK)

    @classmethod
    def clear(cls) -> "SanctionsCheckResult":
        return cls(is_match=False)


class ComplianceViolation(BaseModel):
    """A single failed compliance rule."""

    code: str = Field(..., description="Violation code, e.g. SENDER_KYC_INVALID")
    message: str = Field(..., description="Readable description")


class TransferAuthorizationResult(BaseModel):
    """Outcome of a transfer authorization."""

    is_authorized: bool = Field(..., description="Whether the transfer may proceed")
    violations: List[ComplianceViolation] = Field(default_factory=list, description="Failed rules")

    @property
    def violation_codes(self) -> List[str]:
        return [violation.code for violation in self.violations]


class ComplianceEvent(BaseModel):
    """Audit trail entry as seen by callers."""

    event_type: str = Field(..., description="Event code")
    address: str = Field(..., description="Address the event is attributed to")
    details: Optional[str] = Field(None, description="Readable details")
    severity: Optional[str] = Field(None, description="Severity, e.g. CRITICAL")
    timestamp: Optional[datetime] = Field(None, description="UTC write time, set by the audit logger")

    class Config:
        from_attributes = True
