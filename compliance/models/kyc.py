"""
KYC record model with status tracking and computed expiry.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Enum as SQLEnum, String

from compliance.models.base import BaseModel, utcnow
from compliance.utils.encryption import EncryptedType


class KYCStatus(str, Enum):
    """KYC verification status enumeration."""
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    RESTRICTED = "restricted"
    SUSPENDED = "suspended"
    BLOCKED = "blocked"


def one_year_after(moment: datetime) -> datetime:
    """Same calendar day one year later; Feb 29 rolls back to Feb 28."""
    try:
        return moment.replace(year=moment.year + 1)
    except ValueError:
        return moment.replace(year=moment.year + 1, day=28)


class KYCRecord(BaseModel):
    """Current KYC record for an address."""

    __tablename__ = "kyc_records"

    address = Column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
        doc="Address the KYC record belongs to (one current record per address)"
    )

    # PII, ciphertext at rest
    legal_name = Column(
        EncryptedType(1024),
        nullable=False,
        doc="Encrypted legal name"
    )

    date_of_birth = Column(
        EncryptedType(1024),
        nullable=False,
        doc="Encrypted date of birth (YYYY-MM-DD)"
    )

    jurisdiction = Column(
        String(2),
        nullable=False,
        doc="ISO 3166-1 alpha-2 jurisdiction code"
    )

    accreditation_level = Column(
        String(100),
        nullable=True,
        doc="Investor accreditation level"
    )

    document_hash = Column(
        String(255),
        nullable=False,
        doc="Hash of the identity document bundle"
    )

    submitted_at = Column(
        DateTime,
        default=utcnow,
        nullable=False,
        doc="When the KYC data was submitted"
    )

    expires_at = Column(
        DateTime,
        nullable=False,
        doc="When the KYC record expires (submission + 1 year)"
    )

    is_approved = Column(
        Boolean,
        default=False,
        nullable=False,
        doc="Set by the external approval workflow"
    )

    status = Column(
        SQLEnum(KYCStatus),
        default=KYCStatus.PENDING,
        nullable=False,
        index=True,
        doc="Current KYC status"
    )

    def __repr__(self) -> str:
        """String representation of the KYC record."""
        return f"<KYCRecord(address={self.address}, status={self.status}, approved={self.is_approved})>"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Expiry is computed from expires_at and never stored in status."""
        return (now or utcnow()) > self.expires_at

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Approved and not expired."""
        return bool(self.is_approved) and not self.is_expired(now)
