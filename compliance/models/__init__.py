"""
SQLAlchemy models for the compliance service.
"""

from compliance.models.audit import AuditLogEntry
from compliance.models.base import Base, BaseModel
from compliance.models.kyc import KYCRecord, KYCStatus
from compliance.models.sanctions import CachedSanctionsResult

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    # KYC models
    "KYCRecord",
    "KYCStatus",
    # Sanctions models
    "CachedSanctionsResult",
    # Audit models
    "AuditLogEntry",
]
