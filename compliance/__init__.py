"""
Compliance authorization service: KYC validity, sanctions screening and
transfer authorization with an immutable audit trail.
"""

__version__ = "0.1.0"
