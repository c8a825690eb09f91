"""
Field-level encryption utilities for PII held in KYC records.
"""

import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from sqlalchemy import String, TypeDecorator

from compliance.core.config import settings
from compliance.core.exceptions import EncryptionError

# Prefix marking a value as ciphertext produced by FieldEncryption
CIPHERTEXT_PREFIX = "enc:"


class FieldEncryption:
    """Handles field-level encryption for sensitive data."""

    def __init__(self, encryption_key: Optional[str] = None, secret_key: Optional[str] = None):
        """
        Initialize encryption.

        Args:
            encryption_key: Base64 encoded key, defaults to settings.ENCRYPTION_KEY
            secret_key: Secret used to derive a key when no encryption key is set
        """
        self._encryption_key = encryption_key if encryption_key is not None else settings.ENCRYPTION_KEY
        self._secret_key = secret_key or settings.SECRET_KEY
        self._fernet = self._get_fernet()

    def _get_fernet(self) -> Fernet:
        """Get or create Fernet encryption instance."""
        if self._encryption_key:
            try:
                key = base64.urlsafe_b64decode(self._encryption_key.encode())
                return Fernet(base64.urlsafe_b64encode(key[:32]))
            except (ValueError, TypeError):
                # Invalid key, fall back to the derived one
                pass

        password = self._secret_key.encode()
        salt = b"compliance_pii_salt"  # In production, use random salt per installation
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(password))
        return Fernet(key)

    def is_encrypted(self, value: Optional[str]) -> bool:
        """Check whether a value carries the ciphertext prefix."""
        return bool(value) and value.startswith(CIPHERTEXT_PREFIX)

    def is_ciphertext(self, value: Optional[str]) -> bool:
        """
        Check whether a value is ciphertext produced with this key.

        A prefixed value that does not decrypt is plaintext.
        """
        if not self.is_encrypted(value):
            return False

        try:
            self._fernet.decrypt(value[len(CIPHERTEXT_PREFIX):].encode("utf-8"))
        except InvalidToken:
            return False
        return True

    def encrypt(self, value: str) -> str:
        """Encrypt a string value. Every non-empty value is encrypted."""
        if not value:
            return value

        try:
            encrypted_bytes = self._fernet.encrypt(value.encode("utf-8"))
        except Exception as e:
            raise EncryptionError(f"Failed to encrypt field: {type(e).__name__}")
        return CIPHERTEXT_PREFIX + encrypted_bytes.decode("utf-8")

    def decrypt(self, encrypted_value: str) -> str:
        """
        Decrypt an encrypted string value.

        Raises:
            EncryptionError: If the ciphertext is invalid for this key
        """
        if not self.is_encrypted(encrypted_value):
            return encrypted_value

        token = encrypted_value[len(CIPHERTEXT_PREFIX):].encode("utf-8")
        try:
            return self._fernet.decrypt(token).decode("utf-8")
        except InvalidToken:
            raise EncryptionError("Failed to decrypt field: invalid token or key")

    @classmethod
    def generate_key(cls) -> str:
        """Generate a new encryption key (base64 encoded)."""
        key = Fernet.generate_key()
        return base64.urlsafe_b64encode(key).decode("utf-8")


# Global encryption instance
field_encryption = FieldEncryption()


def encrypt_pii(value: str) -> str:
    """Encrypt a PII value using the global encryption instance."""
    return field_encryption.encrypt(value)


def decrypt_field(encrypted_value: str) -> str:
    """Decrypt a field value using the global encryption instance."""
    return field_encryption.decrypt(encrypted_value)


class EncryptedType(TypeDecorator):
    """
    SQLAlchemy column type that guarantees ciphertext at rest.

    Values that already decrypt with the configured key are stored as-is.
    Values are returned from the database still encrypted; callers decrypt
    explicitly.
    """

    impl = String
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Encrypt value before storing in database."""
        if value is None:
            return value

        value = str(value)
        if field_encryption.is_ciphertext(value):
            return value
        return field_encryption.encrypt(value)

    def process_result_value(self, value, dialect):
        return value
