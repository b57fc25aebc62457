"""Field-level encryption for personal data at rest.

Values are encrypted with Fernet (AES-128-CBC + HMAC-SHA256). A value
counts as encrypted when it decrypts under the configured keys; this lets
writes skip values that are already ciphertext and lets reads tolerate
legacy plaintext rows.
"""

import base64
import hashlib
from typing import Any, Iterable, MutableMapping, Optional

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from stayfleet.config.settings import Settings
from stayfleet.logging import get_logger
from stayfleet.models.errors import CipherError

logger = get_logger(__name__)


def derive_key(secret: str) -> bytes:
    """
    Derive a Fernet key from a configured secret.

    The secret is hashed so that any passphrase length yields the
    32-byte URL-safe base64 key Fernet expects.
    """
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest())


class FieldCipher:
    """Encrypts and decrypts named string attributes of records."""

    def __init__(
        self,
        key: Optional[str],
        previous_keys: Iterable[str] = (),
        strict: bool = False,
    ):
        """
        Initialize cipher.

        Args:
            key: Current secret; new values are always encrypted with it
            previous_keys: Rotated secrets still accepted for decryption
            strict: Raise instead of keeping the stored value when a read fails
        """
        self.strict = strict
        self._fernet: Optional[MultiFernet] = None

        if key:
            keys = [key, *previous_keys]
            self._fernet = MultiFernet([Fernet(derive_key(secret)) for secret in keys])
        else:
            logger.warning("field_cipher_key_missing")

    @classmethod
    def from_settings(cls, settings: Settings) -> "FieldCipher":
        """Build cipher from application settings."""
        return cls(
            settings.encryption_key,
            previous_keys=settings.previous_encryption_keys,
            strict=settings.strict_decryption,
        )

    @property
    def has_key(self) -> bool:
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a single value.

        Raises:
            CipherError: If no key is configured
        """
        if self._fernet is None:
            raise CipherError("Encryption key is not configured")
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a single value.

        Raises:
            CipherError: If the value is not valid ciphertext for the configured keys
        """
        if self._fernet is None:
            raise CipherError("Encryption key is not configured")
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except (InvalidToken, ValueError, TypeError) as e:
            raise CipherError("Value could not be decrypted") from e

    def is_encrypted(self, value: Any) -> bool:
        """Check whether a value decrypts under the configured keys."""
        if not value or not isinstance(value, str):
            return False
        try:
            self.decrypt(value)
        except CipherError:
            return False
        return True

    def encrypt_fields(
        self, record: MutableMapping[str, Any], fields: Iterable[str]
    ) -> MutableMapping[str, Any]:
        """
        Encrypt every non-empty plaintext field of a record in place.

        Fields already holding ciphertext are left untouched, so calling
        this twice yields the same stored value as calling it once.

        Raises:
            CipherError: If encryption is impossible; sensitive writes are never skipped
        """
        for field in fields:
            value = record.get(field)
            if value and not self.is_encrypted(value):
                record[field] = self.encrypt(str(value))
        return record

    def decrypt_fields(
        self, record: MutableMapping[str, Any], fields: Iterable[str]
    ) -> MutableMapping[str, Any]:
        """
        Decrypt every non-empty ciphertext field of a record in place.

        Values that do not decrypt (legacy plaintext, corrupted ciphertext,
        wrong or missing key) are kept as stored unless the cipher is strict.

        Raises:
            CipherError: In strict mode, when a non-empty value fails to decrypt
        """
        for field in fields:
            value = record.get(field)
            if not value:
                continue
            try:
                record[field] = self.decrypt(value)
            except CipherError:
                if self.strict:
                    raise CipherError(
                        f"Stored value for '{field}' could not be decrypted", field=field
                    ) from None
                logger.warning("field_decryption_skipped", field=field)
        return record
