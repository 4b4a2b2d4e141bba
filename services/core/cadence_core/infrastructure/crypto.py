"""Encryption of OAuth tokens at rest.

Session rows keep access and refresh tokens as Fernet ciphertext so a copy of
the database alone does not grant access to the linked X account.

Usage:
    key = TokenCipher.generate_key()  # store in ENCRYPTION_KEY
    cipher = TokenCipher(key)

    stored = cipher.encrypt("access-token")
    token = cipher.decrypt(stored)
"""

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken


class InvalidKeyError(Exception):
    """Raised when the configured encryption key is unusable."""

    pass


class DecryptionError(Exception):
    """Raised when stored ciphertext cannot be decrypted."""

    pass


class TokenCipher:
    """Fernet-based cipher for opaque token strings."""

    def __init__(self, key: str):
        """Initialize with a Fernet key.

        Args:
            key: A base64-encoded 32-byte Fernet key.

        Raises:
            InvalidKeyError: If the key is empty or malformed.
        """
        if not key:
            raise InvalidKeyError("Encryption key cannot be empty")
        try:
            self._fernet = Fernet(key.encode())
        except (ValueError, TypeError) as e:
            raise InvalidKeyError(f"Invalid encryption key: {e}") from e

    @staticmethod
    def generate_key() -> str:
        """Generate a fresh Fernet key."""
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def encrypt_optional(self, plaintext: Optional[str]) -> Optional[str]:
        """Encrypt a value that may be absent (e.g. a refresh token)."""
        if plaintext is None:
            return None
        return self.encrypt(plaintext)

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored token.

        Raises:
            DecryptionError: If the ciphertext is corrupt or was written
                with a different key.
        """
        try:
            return self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except (InvalidToken, UnicodeError, AttributeError) as e:
            raise DecryptionError(f"Failed to decrypt token: {e!r}") from e
