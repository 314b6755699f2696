"""
Encryption Service
Encrypts agent passwords with Fernet symmetric encryption before they are persisted
"""

import base64
from abc import ABC, abstractmethod
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..config import get_settings
from ..exceptions import EncryptionError


class EncryptionService(ABC):
    """Encryption collaborator used by the credential handler."""

    @abstractmethod
    def encrypt(self, plaintext: str) -> str:
        """Return the ciphertext of ``plaintext``; raises EncryptionError, never partial output."""

    @abstractmethod
    def decrypt(self, ciphertext: str) -> str:
        """Return the plaintext of ``ciphertext``."""

    @abstractmethod
    def is_encrypted(self, value: str) -> bool:
        """Whether ``value`` is already ciphertext produced by this service."""


class FernetEncryptionService(EncryptionService):
    """Fernet-based encryption keyed from a passphrase"""

    def __init__(self, secret_key: Optional[str] = None, salt: Optional[str] = None):
        settings = get_settings()
        self._secret_key = secret_key or settings.security.secret_key
        self._salt = (salt or settings.security.key_salt).encode()
        self._fernet: Optional[Fernet] = None

    def _derive_key(self) -> bytes:
        """Derive the Fernet key from the configured passphrase using PBKDF2"""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self._salt,
            iterations=100000,
        )
        return base64.urlsafe_b64encode(kdf.derive(self._secret_key.encode()))

    def _get_fernet(self) -> Fernet:
        """Get or create Fernet instance"""
        if self._fernet is None:
            self._fernet = Fernet(self._derive_key())
        return self._fernet

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a secret

        Args:
            plaintext: Secret to encrypt

        Returns:
            Fernet token as text
        """
        try:
            return self._get_fernet().encrypt(plaintext.encode('utf-8')).decode('utf-8')
        except (TypeError, ValueError, AttributeError) as e:
            raise EncryptionError("encryption", str(e), cause=e)

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a Fernet token

        Args:
            ciphertext: Token produced by ``encrypt``

        Returns:
            Original secret
        """
        try:
            return self._get_fernet().decrypt(ciphertext.encode('utf-8')).decode('utf-8')
        except (InvalidToken, TypeError, ValueError, AttributeError) as e:
            raise EncryptionError("decryption", "value is not a valid token for this key", cause=e)

    def is_encrypted(self, value: str) -> bool:
        """Check whether a value is a token signed with the current key"""
        if not value:
            return False
        try:
            self._get_fernet().extract_timestamp(value.encode('utf-8'))
            return True
        except (InvalidToken, TypeError, ValueError):
            return False
