"""
Secret handling for cluster definitions.
"""

from .encryption import EncryptionService, FernetEncryptionService
from .credentials import CredentialHandler

__all__ = [
    "EncryptionService",
    "FernetEncryptionService",
    "CredentialHandler",
]
