"""
Credential normalization for incoming cluster definitions.
"""

from typing import Optional

from ..models.cluster import ClusterDefinition
from ..utils.logging import get_logger
from .encryption import EncryptionService

logger = get_logger(__name__)


class CredentialHandler:
    """Replaces plaintext agent passwords with their encrypted form.

    A failed encryption keeps the original password so the definition can
    still be persisted; the failure is logged at ERROR.
    """

    def __init__(self, encryption_service: EncryptionService):
        self.encryption = encryption_service

    def normalize_secrets(self, definition: ClusterDefinition) -> ClusterDefinition:
        """Encrypt ``agents.password`` unless it is empty or already encrypted.

        Args:
            definition: Incoming definition, left untouched

        Returns:
            A copy of the definition with the password normalized
        """
        normalized = definition.model_copy(deep=True)
        password = normalized.agents.password

        if not password:
            return normalized
        if self._is_encrypted(definition.cluster_name, password):
            logger.debug(f"Password of cluster '{definition.cluster_name}' is already encrypted")
            return normalized

        normalized.agents.password = self._encrypt_or_keep(definition.cluster_name, password)
        return normalized

    def normalize_secrets_for_update(self, definition: ClusterDefinition,
                                     previous: Optional[ClusterDefinition]) -> ClusterDefinition:
        """Encrypt the incoming password only if it differs from the stored one.

        The stored password is ciphertext, so an unchanged form submission sends
        the ciphertext back and is left alone. Any other non-empty value is
        treated as a new password.

        Args:
            definition: Incoming definition, left untouched
            previous: Definition currently in the store

        Returns:
            A copy of the definition with the password normalized
        """
        normalized = definition.model_copy(deep=True)
        new_password = normalized.agents.password
        old_password = previous.agents.password if previous is not None else None

        if not new_password:
            return normalized
        if old_password is not None and new_password == old_password:
            logger.debug(f"Password of cluster '{definition.cluster_name}' unchanged, not re-encrypting")
            return normalized

        normalized.agents.password = self._encrypt_or_keep(definition.cluster_name, new_password)
        return normalized

    def _encrypt_or_keep(self, cluster_name: str, password: str) -> str:
        try:
            return self.encryption.encrypt(password)
        except Exception as e:
            logger.error(
                f"Unable to encrypt agent password of cluster '{cluster_name}', "
                f"persisting it unencrypted: {e}"
            )
            return password

    def _is_encrypted(self, cluster_name: str, password: str) -> bool:
        try:
            return self.encryption.is_encrypted(password)
        except Exception as e:
            logger.warning(f"Unable to inspect agent password of cluster '{cluster_name}': {e}")
            return False
