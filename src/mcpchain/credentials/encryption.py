"""Symmetric encryption for stored per-user MCP credentials."""

import json
from typing import Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)


class CredentialDecryptionError(ValueError):
    """Raised when a stored credential payload cannot be decrypted or parsed."""


def get_fernet(key: Optional[str]) -> Fernet:
    if not key:
        raise RuntimeError("CREDENTIAL_ENCRYPTION_KEY not set in config.")
    return Fernet(key.encode() if isinstance(key, str) else key)


def generate_key() -> str:
    return Fernet.generate_key().decode()


class CredentialCipher:
    """Encrypts credential field maps to Fernet tokens and back."""

    def __init__(self, key: Optional[str]):
        self._fernet = get_fernet(key)

    def encrypt_fields(self, fields: Dict[str, str]) -> str:
        """Encrypt a credential field map for storage at rest."""
        plaintext = json.dumps(fields, sort_keys=True)
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt_fields(self, token: str) -> Dict[str, str]:
        """Decrypt a stored payload back into its field map.

        Raises:
            CredentialDecryptionError: If the token is invalid or the
                plaintext is not a JSON object
        """
        try:
            plaintext = self._fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            raise CredentialDecryptionError("Invalid encrypted credential token.")

        try:
            fields = json.loads(plaintext)
        except json.JSONDecodeError as e:
            raise CredentialDecryptionError(f"Decrypted credential is not JSON: {e}") from e
        if not isinstance(fields, dict):
            raise CredentialDecryptionError("Decrypted credential is not a JSON object")
        return {str(k): "" if v is None else str(v) for k, v in fields.items()}
