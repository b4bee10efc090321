"""Per-user credential storage access, decryption and injection."""

from .encryption import CredentialCipher, CredentialDecryptionError, generate_key
from .resolver import (
    AuthRequiredError,
    CredentialRecord,
    CredentialResolver,
    CredentialStore,
    InMemoryCredentialStore,
    ResolvedCredential,
    inject_env,
    substitute_placeholders,
)

__all__ = [
    "AuthRequiredError",
    "CredentialCipher",
    "CredentialDecryptionError",
    "CredentialRecord",
    "CredentialResolver",
    "CredentialStore",
    "InMemoryCredentialStore",
    "ResolvedCredential",
    "generate_key",
    "inject_env",
    "substitute_placeholders",
]
