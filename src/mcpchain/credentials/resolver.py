"""Per-user credential lookup and call-time injection."""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from mcpchain.credentials.encryption import CredentialCipher, CredentialDecryptionError
from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)

# Placeholder syntax for credential values in headers and arguments: {{VAR_NAME}}
PLACEHOLDER_PATTERN = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)\}\}")

# Never populated from user-supplied credentials
DISALLOWED_ENV_VARS = frozenset(
    {
        "PATH",
        "PATHEXT",
        "LD_LIBRARY_PATH",
        "LD_PRELOAD",
        "LD_AUDIT",
        "DYLD_LIBRARY_PATH",
        "DYLD_INSERT_LIBRARIES",
        "PYTHONPATH",
        "PYTHONHOME",
        "NODE_OPTIONS",
        "CLASSPATH",
        "HOME",
        "SHELL",
        "TEMP",
        "TMP",
    }
)

NOTION_HEADERS_ENV = "OPENAPI_MCP_HEADERS"
NOTION_API_VERSION = "2022-06-28"


class AuthRequiredError(Exception):
    """A step needs a verified credential the user has not provided."""

    def __init__(self, user_id: str, mcp_name: str, missing_fields: Optional[List[str]] = None):
        self.user_id = user_id
        self.mcp_name = mcp_name
        self.missing_fields = missing_fields or []
        detail = (
            f" (missing: {', '.join(self.missing_fields)})" if self.missing_fields else ""
        )
        super().__init__(
            f"User authentication not found or not verified for MCP {mcp_name}{detail}"
        )


@dataclass
class CredentialRecord:
    """Stored credential row as provided by the auth/persistence service."""

    user_id: str
    mcp_name: str
    encrypted_payload: Any
    verified: bool = False


@dataclass
class ResolvedCredential:
    fields: Dict[str, str] = field(default_factory=dict)
    verified: bool = False

    @property
    def empty_fields(self) -> List[str]:
        return [key for key, value in self.fields.items() if not str(value).strip()]

    @property
    def is_usable(self) -> bool:
        return self.verified and bool(self.fields) and not self.empty_fields

    def __repr__(self) -> str:
        # Keep plaintext out of logs and tracebacks
        return f"ResolvedCredential(fields={sorted(self.fields)!r}, verified={self.verified!r})"


class CredentialStore(ABC):
    """Read-only view of the external credential store."""

    @abstractmethod
    async def get(self, user_id: str, mcp_name: str) -> Optional[CredentialRecord]:
        """Return the stored record for a user and service, if any."""
        pass


class InMemoryCredentialStore(CredentialStore):
    def __init__(self, records: Optional[List[CredentialRecord]] = None):
        self._records: Dict[Tuple[str, str], CredentialRecord] = {}
        for record in records or []:
            self.put(record)

    def put(self, record: CredentialRecord) -> None:
        self._records[(record.user_id, record.mcp_name)] = record

    async def get(self, user_id: str, mcp_name: str) -> Optional[CredentialRecord]:
        return self._records.get((user_id, mcp_name))


class CredentialResolver:
    """
    Resolves decrypted credential fields for (user, service) pairs.

    Stored payloads may be:

    - a Fernet token string
    - ``{"encrypted": "<token>", "version": ...}``
    - a legacy plain JSON object (or JSON string) of fields
    """

    def __init__(self, store: CredentialStore, cipher: Optional[CredentialCipher] = None):
        self.store = store
        self.cipher = cipher

    def _decode_payload(self, payload: Any, mcp_name: str) -> Dict[str, str]:
        if isinstance(payload, dict) and "encrypted" in payload:
            payload = payload["encrypted"]
        elif isinstance(payload, dict):
            return {str(k): "" if v is None else str(v) for k, v in payload.items()}

        if not isinstance(payload, str) or not payload:
            return {}

        if self.cipher is not None:
            try:
                return self.cipher.decrypt_fields(payload)
            except CredentialDecryptionError as e:
                logger.debug(f"Payload for {mcp_name} is not a valid token: {e}")

        # Legacy plaintext JSON
        try:
            legacy = json.loads(payload)
        except json.JSONDecodeError:
            logger.error(f"Failed to decode stored credential for {mcp_name}")
            return {}
        if isinstance(legacy, dict):
            return {str(k): "" if v is None else str(v) for k, v in legacy.items()}
        return {}

    async def get_auth(self, user_id: str, mcp_name: str) -> Optional[ResolvedCredential]:
        """Look up and decrypt a user's credential for a service.

        Returns None when no record exists.
        """
        record = await self.store.get(user_id, mcp_name)
        if record is None:
            logger.debug(f"No credential stored for {mcp_name}")
            return None

        fields = self._decode_payload(record.encrypted_payload, mcp_name)
        logger.debug(
            f"Resolved credential for {mcp_name}: {len(fields)} field(s), "
            f"verified={record.verified}"
        )
        return ResolvedCredential(fields=fields, verified=bool(record.verified) and bool(fields))

    async def require_auth(self, user_id: str, mcp_name: str) -> ResolvedCredential:
        """Return a usable credential or raise AuthRequiredError."""
        credential = await self.get_auth(user_id, mcp_name)
        if credential is None:
            raise AuthRequiredError(user_id, mcp_name)
        if not credential.is_usable:
            raise AuthRequiredError(user_id, mcp_name, credential.empty_fields)
        return credential


def _wrap_notion_headers(value: str) -> str:
    if value.strip().startswith("{"):
        return value
    token = value.strip()
    if not token.lower().startswith("bearer "):
        token = f"Bearer {token}"
    return json.dumps({"Authorization": token, "Notion-Version": NOTION_API_VERSION})


def inject_env(
    env_template: Dict[str, str],
    credential: Optional[ResolvedCredential],
    aliases: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """
    Fill empty template values from credential fields.

    For each key with an empty value, the credential field of the same name is
    used, then the field named by ``aliases[key]``. Non-empty template values
    are kept as configured.

    Args:
        env_template: Configured environment for the service
        credential: Resolved credential, or None
        aliases: Map of template key to credential field name

    Returns:
        A new dict; the template is not modified.
    """
    resolved = dict(env_template)
    if credential is None:
        return resolved

    aliases = aliases or {}
    injected = []
    for key, value in env_template.items():
        if value:
            continue
        if key.upper() in DISALLOWED_ENV_VARS:
            logger.warning(f"Refusing to inject credential into disallowed variable {key}")
            continue

        candidate = credential.fields.get(key)
        if not candidate and key in aliases:
            candidate = credential.fields.get(aliases[key])
        if not candidate:
            continue

        if key == NOTION_HEADERS_ENV:
            candidate = _wrap_notion_headers(candidate)
        resolved[key] = candidate
        injected.append(key)

    if injected:
        logger.debug(f"Injected credential values for: {', '.join(injected)}")
    return resolved


def substitute_placeholders(value: Any, variables: Dict[str, str]) -> Any:
    """Replace ``{{NAME}}`` placeholders in strings, lists and dicts.

    Unknown names are left untouched.
    """
    if isinstance(value, str):
        return PLACEHOLDER_PATTERN.sub(
            lambda m: variables.get(m.group(1)) or m.group(0), value
        )
    if isinstance(value, dict):
        return {k: substitute_placeholders(v, variables) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute_placeholders(v, variables) for v in value]
    return value
