"""Error classification for MCP tool failures.

Maps any raw failure (message, stack, tool name) into a closed taxonomy with
retryability and user guidance. Rules are checked in a fixed order and the
first matching category wins:

1. authentication  -> not retryable, user must re-authenticate
2. connection      -> retryable, no user action
3. configuration   -> not retryable, administrator action
4. server          -> retryable; rate limit and quota imply longer backoff
5. unknown         -> retryable by classification, never auto-retried by the engine

``classify_error`` is a pure function of its inputs. ``ErrorAnalyzer`` can add
an LLM-written explanation on top, without touching kind or retryability.
"""

import asyncio
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Tuple

import httpx

from mcpchain.ai_providers.base import ProviderMessage
from mcpchain.credentials.resolver import AuthRequiredError
from mcpchain.mcp_client.registry import ServiceNotFoundError
from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    AUTHENTICATION = "authentication"
    CONNECTION = "connection"
    CONFIGURATION = "configuration"
    SERVER = "server"
    UNKNOWN = "unknown"


class ErrorKind(Enum):
    """Closed taxonomy of tool failure kinds."""

    # Authentication
    INVALID_API_KEY = "INVALID_API_KEY"
    EXPIRED_API_KEY = "EXPIRED_API_KEY"
    WRONG_PASSWORD = "WRONG_PASSWORD"
    MISSING_AUTH_PARAMS = "MISSING_AUTH_PARAMS"
    INVALID_AUTH_FORMAT = "INVALID_AUTH_FORMAT"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    MCP_AUTH_REQUIRED = "MCP_AUTH_REQUIRED"

    # Connection
    CONNECTION_TIMEOUT = "CONNECTION_TIMEOUT"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    MCP_CONNECTION_FAILED = "MCP_CONNECTION_FAILED"

    # Configuration
    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    MISSING_DEPENDENCIES = "MISSING_DEPENDENCIES"
    INVALID_COMMAND = "INVALID_COMMAND"
    MCP_SERVICE_INIT_FAILED = "MCP_SERVICE_INIT_FAILED"

    # Server
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"

    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass(frozen=True)
class ClassifiedError:
    """Structured, user-presentable description of a failure."""

    kind: ErrorKind
    category: ErrorCategory
    title: str
    message: str
    user_message: str
    suggestions: Tuple[str, ...]
    retryable: bool
    requires_user_action: bool
    http_status: int = 500
    original_error: str = ""
    tool_name: Optional[str] = None
    analysis: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "category": self.category.value,
            "title": self.title,
            "message": self.message,
            "userMessage": self.user_message,
            "suggestions": list(self.suggestions),
            "retryable": self.retryable,
            "requiresUserAction": self.requires_user_action,
            "httpStatus": self.http_status,
            "toolName": self.tool_name,
            "analysis": self.analysis,
        }


@dataclass(frozen=True)
class _ErrorTemplate:
    category: ErrorCategory
    title: str
    message: str  # formatted with {service}
    user_message: str
    suggestions: Tuple[str, ...]
    http_status: int
    retryable: bool
    requires_user_action: bool


_TEMPLATES: Dict[ErrorKind, _ErrorTemplate] = {
    ErrorKind.INVALID_API_KEY: _ErrorTemplate(
        ErrorCategory.AUTHENTICATION,
        "Invalid API Key",
        "The API key for {service} is invalid or incorrectly formatted",
        "The API key you provided is invalid. Please check it and enter a valid key.",
        (
            "Check that the API key is complete without missing characters",
            "Make sure the API key has no extra spaces",
            "Verify the API key is from the correct service provider",
            "If the key was just created, wait a few minutes and try again",
        ),
        401,
        False,
        True,
    ),
    ErrorKind.WRONG_PASSWORD: _ErrorTemplate(
        ErrorCategory.AUTHENTICATION,
        "Wrong Password",
        "The password for {service} is incorrect",
        "The password you entered is incorrect. Please check it and re-enter.",
        (
            "Check the password's letter case",
            "Check whether Caps Lock is on",
            "Repeated failures may temporarily lock the account",
            "Try resetting the password",
        ),
        401,
        False,
        True,
    ),
    ErrorKind.EXPIRED_API_KEY: _ErrorTemplate(
        ErrorCategory.AUTHENTICATION,
        "Token Expired",
        "The access token for {service} has expired",
        "Your access token has expired and needs to be refreshed or renewed.",
        (
            "Refresh the token",
            "Log in again to obtain a new token",
            "Check the token validity period",
            "Make sure the system clock is correct",
        ),
        401,
        False,
        True,
    ),
    ErrorKind.INSUFFICIENT_PERMISSIONS: _ErrorTemplate(
        ErrorCategory.AUTHENTICATION,
        "Insufficient Permissions",
        "Insufficient access permissions for {service}",
        "Your account does not have permission to access this service.",
        (
            "Check that your account has the required scopes",
            "Ask an administrator to grant the permission",
            "Verify the service subscription is active",
            "Review the API usage scope and limits",
        ),
        403,
        False,
        True,
    ),
    ErrorKind.INVALID_AUTH_FORMAT: _ErrorTemplate(
        ErrorCategory.AUTHENTICATION,
        "Invalid Credential Format",
        "The credential for {service} is not in the expected format",
        "The credential format is not accepted by this service.",
        (
            "Check the expected format in the service documentation",
            "Remove any prefixes or quotes copied with the credential",
            "Re-enter the credential",
        ),
        401,
        False,
        True,
    ),
    ErrorKind.MISSING_AUTH_PARAMS: _ErrorTemplate(
        ErrorCategory.AUTHENTICATION,
        "Missing Credentials",
        "Required credential fields for {service} are empty",
        "Some required credential fields are missing. Please complete them.",
        (
            "Fill in every required credential field",
            "Save and verify the credential again",
        ),
        401,
        False,
        True,
    ),
    ErrorKind.MCP_AUTH_REQUIRED: _ErrorTemplate(
        ErrorCategory.AUTHENTICATION,
        "Authentication Required",
        "{service} requires authentication before it can be used",
        "Please connect and verify your credentials for this service first.",
        (
            "Open the service settings and add your credentials",
            "Verify the credentials after saving them",
            "Run the task again once verification succeeds",
        ),
        401,
        False,
        True,
    ),
    ErrorKind.CONNECTION_TIMEOUT: _ErrorTemplate(
        ErrorCategory.CONNECTION,
        "Connection Timeout",
        "Connection to {service} timed out",
        "The connection to the server timed out, possibly due to network issues or load.",
        (
            "Check that the network connection is stable",
            "Try again later",
            "Try a different network",
            "Ask a network administrator to check firewall settings",
        ),
        408,
        True,
        False,
    ),
    ErrorKind.CONNECTION_REFUSED: _ErrorTemplate(
        ErrorCategory.CONNECTION,
        "Connection Refused",
        "{service} refused the connection",
        "The server refused the connection. The service may be temporarily down.",
        (
            "Verify that the service is running",
            "Check the service address and port",
            "Try again later",
            "Contact the service provider about its status",
        ),
        502,
        True,
        False,
    ),
    ErrorKind.SERVICE_UNAVAILABLE: _ErrorTemplate(
        ErrorCategory.CONNECTION,
        "Service Unavailable",
        "{service} is temporarily unavailable",
        "The service is temporarily unavailable. Please try again shortly.",
        (
            "Wait a moment and try again",
            "Check the service status page",
        ),
        503,
        True,
        False,
    ),
    ErrorKind.MCP_CONNECTION_FAILED: _ErrorTemplate(
        ErrorCategory.CONNECTION,
        "Service Connection Failed",
        "Could not establish a connection to {service}",
        "Could not connect to the tool service.",
        (
            "Check that the service endpoint is reachable",
            "Try again later",
        ),
        502,
        True,
        False,
    ),
    ErrorKind.NETWORK_ERROR: _ErrorTemplate(
        ErrorCategory.CONNECTION,
        "Network Error",
        "Network error while contacting {service}",
        "A network problem occurred. Please check your network settings.",
        (
            "Check that the network connection is working",
            "Restart network equipment",
            "Check DNS settings",
            "Contact your network provider",
        ),
        503,
        True,
        False,
    ),
    ErrorKind.SERVICE_NOT_FOUND: _ErrorTemplate(
        ErrorCategory.CONFIGURATION,
        "Service Not Found",
        "{service} is not a registered tool service",
        "The requested tool service is not available on this platform.",
        (
            "Check the service name in the plan",
            "Ask an administrator to register the service",
        ),
        404,
        False,
        True,
    ),
    ErrorKind.MISSING_DEPENDENCIES: _ErrorTemplate(
        ErrorCategory.CONFIGURATION,
        "Missing Dependencies",
        "Dependencies required by {service} are not installed",
        "The system is missing dependencies required to run this service.",
        (
            "Install the service runtime and its packages",
            "Check the PATH of the service host",
            "Contact a system administrator",
        ),
        500,
        False,
        True,
    ),
    ErrorKind.INVALID_COMMAND: _ErrorTemplate(
        ErrorCategory.CONFIGURATION,
        "Invalid Command",
        "The command configured for {service} is invalid",
        "The service is configured with an invalid command.",
        (
            "Check the service command and arguments",
            "Contact a system administrator",
        ),
        500,
        False,
        True,
    ),
    ErrorKind.MCP_SERVICE_INIT_FAILED: _ErrorTemplate(
        ErrorCategory.CONFIGURATION,
        "Service Initialization Failed",
        "{service} failed to initialize",
        "The tool service could not be started.",
        (
            "Check the service logs",
            "Verify the service configuration",
            "Contact a system administrator",
        ),
        500,
        False,
        True,
    ),
    ErrorKind.INVALID_CONFIGURATION: _ErrorTemplate(
        ErrorCategory.CONFIGURATION,
        "Configuration Error",
        "{service} is configured incorrectly",
        "The service configuration has problems. Please check its settings.",
        (
            "Check the service configuration parameters",
            "Verify file paths",
            "Validate environment variable settings",
            "Compare against the service documentation",
        ),
        500,
        False,
        True,
    ),
    ErrorKind.RATE_LIMIT_EXCEEDED: _ErrorTemplate(
        ErrorCategory.SERVER,
        "Rate Limit Exceeded",
        "Request rate to {service} exceeded its limit",
        "Requests are too frequent. Please try again later.",
        (
            "Wait longer before retrying",
            "Reduce request frequency",
            "Upgrade the account for higher limits",
            "Avoid unnecessary requests",
        ),
        429,
        True,
        False,
    ),
    ErrorKind.QUOTA_EXCEEDED: _ErrorTemplate(
        ErrorCategory.SERVER,
        "Quota Exceeded",
        "The usage quota for {service} has been exhausted",
        "The usage quota for this service is used up.",
        (
            "Wait for the quota to reset before retrying",
            "Check the plan's quota in the provider dashboard",
            "Upgrade the plan for a higher quota",
        ),
        429,
        True,
        False,
    ),
    ErrorKind.INTERNAL_SERVER_ERROR: _ErrorTemplate(
        ErrorCategory.SERVER,
        "Internal Server Error",
        "{service} encountered an internal error",
        "The server encountered an internal error. Please try again later.",
        (
            "Try again later",
            "Check the service status page",
            "Contact technical support",
        ),
        500,
        True,
        False,
    ),
    ErrorKind.UNKNOWN_ERROR: _ErrorTemplate(
        ErrorCategory.UNKNOWN,
        "Unknown Error",
        "{service} encountered an unknown error",
        "An unknown error occurred. Please try the operation again.",
        (
            "Try the operation again",
            "Check the network connection",
            "Contact technical support with the error details",
        ),
        500,
        True,
        False,
    ),
}


def _compile(*patterns: str) -> List[Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


# Category detection, checked against message and stack
_CATEGORY_PATTERNS: List[Tuple[ErrorCategory, List[Pattern]]] = [
    (
        ErrorCategory.AUTHENTICATION,
        _compile(
            r"invalid.*api.*key",
            r"api.*key.*invalid",
            r"unauthorized.*api.*key",
            r"bad.*api.*key",
            r"wrong.*password",
            r"incorrect.*password",
            r"password.*incorrect",
            r"invalid.*password",
            r"authentication.*failed",
            r"auth.*failed",
            r"unauthorized",
            r"access.*denied",
            r"forbidden",
            r"insufficient.*permission",
            r"\b401\b",
            r"\b403\b",
            r"error.*\b399\b",
            r"credential.*invalid",
            r"token.*expired",
            r"expired.*token",
            r"invalid.*token",
            r"invalid.*auth.*format",
        ),
    ),
    (
        ErrorCategory.CONNECTION,
        _compile(
            r"timeout",
            r"timed out",
            r"connection.*refused",
            r"connect.*refused",
            r"econnrefused",
            r"enotfound",
            r"name or service not known",
            r"nodename nor servname",
            r"network.*error",
            r"connection.*closed",
            r"connection.*lost",
            r"connection.*reset",
            r"socket.*hang.*up",
            r"service.*unavailable",
            r"host.*unreachable",
            r"mcp.*connection.*failed",
            r"failed to connect",
            r"connect(ion)?\s*error",
            r"connection attempts failed",
        ),
    ),
    (
        ErrorCategory.CONFIGURATION,
        _compile(
            r"command.*not.*found",
            r"no.*such.*file",
            r"cannot.*find.*module",
            r"missing.*dependency",
            r"invalid.*configuration",
            r"config.*error",
            r"npm.*not.*found",
            r"npx.*not.*found",
            r"permission.*denied",
            r"eacces",
            r"invalid.*command",
            r"failed to (initialize|start)",
        ),
    ),
    (
        ErrorCategory.SERVER,
        _compile(
            r"internal.*server.*error",
            r"\b500\b",
            r"\b502\b",
            r"\b503\b",
            r"\b504\b",
            r"\b429\b",
            r"rate.*limit",
            r"quota.*exceeded",
            r"too.*many.*requests",
            r"service.*overloaded",
            r"overloaded",
        ),
    ),
]

# Kind selection within a category, checked against the message only.
# The last entry of each list is the category default.
_KIND_RULES: Dict[ErrorCategory, List[Tuple[Optional[Pattern], ErrorKind]]] = {
    ErrorCategory.AUTHENTICATION: [
        (re.compile(r"invalid.*api.*key|api.*key.*invalid|bad.*api.*key", re.I), ErrorKind.INVALID_API_KEY),
        (re.compile(r"wrong.*password|incorrect.*password|password.*incorrect|invalid.*password", re.I), ErrorKind.WRONG_PASSWORD),
        (re.compile(r"token.*expired|expired.*token", re.I), ErrorKind.EXPIRED_API_KEY),
        (re.compile(r"invalid.*auth.*format", re.I), ErrorKind.INVALID_AUTH_FORMAT),
        (re.compile(r"forbidden|access.*denied|insufficient.*permission|\b403\b", re.I), ErrorKind.INSUFFICIENT_PERMISSIONS),
        (None, ErrorKind.INVALID_API_KEY),
    ],
    ErrorCategory.CONNECTION: [
        (re.compile(r"timeout|timed out", re.I), ErrorKind.CONNECTION_TIMEOUT),
        (re.compile(r"refused|econnrefused", re.I), ErrorKind.CONNECTION_REFUSED),
        (re.compile(r"service.*unavailable", re.I), ErrorKind.SERVICE_UNAVAILABLE),
        (re.compile(r"mcp.*connection.*failed|failed to connect", re.I), ErrorKind.MCP_CONNECTION_FAILED),
        (None, ErrorKind.NETWORK_ERROR),
    ],
    ErrorCategory.CONFIGURATION: [
        (re.compile(r"command.*not.*found|npm.*not.*found|npx.*not.*found|cannot.*find.*module|missing.*dependency", re.I), ErrorKind.MISSING_DEPENDENCIES),
        (re.compile(r"invalid.*command", re.I), ErrorKind.INVALID_COMMAND),
        (re.compile(r"failed to (initialize|start)", re.I), ErrorKind.MCP_SERVICE_INIT_FAILED),
        (None, ErrorKind.INVALID_CONFIGURATION),
    ],
    ErrorCategory.SERVER: [
        (re.compile(r"rate.*limit|too.*many.*requests|\b429\b", re.I), ErrorKind.RATE_LIMIT_EXCEEDED),
        (re.compile(r"quota.*exceeded", re.I), ErrorKind.QUOTA_EXCEEDED),
        (None, ErrorKind.INTERNAL_SERVER_ERROR),
    ],
    ErrorCategory.UNKNOWN: [(None, ErrorKind.UNKNOWN_ERROR)],
}

# Kinds reported to the presentation layer as service connection problems
_SERVICE_CONNECTION_KINDS = frozenset(
    {
        ErrorKind.INVALID_API_KEY,
        ErrorKind.EXPIRED_API_KEY,
        ErrorKind.WRONG_PASSWORD,
        ErrorKind.MISSING_AUTH_PARAMS,
        ErrorKind.INVALID_AUTH_FORMAT,
        ErrorKind.INSUFFICIENT_PERMISSIONS,
        ErrorKind.MCP_CONNECTION_FAILED,
        ErrorKind.MCP_AUTH_REQUIRED,
        ErrorKind.MCP_SERVICE_INIT_FAILED,
    }
)


def build_classified_error(
    kind: ErrorKind, original_error: str = "", tool_name: Optional[str] = None
) -> ClassifiedError:
    """Instantiate the template for a known kind."""
    template = _TEMPLATES[kind]
    return ClassifiedError(
        kind=kind,
        category=template.category,
        title=template.title,
        message=template.message.format(service=tool_name or "MCP service"),
        user_message=template.user_message,
        suggestions=template.suggestions,
        retryable=template.retryable,
        requires_user_action=template.requires_user_action,
        http_status=template.http_status,
        original_error=original_error,
        tool_name=tool_name,
    )


def detect_category(message: str, stack: str = "") -> ErrorCategory:
    for category, patterns in _CATEGORY_PATTERNS:
        if any(p.search(message) or (stack and p.search(stack)) for p in patterns):
            return category
    return ErrorCategory.UNKNOWN


def classify_error(
    message: str, stack: Optional[str] = None, tool_name: Optional[str] = None
) -> ClassifiedError:
    """
    Classify a raw failure.

    Args:
        message: Error message text
        stack: Optional stack trace text, also searched for category patterns
        tool_name: Optional MCP service/tool name used in messages

    Returns:
        ClassifiedError for the first matching category
    """
    message = message or ""
    category = detect_category(message, stack or "")

    kind = ErrorKind.UNKNOWN_ERROR
    for pattern, candidate in _KIND_RULES[category]:
        if pattern is None or pattern.search(message):
            kind = candidate
            break

    return build_classified_error(kind, message, tool_name)


_TRANSPORT_EXCEPTIONS = (
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


def _exception_chain_text(exc: BaseException) -> str:
    """Type and message of the exception and its causes, without source lines."""
    parts = []
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        parts.append(f"{type(current).__name__}: {current}")
        current = current.__cause__ or current.__context__
    return "\n".join(parts)


def classify_exception(exc: BaseException, tool_name: Optional[str] = None) -> ClassifiedError:
    """Classify an exception raised while executing a step."""
    if isinstance(exc, ServiceNotFoundError):
        return build_classified_error(ErrorKind.SERVICE_NOT_FOUND, str(exc), tool_name)
    if isinstance(exc, AuthRequiredError):
        kind = ErrorKind.MISSING_AUTH_PARAMS if exc.missing_fields else ErrorKind.MCP_AUTH_REQUIRED
        return build_classified_error(kind, str(exc), tool_name)

    message = str(exc) or type(exc).__name__
    # Transport exception names (ConnectTimeout, ConnectError) carry the category
    if isinstance(exc, _TRANSPORT_EXCEPTIONS) and type(exc).__name__ not in message:
        message = f"{type(exc).__name__}: {message}"
    return classify_error(message, _exception_chain_text(exc), tool_name)


def is_service_connection_error(error: ClassifiedError) -> bool:
    return error.kind in _SERVICE_CONNECTION_KINDS


def format_error_for_presentation(error: ClassifiedError) -> Dict[str, Any]:
    """Shape a classified error for a presentation layer."""
    return {
        "error": {
            "type": error.kind.value,
            "title": error.title,
            "message": error.user_message,
            "suggestions": list(error.suggestions),
            "isRetryable": error.retryable,
            "requiresUserAction": error.requires_user_action,
            "mcpName": error.tool_name,
            "llmAnalysis": error.analysis,
        },
        "technical": {
            "originalError": error.original_error,
            "httpStatus": error.http_status,
        },
    }


ANALYSIS_PROMPT = """You are an MCP (Model Context Protocol) troubleshooting assistant.

MCP Service: {service}
Error Message: {message}

Explain the most likely cause in two or three sentences a non-technical user
can follow, then list up to three concrete steps to fix it."""

ANALYSIS_UNAVAILABLE = "LLM analysis unavailable"


@dataclass
class ErrorAnalyzer:
    """Optional LLM enrichment of classified errors.

    The enrichment only fills ``analysis``. Provider failures and timeouts are
    logged and swallowed.
    """

    provider: Any = None
    timeout: float = 10.0
    enabled: bool = True

    async def analyze(self, classified: ClassifiedError) -> ClassifiedError:
        if not self.enabled or self.provider is None:
            return classified

        prompt = ANALYSIS_PROMPT.format(
            service=classified.tool_name or "Unknown",
            message=classified.original_error or classified.message,
        )
        try:
            response = await asyncio.wait_for(
                self.provider.chat_completion([ProviderMessage(content=prompt, role="system")]),
                timeout=self.timeout,
            )
            analysis = (response.content or "").strip() or ANALYSIS_UNAVAILABLE
        except Exception as e:
            logger.warning(f"LLM error analysis failed: {e}")
            analysis = ANALYSIS_UNAVAILABLE

        return replace(classified, analysis=analysis)
