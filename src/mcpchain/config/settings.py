"""Configuration management for mcpchain."""

import json
import logging
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Use standard logging for settings module to avoid circular imports
logger = logging.getLogger(__name__)


class ServiceEndpointConfig(BaseModel):
    """Configuration for a single HTTP MCP tool service."""

    model_config = {"populate_by_name": True}  # Enable parsing by field alias names

    name: str
    base_url: str = Field(..., alias="baseUrl")
    timeout: float = 30.0  # Per-request timeout in seconds
    retries: int = 3  # Total attempts for transport failures
    headers: Dict[str, str] = Field(default_factory=dict)

    # Credential wiring
    requires_auth: bool = Field(False, alias="requiresAuth")
    env: Dict[str, str] = Field(default_factory=dict)  # Template, empty values get credentials
    auth_params: Dict[str, str] = Field(
        default_factory=dict, alias="authParams"
    )  # env key -> credential field alias

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {value!r}")
        return value.rstrip("/")

    def model_post_init(self, __context) -> None:
        """Validate configuration after initialization."""
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive for service {self.name}")
        if self.retries < 1:
            raise ValueError(f"retries must be at least 1 for service {self.name}")


# Sensitive environment variable names, masked by EngineSettings.__repr__
SENSITIVE_ENV_VAR_NAMES: frozenset = frozenset(
    {
        "OPENAI_API_KEY",
        "CREDENTIAL_ENCRYPTION_KEY",
        "MCP_SERVICES_CONFIG",  # May contain API keys in headers
    }
)

_SENSITIVE_FIELD_NAMES: frozenset = frozenset(
    {name.lower() for name in SENSITIVE_ENV_VAR_NAMES}
)


class EngineSettings(BaseSettings):
    """Process-level settings for the workflow execution engine."""

    model_config = SettingsConfigDict(extra="ignore")

    _SENSITIVE_FIELDS: frozenset = _SENSITIVE_FIELD_NAMES

    def __repr__(self) -> str:
        """Return a representation with sensitive fields masked."""
        field_strs = []
        for field_name in type(self).model_fields:
            value = getattr(self, field_name, None)
            if field_name in self._SENSITIVE_FIELDS:
                masked = f"<{len(str(value))} chars>" if value else "None"
                field_strs.append(f"{field_name}={masked!r}")
            else:
                field_strs.append(f"{field_name}={value!r}")
        return f"{self.__class__.__name__}({', '.join(field_strs)})"

    def __str__(self) -> str:
        return self.__repr__()

    # Logging
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    json_logs: bool = Field(default=False, validation_alias="JSON_LOGS")

    # MCP service configuration (YAML or JSON list)
    mcp_services_config: str = Field("[]", validation_alias="MCP_SERVICES_CONFIG")
    mcp_default_timeout: float = Field(30.0, validation_alias="MCP_DEFAULT_TIMEOUT")
    mcp_retry_count: int = Field(3, validation_alias="MCP_RETRY_COUNT")
    ssl_verify: bool = Field(default=True, validation_alias="SSL_VERIFY")

    # Credentials
    credential_encryption_key: Optional[str] = Field(
        None, validation_alias="CREDENTIAL_ENCRYPTION_KEY"
    )

    # LLM-backed formatting and error analysis
    openai_api_key: Optional[str] = Field(None, validation_alias="OPENAI_API_KEY")
    openai_base_url: Optional[str] = Field(None, validation_alias="OPENAI_BASE_URL")
    ai_model: str = Field(default="gpt-4o-mini", validation_alias="AI_MODEL")
    ai_temperature: float = Field(default=0.1, validation_alias="AI_TEMPERATURE")
    error_analysis_enabled: bool = Field(
        default=False, validation_alias="ERROR_ANALYSIS_ENABLED"
    )
    error_analysis_timeout: float = Field(
        default=10.0, validation_alias="ERROR_ANALYSIS_TIMEOUT"
    )
    stream_final_result: bool = Field(
        default=True, validation_alias="STREAM_FINAL_RESULT"
    )

    # Per-task JSONL copy of the progress event stream
    event_log_dir: Optional[str] = Field(None, validation_alias="EVENT_LOG_DIR")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator(
        "json_logs",
        "ssl_verify",
        "error_analysis_enabled",
        "stream_final_result",
        mode="before",
    )
    @classmethod
    def parse_bool_from_env(cls, v: Any) -> bool:
        """Parse boolean values from environment variables."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.strip().lower() in ("true", "1", "yes", "on")
        return bool(v)

    def get_mcp_services(self) -> List[ServiceEndpointConfig]:
        """Parse MCP service endpoints from YAML (or JSON) configuration."""
        raw = (self.mcp_services_config or "").strip()
        if not raw:
            return []

        try:
            services_data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            logger.warning(f"MCP_SERVICES_CONFIG is not valid YAML ({e}), trying JSON")
            try:
                services_data = json.loads(raw)
            except json.JSONDecodeError as json_error:
                raise ValueError(
                    f"Invalid MCP_SERVICES_CONFIG: {json_error}"
                ) from json_error

        if services_data is None:
            return []
        if not isinstance(services_data, list):
            raise ValueError("MCP_SERVICES_CONFIG must be a list of service definitions")

        services = []
        for item in services_data:
            item = dict(item)
            item.setdefault("timeout", self.mcp_default_timeout)
            item.setdefault("retries", self.mcp_retry_count)
            services.append(ServiceEndpointConfig(**item))

        logger.info(
            f"Loaded {len(services)} MCP service(s): "
            f"{', '.join(s.name for s in services) or 'none'}"
        )
        return services


def load_settings() -> EngineSettings:
    """Load engine settings from the environment."""
    return EngineSettings()
