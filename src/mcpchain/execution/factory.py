"""Process wiring for the chain runner."""

from typing import Optional

import httpx

from mcpchain.ai_providers.factory import create_provider, get_provider_config
from mcpchain.config.settings import EngineSettings
from mcpchain.credentials.encryption import CredentialCipher
from mcpchain.credentials.resolver import CredentialResolver, CredentialStore
from mcpchain.mcp_client.adapter import HttpMCPAdapter
from mcpchain.mcp_client.registry import ServiceRegistry
from mcpchain.mcp_client.telemetry import EngineTelemetry
from mcpchain.utils.logger import get_logger

from .engine import ChainRunner, ResultSink
from .error_classifier import ErrorAnalyzer
from .result_formatter import LLMResultFormatter, PlainResultFormatter, ResultFormatter
from .runtime import MCPToolRuntime

logger = get_logger(__name__)


async def create_chain_runner(
    settings: EngineSettings,
    credential_store: CredentialStore,
    result_sink: Optional[ResultSink] = None,
    registry: Optional[ServiceRegistry] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ChainRunner:
    """
    Build a ChainRunner and its collaborators from settings.

    The registry, adapter and tool cache are created once here and shared by
    every run that uses the returned runner. The runner owns the adapter and
    the AI provider; release them with ``await runner.aclose()``.
    """
    registry = registry or ServiceRegistry.from_settings(settings)
    telemetry = EngineTelemetry()
    adapter = HttpMCPAdapter(
        registry,
        client=http_client,
        telemetry=telemetry,
        ssl_verify=settings.ssl_verify,
    )

    cipher = None
    if settings.credential_encryption_key:
        cipher = CredentialCipher(settings.credential_encryption_key)
    else:
        logger.warning("CREDENTIAL_ENCRYPTION_KEY not set; only plaintext credentials can be read")

    formatter: ResultFormatter = PlainResultFormatter()
    error_analyzer = None
    provider = None
    if settings.openai_api_key and (settings.stream_final_result or settings.error_analysis_enabled):
        provider = create_provider("openai", get_provider_config(settings))
        await provider.initialize()
        if settings.stream_final_result:
            formatter = LLMResultFormatter(provider)
        if settings.error_analysis_enabled:
            error_analyzer = ErrorAnalyzer(provider, timeout=settings.error_analysis_timeout)

    logger.info(
        f"Chain runner ready with {len(registry)} service(s), "
        f"formatter={type(formatter).__name__}, "
        f"error_analysis={'on' if error_analyzer else 'off'}"
    )
    return ChainRunner(
        runtime=MCPToolRuntime(adapter),
        credential_resolver=CredentialResolver(credential_store, cipher),
        formatter=formatter,
        error_analyzer=error_analyzer,
        result_sink=result_sink,
        telemetry=telemetry,
        provider=provider,
        event_log_dir=settings.event_log_dir,
    )
