"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

# Add src directory to Python path for tests
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from mcpchain.config.settings import ServiceEndpointConfig  # noqa: E402
from mcpchain.mcp_client.adapter import HttpMCPAdapter, ToolResult  # noqa: E402
from mcpchain.mcp_client.registry import ServiceRegistry  # noqa: E402


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Setup test environment variables."""
    test_env = {
        "LOG_LEVEL": "DEBUG",
        "JSON_LOGS": "false",
        "SSL_VERIFY": "false",
    }
    for key, value in test_env.items():
        monkeypatch.setenv(key, value)
    for key in (
        "MCP_SERVICES_CONFIG",
        "OPENAI_API_KEY",
        "CREDENTIAL_ENCRYPTION_KEY",
        "EVENT_LOG_DIR",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def no_backoff(monkeypatch):
    """Make retry backoff instant and record the requested delays."""
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr("mcpchain.utils.retry.asyncio.sleep", fake_sleep)
    return delays


@pytest.fixture
def service_configs():
    """Endpoints for the services used across tests."""
    return [
        ServiceEndpointConfig(name="crypto-prices", base_url="https://prices.example.com"),
        ServiceEndpointConfig(
            name="github",
            base_url="https://github-mcp.example.com",
            requires_auth=True,
            env={"GITHUB_TOKEN": ""},
            headers={"Authorization": "Bearer {{GITHUB_TOKEN}}"},
        ),
        ServiceEndpointConfig(name="summary", base_url="https://summary.example.com"),
    ]


@pytest.fixture
def registry(service_configs):
    return ServiceRegistry(service_configs)


@pytest.fixture
def mock_adapter(registry):
    """Adapter double: real registry, mocked network methods."""
    adapter = Mock(spec=HttpMCPAdapter)
    adapter.registry = registry
    adapter.resolve.side_effect = registry.resolve
    adapter.list_tools = AsyncMock(return_value=[])
    adapter.invoke = AsyncMock(
        side_effect=lambda service, tool, args, headers=None: ToolResult(
            service_name=service, tool_name=tool, content={"ok": True}
        )
    )
    return adapter
