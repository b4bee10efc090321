"""Tests for the MCP-backed tool runtime."""

from unittest.mock import AsyncMock

import httpx
import pytest

from mcpchain.credentials.resolver import ResolvedCredential
from mcpchain.execution.runtime import MCPToolRuntime, camel_to_snake, coerce_to_arguments
from mcpchain.mcp_client.adapter import ToolDefinition
from mcpchain.mcp_client.registry import ServiceNotFoundError

PRICE_TOOL = ToolDefinition(
    name="get_price",
    service_name="crypto-prices",
    input_schema={
        "type": "object",
        "properties": {
            "symbol": {"type": "string"},
            "convert_to": {"type": "string"},
            "limit": {"type": "integer"},
        },
        "required": ["symbol"],
    },
)


@pytest.fixture
def runtime(mock_adapter):
    mock_adapter.list_tools = AsyncMock(return_value=[PRICE_TOOL])
    return MCPToolRuntime(mock_adapter)


class TestHelpers:
    @pytest.mark.parametrize(
        "name,expected",
        [("convertTo", "convert_to"), ("pageSize2x", "page_size2x"), ("already_snake", "already_snake")],
    )
    def test_camel_to_snake(self, name, expected):
        assert camel_to_snake(name) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, {}),
            ({"a": 1}, {"a": 1}),
            ('{"symbol": "BTC"}', {"symbol": "BTC"}),
            ("   ", {}),
            ("hello", {"input": "hello"}),
            ("[1, 2]", {"input": [1, 2]}),
            ([1, 2], {"input": [1, 2]}),
            (7, {"input": 7}),
        ],
    )
    def test_coerce_to_arguments(self, raw, expected):
        assert coerce_to_arguments(raw) == expected


class TestNameResolution:
    """Test cases for service and tool name resolution."""

    def test_normalize_name_uses_registry_aliases(self, runtime):
        assert runtime.normalize_name("cmc") == "coinmarketcap-mcp-service"
        assert runtime.normalize_name("summary") == "summary"

    def test_resolve_endpoint(self, runtime):
        assert runtime.resolve_endpoint("github").requires_auth is True
        with pytest.raises(ServiceNotFoundError):
            runtime.resolve_endpoint("unknown-service")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", ["get_price", "Get-Price", "GET PRICE"])
    async def test_find_tool(self, runtime, action):
        tool = await runtime.find_tool("crypto-prices", action)

        assert tool is PRICE_TOOL

    @pytest.mark.asyncio
    async def test_unknown_tool_is_none(self, runtime):
        assert await runtime.find_tool("crypto-prices", "get_volume") is None

    @pytest.mark.asyncio
    async def test_catalog_fetched_once_without_retries(self, runtime, mock_adapter):
        await runtime.find_tool("crypto-prices", "get_price")

        mock_adapter.list_tools.assert_awaited_once_with(
            "crypto-prices", headers=None, retry=False
        )

    @pytest.mark.asyncio
    async def test_credential_fills_catalog_headers(self, runtime, mock_adapter):
        credential = ResolvedCredential({"GITHUB_TOKEN": "ghp_secret"}, verified=True)

        await runtime.find_tool("github", "list_repos", credential)

        mock_adapter.list_tools.assert_awaited_once_with(
            "github", headers={"Authorization": "Bearer ghp_secret"}, retry=False
        )

    @pytest.mark.asyncio
    async def test_listing_failure_is_remembered(self, runtime, mock_adapter):
        mock_adapter.list_tools = AsyncMock(side_effect=httpx.ConnectError("refused"))

        assert await runtime.find_tool("crypto-prices", "Get-Price") is None
        assert await runtime.find_tool("crypto-prices", "get_price") is None

        mock_adapter.list_tools.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_listing_failure_is_per_service(self, runtime, mock_adapter):
        mock_adapter.list_tools = AsyncMock(
            side_effect=[httpx.ConnectError("refused"), [PRICE_TOOL]]
        )

        assert await runtime.find_tool("summary", "summarize") is None
        assert await runtime.find_tool("crypto-prices", "get_price") is PRICE_TOOL

    @pytest.mark.asyncio
    async def test_discovery_disabled(self, mock_adapter):
        runtime = MCPToolRuntime(mock_adapter, discover_tools=False)

        assert await runtime.find_tool("crypto-prices", "Get-Price") is None
        mock_adapter.list_tools.assert_not_awaited()


class TestNormalizeInput:
    """Test cases for input shaping against tool schemas."""

    @pytest.mark.asyncio
    async def test_camel_case_keys_renamed(self, runtime):
        args = await runtime.normalize_input(
            "crypto-prices", PRICE_TOOL, {"symbol": "BTC", "convertTo": "USD", "limit": "3"}
        )

        assert args == {"symbol": "BTC", "convert_to": "USD", "limit": 3}

    @pytest.mark.asyncio
    async def test_validation_failure_sends_arguments_as_provided(self, runtime):
        args = await runtime.normalize_input("crypto-prices", PRICE_TOOL, {"convertTo": "USD"})

        assert args == {"convert_to": "USD"}

    @pytest.mark.asyncio
    async def test_json_string_input(self, runtime):
        args = await runtime.normalize_input("crypto-prices", PRICE_TOOL, '{"symbol": "ETH"}')

        assert args == {"symbol": "ETH"}

    @pytest.mark.asyncio
    async def test_tool_without_schema(self, runtime, mock_adapter):
        args = await runtime.normalize_input("crypto-prices", None, {"someKey": 1})

        assert args == {"someKey": 1}
        mock_adapter.list_tools.assert_not_awaited()


class TestInvoke:
    """Test cases for credential placeholder substitution on invoke."""

    @pytest.mark.asyncio
    async def test_credential_fills_header_placeholders(self, runtime, mock_adapter):
        credential = ResolvedCredential({"GITHUB_TOKEN": "ghp_secret"}, verified=True)

        await runtime.invoke("github", "list_repos", {"owner": "acme"}, credential)

        mock_adapter.invoke.assert_awaited_once_with(
            "github",
            "list_repos",
            {"owner": "acme"},
            headers={"Authorization": "Bearer ghp_secret"},
        )

    @pytest.mark.asyncio
    async def test_credential_fills_argument_placeholders(self, runtime, mock_adapter):
        credential = ResolvedCredential({"GITHUB_TOKEN": "ghp_secret"}, verified=True)

        await runtime.invoke("github", "clone", {"url": "https://{{GITHUB_TOKEN}}@github.com/x"}, credential)

        args = mock_adapter.invoke.await_args.args[2]
        assert args == {"url": "https://ghp_secret@github.com/x"}

    @pytest.mark.asyncio
    async def test_no_credential_sends_no_extra_headers(self, runtime, mock_adapter):
        result = await runtime.invoke("crypto-prices", "get_price", {"symbol": "BTC"})

        assert result.content == {"ok": True}
        mock_adapter.invoke.assert_awaited_once_with(
            "crypto-prices", "get_price", {"symbol": "BTC"}, headers=None
        )

    def test_parse_result(self, runtime):
        assert runtime.parse_result('{"data": {"price": 1}}') == {"price": 1}

    @pytest.mark.asyncio
    async def test_aclose_closes_adapter(self, runtime, mock_adapter):
        await runtime.aclose()

        mock_adapter.close.assert_awaited_once()
