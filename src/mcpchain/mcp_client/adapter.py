"""HTTP adapter for remote MCP tool services.

Each service exposes:

- ``GET  {base_url}/api/tools``      -> ``{"tools": [...]}`` or a bare list
- ``POST {base_url}/api/call-tool``  -> ``{"success": bool, "result": ..., "error": ...}``
- ``GET  {base_url}/health``
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from mcpchain.config.settings import ServiceEndpointConfig
from mcpchain.mcp_client.cache import ToolDefinitionCache
from mcpchain.mcp_client.registry import ServiceRegistry
from mcpchain.mcp_client.telemetry import EngineTelemetry
from mcpchain.utils.logger import get_logger
from mcpchain.utils.retry import RetryConfig, retry_async

logger = get_logger(__name__)

TOOLS_PATH = "/api/tools"
CALL_TOOL_PATH = "/api/call-tool"
HEALTH_PATH = "/health"


class MCPRequestError(Exception):
    """A tool service answered, but with an error status or error payload."""

    def __init__(
        self,
        message: str,
        service_name: str,
        status_code: Optional[int] = None,
        body: Any = None,
    ):
        super().__init__(message)
        self.service_name = service_name
        self.status_code = status_code
        self.body = body


@dataclass
class ToolDefinition:
    """A tool advertised by an MCP service."""

    name: str
    service_name: str
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], service_name: str) -> "ToolDefinition":
        schema = (
            data.get("inputSchema")
            or data.get("input_schema")
            or data.get("parameters")
            or {}
        )
        return cls(
            name=data["name"],
            service_name=service_name,
            description=data.get("description") or "",
            input_schema=schema,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "server": self.service_name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


@dataclass
class ToolResult:
    """Normalized outcome of a successful tool invocation."""

    service_name: str
    tool_name: str
    content: Any
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool": self.tool_name,
            "server": self.service_name,
            "status": "success",
            "content": self.content,
            "duration": self.duration,
        }


def _error_message_from_response(response: httpx.Response) -> str:
    """Build 'HTTP {status}: {reason}' plus the server's own message when present."""
    message = f"HTTP {response.status_code}: {response.reason_phrase}"
    detail = ""
    try:
        body = response.json()
        if isinstance(body, dict):
            detail = str(body.get("error") or body.get("message") or body.get("detail") or "")
        elif body:
            detail = str(body)
    except ValueError:
        detail = response.text.strip()
    if detail:
        message = f"{message} - {detail[:500]}"
    return message


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"text": response.text}


class HttpMCPAdapter:
    """
    Discovers and invokes tools on HTTP MCP services.

    Transport failures (timeouts, refused connections, DNS errors) are retried
    per endpoint with exponential backoff. Error statuses and error payloads
    are raised as MCPRequestError without retry.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        client: Optional[httpx.AsyncClient] = None,
        telemetry: Optional[EngineTelemetry] = None,
        ssl_verify: bool = True,
    ):
        self.registry = registry
        self._client = client or httpx.AsyncClient(verify=ssl_verify)
        self._owns_client = client is None
        self.telemetry = telemetry or EngineTelemetry()
        self.tool_cache: ToolDefinitionCache[ToolDefinition] = ToolDefinitionCache()
        self.request_count = 0
        self.error_count = 0

    async def __aenter__(self) -> "HttpMCPAdapter":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def resolve(self, mcp_name: str) -> ServiceEndpointConfig:
        """Resolve a service name, raising ServiceNotFoundError if unknown."""
        return self.registry.resolve(mcp_name)

    async def _request(
        self,
        endpoint: ServiceEndpointConfig,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        retry: bool = True,
    ) -> Any:
        url = f"{endpoint.base_url}{path}"
        headers = {"Content-Type": "application/json", **endpoint.headers}

        async def _send() -> Any:
            self.request_count += 1
            try:
                response = await self._client.request(
                    method, url, json=payload, headers=headers, timeout=endpoint.timeout
                )
            except httpx.HTTPError:
                self.error_count += 1
                raise
            if response.is_error:
                self.error_count += 1
                raise MCPRequestError(
                    _error_message_from_response(response),
                    service_name=endpoint.name,
                    status_code=response.status_code,
                    body=response.text,
                )
            return _decode_body(response)

        config = RetryConfig(max_attempts=endpoint.retries if retry else 1)
        return await retry_async(_send, config, f"{method} {endpoint.name}{path}")

    async def list_tools(
        self,
        service_name: str,
        headers: Optional[Dict[str, str]] = None,
        retry: bool = True,
    ) -> List[ToolDefinition]:
        """
        Return the service's tool catalog, cached for the adapter's lifetime.

        Args:
            service_name: Registered (or aliased) MCP service name
            headers: Extra headers for the catalog request, e.g. injected credentials
            retry: Apply the endpoint's transport retry budget to the request
        """
        endpoint = self.resolve(service_name)

        cached = self.tool_cache.get(endpoint.name)
        if cached is not None:
            self.telemetry.record_cache_hit(endpoint.name)
            return cached
        self.telemetry.record_cache_miss(endpoint.name)

        if headers:
            endpoint = endpoint.model_copy(update={"headers": {**endpoint.headers, **headers}})
        data = await self._request(endpoint, "GET", TOOLS_PATH, retry=retry)
        raw_tools = data.get("tools", []) if isinstance(data, dict) else data
        tools = [
            ToolDefinition.from_dict(item, endpoint.name)
            for item in raw_tools or []
            if isinstance(item, dict) and item.get("name")
        ]
        self.tool_cache.set(endpoint.name, tools)
        logger.info(f"Discovered {len(tools)} tool(s) on {endpoint.name}")
        return tools

    def clear_cache(self, service_name: Optional[str] = None) -> None:
        """Invalidate cached tool catalogs."""
        self.tool_cache.invalidate(service_name)

    async def invoke(
        self,
        service_name: str,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> ToolResult:
        """
        Call a tool and return its normalized result.

        Args:
            service_name: Registered (or aliased) MCP service name
            tool_name: Tool to call on that service
            arguments: Tool arguments, sent as JSON
            headers: Extra per-call headers, e.g. injected credentials

        Raises:
            ServiceNotFoundError: If the service is not registered
            MCPRequestError: On an error status or an error payload
            httpx.TransportError: Once transport retries are exhausted
        """
        endpoint = self.resolve(service_name)
        if headers:
            endpoint = endpoint.model_copy(update={"headers": {**endpoint.headers, **headers}})

        payload = {"toolName": tool_name, "arguments": arguments or {}}
        start = time.time()
        success = False

        with self.telemetry.trace_operation(
            "mcp.invoke", {"mcp.service": endpoint.name, "mcp.tool": tool_name}
        ):
            try:
                logger.debug(f"Invoking {endpoint.name}.{tool_name}")
                data = await self._request(endpoint, "POST", CALL_TOOL_PATH, payload)

                if isinstance(data, dict) and data.get("success") is False:
                    self.error_count += 1
                    raise MCPRequestError(
                        str(data.get("error") or "Tool call failed"),
                        service_name=endpoint.name,
                        body=data,
                    )

                content = data.get("result", data) if isinstance(data, dict) else data
                success = True
            finally:
                duration = time.time() - start
                self.telemetry.record_request(endpoint.name, tool_name, success, duration)

        logger.info(f"Tool {endpoint.name}.{tool_name} completed in {duration:.2f}s")
        return ToolResult(
            service_name=endpoint.name,
            tool_name=tool_name,
            content=content,
            duration=duration,
        )

    async def check_health(self, service_name: str) -> bool:
        """Probe a service's health endpoint once, without retries."""
        try:
            endpoint = self.resolve(service_name)
            await self._request(endpoint, "GET", HEALTH_PATH, retry=False)
            return True
        except Exception as e:
            logger.warning(f"Health check failed for {service_name}: {e}")
            return False

    async def get_all_health(self) -> Dict[str, bool]:
        return {
            name: await self.check_health(name) for name in self.registry.list_services()
        }

    def get_stats(self) -> Dict[str, Any]:
        return {
            "services": self.registry.list_services(),
            "request_count": self.request_count,
            "error_count": self.error_count,
            "cache": self.tool_cache.stats.get_stats(),
        }
