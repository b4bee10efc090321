"""Tool runtime shared by every executor variant.

``ToolRuntime`` is the narrow interface executors use to reach tools: invoke,
normalize input, normalize names and parse results. ``MCPToolRuntime``
implements it over the HTTP adapter and the credential helpers.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Set

from pydantic import ValidationError

from mcpchain.config.settings import ServiceEndpointConfig
from mcpchain.credentials.resolver import (
    ResolvedCredential,
    inject_env,
    substitute_placeholders,
)
from mcpchain.execution.extraction import parse_result_data
from mcpchain.mcp_client.adapter import HttpMCPAdapter, ToolDefinition, ToolResult
from mcpchain.mcp_client.schema import translate_schema, validate_arguments
from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"\1_\2", name).lower()


def _tool_key(name: str) -> str:
    return re.sub(r"[\s\-_]+", "_", name.strip().lower())


def coerce_to_arguments(raw_input: Any) -> Dict[str, Any]:
    """Turn a step input of any shape into a tool argument dict."""
    if raw_input is None:
        return {}
    if isinstance(raw_input, dict):
        return dict(raw_input)
    if isinstance(raw_input, str):
        text = raw_input.strip()
        if not text:
            return {}
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            return {"input": raw_input}
        if isinstance(decoded, dict):
            return decoded
        return {"input": decoded}
    return {"input": raw_input}


class ToolRuntime(ABC):
    """Interface executors use to reach tools."""

    @abstractmethod
    def normalize_name(self, mcp_name: str) -> str:
        """Map a planner-facing service name to its registered name."""
        pass

    @abstractmethod
    def resolve_endpoint(self, mcp_name: str) -> ServiceEndpointConfig:
        """Return the endpoint for a service, raising ServiceNotFoundError."""
        pass

    async def find_tool(
        self,
        mcp_name: str,
        action: str,
        credential: Optional[ResolvedCredential] = None,
    ) -> Optional[ToolDefinition]:
        """Look up the tool a step action refers to. None means call the action as-is."""
        return None

    @abstractmethod
    async def normalize_input(
        self, mcp_name: str, tool: Optional[ToolDefinition], raw_input: Any
    ) -> Dict[str, Any]:
        """Shape a step input into arguments the tool accepts."""
        pass

    @abstractmethod
    async def invoke(
        self,
        mcp_name: str,
        tool_name: str,
        arguments: Dict[str, Any],
        credential: Optional[ResolvedCredential] = None,
    ) -> ToolResult:
        """Call the tool."""
        pass

    @abstractmethod
    def parse_result(self, raw_result: Any) -> Any:
        """Extract structured data from a raw tool result."""
        pass

    async def aclose(self) -> None:
        """Release transports held by the runtime."""
        pass


class MCPToolRuntime(ToolRuntime):
    """
    ToolRuntime backed by HttpMCPAdapter.

    Tool catalogs are fetched once per service with a single attempt and the
    step's credential headers. A service whose catalog could not be fetched is
    not queried again; its steps call the action name with unvalidated input.
    """

    def __init__(self, adapter: HttpMCPAdapter, discover_tools: bool = True):
        self.adapter = adapter
        self.discover_tools = discover_tools
        self._undiscoverable: Set[str] = set()

    def normalize_name(self, mcp_name: str) -> str:
        return self.adapter.registry.normalize_name(mcp_name)

    def resolve_endpoint(self, mcp_name: str) -> ServiceEndpointConfig:
        return self.adapter.resolve(mcp_name)

    async def find_tool(
        self,
        mcp_name: str,
        action: str,
        credential: Optional[ResolvedCredential] = None,
    ) -> Optional[ToolDefinition]:
        """Look up a tool by exact name, then by a case and separator insensitive match."""
        if not self.discover_tools:
            return None
        endpoint = self.resolve_endpoint(mcp_name)
        if endpoint.name in self._undiscoverable:
            return None

        variables = self._credential_variables(endpoint, credential)
        headers = self._request_headers(endpoint, variables)
        try:
            tools = await self.adapter.list_tools(endpoint.name, headers=headers, retry=False)
        except Exception as e:
            logger.warning(
                f"Could not list tools for {endpoint.name}, "
                f"using action names as given: {e}"
            )
            self._undiscoverable.add(endpoint.name)
            return None

        for tool in tools:
            if tool.name == action:
                return tool
        wanted = _tool_key(action)
        for tool in tools:
            if _tool_key(tool.name) == wanted:
                return tool
        return None

    async def normalize_input(
        self, mcp_name: str, tool: Optional[ToolDefinition], raw_input: Any
    ) -> Dict[str, Any]:
        arguments = coerce_to_arguments(raw_input)
        if tool is None or not tool.input_schema.get("properties"):
            return arguments

        properties = tool.input_schema["properties"]
        renamed = {}
        for key, value in arguments.items():
            snake = camel_to_snake(key)
            if key not in properties and snake in properties:
                logger.debug(f"Renaming argument {key} -> {snake} for {tool.name}")
                renamed[snake] = value
            else:
                renamed[key] = value

        model = translate_schema(tool.input_schema, f"{_tool_key(tool.name).title()}Input")
        try:
            return validate_arguments(model, renamed)
        except ValidationError as e:
            logger.warning(
                f"Arguments for {mcp_name}.{tool.name} do not match its schema, "
                f"sending as provided: {e.error_count()} error(s)"
            )
            return renamed

    def _credential_variables(
        self, endpoint: ServiceEndpointConfig, credential: Optional[ResolvedCredential]
    ) -> Dict[str, str]:
        variables = inject_env(endpoint.env, credential, endpoint.auth_params)
        if credential is not None:
            # Raw fields are also addressable by their own names
            variables = {**credential.fields, **{k: v for k, v in variables.items() if v}}
        return variables

    @staticmethod
    def _request_headers(
        endpoint: ServiceEndpointConfig, variables: Dict[str, str]
    ) -> Optional[Dict[str, str]]:
        if not variables or not endpoint.headers:
            return None
        return substitute_placeholders(dict(endpoint.headers), variables)

    async def invoke(
        self,
        mcp_name: str,
        tool_name: str,
        arguments: Dict[str, Any],
        credential: Optional[ResolvedCredential] = None,
    ) -> ToolResult:
        endpoint = self.resolve_endpoint(mcp_name)
        variables = self._credential_variables(endpoint, credential)

        if variables:
            arguments = substitute_placeholders(arguments, variables)
        headers = self._request_headers(endpoint, variables)

        return await self.adapter.invoke(endpoint.name, tool_name, arguments, headers=headers)

    def parse_result(self, raw_result: Any) -> Any:
        return parse_result_data(raw_result)

    async def aclose(self) -> None:
        await self.adapter.close()
