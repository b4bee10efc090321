"""HTTP MCP client: service registry, tool discovery and invocation."""

from .adapter import HttpMCPAdapter, MCPRequestError, ToolDefinition, ToolResult
from .cache import ToolDefinitionCache
from .registry import ServiceNotFoundError, ServiceRegistry
from .schema import generate_tool_name, translate_schema, validate_arguments

__all__ = [
    "HttpMCPAdapter",
    "MCPRequestError",
    "ToolDefinition",
    "ToolResult",
    "ToolDefinitionCache",
    "ServiceRegistry",
    "ServiceNotFoundError",
    # Schema utilities
    "translate_schema",
    "validate_arguments",
    "generate_tool_name",
]
