"""Registry of MCP tool service endpoints.

The registry is an explicitly constructed object owned by the process wiring
code and injected into the adapter and chain runner.
"""

from typing import Dict, Iterable, List, Optional

from mcpchain.config.settings import EngineSettings, ServiceEndpointConfig
from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)

# Short names used by planners mapped to registered service names
DEFAULT_NAME_ALIASES: Dict[str, str] = {
    "coinmarketcap": "coinmarketcap-mcp-service",
    "cmc": "coinmarketcap-mcp-service",
    "github": "github-mcp-server",
    "twitter": "x-mcp",
    "x": "x-mcp",
    "coingecko": "coingecko-mcp",
    "notion": "notion-mcp-server",
    "ethereum": "evm-mcp",
    "evm": "evm-mcp",
    "dexscreener": "dexscreener-mcp-server",
}


class ServiceNotFoundError(Exception):
    """Raised when an MCP service name does not resolve in the registry."""

    def __init__(self, service_name: str, available: Optional[List[str]] = None):
        self.service_name = service_name
        self.available = available or []
        super().__init__(
            f"MCP service not found: {service_name}. "
            f"Available services: {', '.join(self.available) or 'none'}"
        )


class ServiceRegistry:
    """Name-to-endpoint map for MCP tool services."""

    def __init__(
        self,
        endpoints: Optional[Iterable[ServiceEndpointConfig]] = None,
        aliases: Optional[Dict[str, str]] = None,
    ):
        self._endpoints: Dict[str, ServiceEndpointConfig] = {}
        self._aliases = dict(DEFAULT_NAME_ALIASES if aliases is None else aliases)
        for endpoint in endpoints or []:
            self.register(endpoint)

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "ServiceRegistry":
        return cls(settings.get_mcp_services())

    def normalize_name(self, mcp_name: str) -> str:
        """Map a planner-facing name to a registered service name."""
        name = (mcp_name or "").strip()
        if name in self._endpoints:
            return name
        return self._aliases.get(name.lower(), name)

    def register(self, endpoint: ServiceEndpointConfig) -> None:
        if endpoint.name in self._endpoints:
            logger.warning(f"Overwriting existing MCP service endpoint: {endpoint.name}")
        self._endpoints[endpoint.name] = endpoint
        logger.debug(f"Registered MCP service {endpoint.name} at {endpoint.base_url}")

    def unregister(self, name: str) -> bool:
        if name in self._endpoints:
            del self._endpoints[name]
            logger.debug(f"Unregistered MCP service: {name}")
            return True
        return False

    def resolve(self, mcp_name: str) -> ServiceEndpointConfig:
        """Return the endpoint for a service name or raise ServiceNotFoundError."""
        endpoint = self._endpoints.get(self.normalize_name(mcp_name))
        if endpoint is None:
            raise ServiceNotFoundError(mcp_name, self.list_services())
        return endpoint

    def list_services(self) -> List[str]:
        return sorted(self._endpoints)

    def __contains__(self, mcp_name: str) -> bool:
        return self.normalize_name(mcp_name) in self._endpoints

    def __len__(self) -> int:
        return len(self._endpoints)
