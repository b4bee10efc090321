"""Process-lifetime cache of MCP tool definitions."""

import time
from typing import Any, Dict, Generic, List, Optional, TypeVar

from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CacheStats:
    """Statistics for cache performance tracking."""

    def __init__(self):
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.invalidations = 0
        self.created_at = time.time()

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate as percentage."""
        total_requests = self.hits + self.misses
        if total_requests == 0:
            return 0.0
        return (self.hits / total_requests) * 100.0

    def get_stats(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "invalidations": self.invalidations,
            "hit_rate": self.hit_rate,
            "uptime": time.time() - self.created_at,
        }


class ToolDefinitionCache(Generic[T]):
    """
    Per-service cache of tool catalogs.

    Tool catalogs are assumed stable for the life of the process, so entries
    never expire on their own. Concurrent population of the same service is
    last-writer-wins and reads take no lock.
    """

    def __init__(self):
        self._entries: Dict[str, List[T]] = {}
        self.stats = CacheStats()

    def get(self, service_name: str) -> Optional[List[T]]:
        entry = self._entries.get(service_name)
        if entry is None:
            self.stats.misses += 1
            return None
        self.stats.hits += 1
        return list(entry)

    def set(self, service_name: str, tools: List[T]) -> None:
        self._entries[service_name] = list(tools)
        self.stats.sets += 1
        logger.debug(f"Cached {len(tools)} tool definition(s) for {service_name}")

    def invalidate(self, service_name: Optional[str] = None) -> None:
        """Drop one service's catalog, or every catalog when no name is given."""
        if service_name is None:
            count = len(self._entries)
            self._entries.clear()
        else:
            count = 1 if self._entries.pop(service_name, None) is not None else 0
        self.stats.invalidations += count
        logger.debug(f"Invalidated {count} tool catalog(s)")

    def __contains__(self, service_name: str) -> bool:
        return service_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
