"""Tests for the tool definition cache and telemetry helpers."""

import pytest

from mcpchain.mcp_client.cache import ToolDefinitionCache
from mcpchain.mcp_client.telemetry import EngineTelemetry


class TestToolDefinitionCache:
    def test_get_set(self):
        cache = ToolDefinitionCache()

        assert cache.get("svc") is None
        cache.set("svc", ["a", "b"])

        assert cache.get("svc") == ["a", "b"]
        assert "svc" in cache
        assert cache.stats.hits == 1
        assert cache.stats.misses == 1
        assert cache.stats.hit_rate == 50.0

    def test_returned_list_is_a_copy(self):
        cache = ToolDefinitionCache()
        cache.set("svc", ["a"])

        cache.get("svc").append("b")

        assert cache.get("svc") == ["a"]

    def test_invalidate_one(self):
        cache = ToolDefinitionCache()
        cache.set("a", [1])
        cache.set("b", [2])

        cache.invalidate("a")

        assert "a" not in cache
        assert len(cache) == 1
        assert cache.stats.invalidations == 1

    def test_invalidate_all(self):
        cache = ToolDefinitionCache()
        cache.set("a", [1])
        cache.set("b", [2])

        cache.invalidate()

        assert len(cache) == 0
        assert cache.stats.get_stats()["invalidations"] == 2


class TestEngineTelemetry:
    def test_trace_operation_passes_through(self):
        telemetry = EngineTelemetry()

        with telemetry.trace_operation("mcp.invoke", {"mcp.service": "svc", "skip": None}):
            value = 1

        assert value == 1

    def test_trace_operation_reraises(self):
        telemetry = EngineTelemetry()

        with pytest.raises(RuntimeError):
            with telemetry.trace_operation("mcp.invoke"):
                raise RuntimeError("boom")

    def test_record_helpers(self):
        telemetry = EngineTelemetry()

        telemetry.record_request("svc", "tool", success=False, duration=0.5)
        telemetry.record_cache_hit("svc")
        telemetry.record_cache_miss("svc")
