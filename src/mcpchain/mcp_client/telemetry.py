"""OpenTelemetry instrumentation for MCP calls and chain steps.

Only the OpenTelemetry API is used here. Without an SDK configured by the host
process, tracers and meters are no-ops.
"""

from contextlib import contextmanager
from typing import Any, Dict, Optional

from opentelemetry import metrics, trace
from opentelemetry.trace import Status, StatusCode

from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)

INSTRUMENTATION_NAME = "mcpchain"


class EngineTelemetry:
    """Tracer and metric instruments shared by the adapter and chain runner."""

    def __init__(
        self,
        tracer_provider: Optional[trace.TracerProvider] = None,
        meter_provider: Optional[metrics.MeterProvider] = None,
    ):
        self.tracer = trace.get_tracer(
            INSTRUMENTATION_NAME, tracer_provider=tracer_provider
        )
        meter = metrics.get_meter(INSTRUMENTATION_NAME, meter_provider=meter_provider)

        self.request_counter = meter.create_counter(
            "mcp_requests_total", description="Total MCP tool requests"
        )
        self.error_counter = meter.create_counter(
            "mcp_errors_total", description="Total MCP tool request errors"
        )
        self.request_duration = meter.create_histogram(
            "mcp_request_duration_seconds",
            unit="s",
            description="MCP tool request duration",
        )
        self.cache_hits = meter.create_counter(
            "mcp_tool_cache_hits_total", description="Tool catalog cache hits"
        )
        self.cache_misses = meter.create_counter(
            "mcp_tool_cache_misses_total", description="Tool catalog cache misses"
        )

    @contextmanager
    def trace_operation(
        self, operation_name: str, attributes: Optional[Dict[str, Any]] = None
    ):
        """
        Context manager for tracing an operation.

        Args:
            operation_name: Name of the operation being traced
            attributes: Additional attributes to add to the span
        """
        with self.tracer.start_as_current_span(
            operation_name, record_exception=False, set_status_on_exception=False
        ) as span:
            try:
                span.set_attribute("mcp.operation", operation_name)
                for key, value in (attributes or {}).items():
                    if value is not None:
                        span.set_attribute(key, value)

                yield span

                span.set_status(Status(StatusCode.OK))

            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

    def record_request(
        self,
        service: str,
        tool: str,
        success: bool = True,
        duration: Optional[float] = None,
    ):
        attributes = {"service": service, "tool": tool, "success": str(success).lower()}
        self.request_counter.add(1, attributes)
        if duration is not None:
            self.request_duration.record(duration, attributes)
        if not success:
            self.error_counter.add(1, attributes)

    def record_cache_hit(self, service: str):
        self.cache_hits.add(1, {"service": service})

    def record_cache_miss(self, service: str):
        self.cache_misses.add(1, {"service": service})
