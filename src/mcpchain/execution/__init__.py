"""Sequential workflow execution over MCP tool services."""

from .engine import ChainRunner, ResultSink
from .error_classifier import (
    ClassifiedError,
    ErrorAnalyzer,
    ErrorCategory,
    ErrorKind,
    classify_error,
    classify_exception,
    format_error_for_presentation,
)
from .events import EventCollector, EventType, JsonlEventLog, ProgressEvent, ProgressStreamer
from .extraction import RuleBasedExtractor, extract_useful_data, parse_result_data
from .factory import create_chain_runner
from .result_formatter import LLMResultFormatter, PlainResultFormatter, ResultFormatter
from .runtime import MCPToolRuntime, ToolRuntime
from .steps import CompletionSummary, ExecutionContext, StepResult, WorkflowStep

__all__ = [
    "ChainRunner",
    "ResultSink",
    "create_chain_runner",
    # Data model
    "WorkflowStep",
    "StepResult",
    "ExecutionContext",
    "CompletionSummary",
    # Error classification
    "ErrorKind",
    "ErrorCategory",
    "ClassifiedError",
    "ErrorAnalyzer",
    "classify_error",
    "classify_exception",
    "format_error_for_presentation",
    # Progress events
    "EventType",
    "ProgressEvent",
    "ProgressStreamer",
    "EventCollector",
    "JsonlEventLog",
    # Strategies and capabilities
    "RuleBasedExtractor",
    "extract_useful_data",
    "parse_result_data",
    "ResultFormatter",
    "PlainResultFormatter",
    "LLMResultFormatter",
    "ToolRuntime",
    "MCPToolRuntime",
]
