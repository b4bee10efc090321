"""Sequential chain runner for planned MCP tool workflows."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from mcpchain.ai_providers.base import BaseProvider
from mcpchain.credentials.resolver import (
    AuthRequiredError,
    CredentialResolver,
    ResolvedCredential,
)
from mcpchain.mcp_client.telemetry import EngineTelemetry
from mcpchain.utils.logger import (
    bind_execution_context,
    clear_execution_context,
    get_logger,
)

from .error_classifier import (
    ClassifiedError,
    ErrorAnalyzer,
    classify_exception,
    format_error_for_presentation,
    is_service_connection_error,
)
from .events import EventType, JsonlEventLog, ProgressStreamer, Subscriber, fan_out
from .extraction import ExtractionStrategy, extract_useful_data
from .result_formatter import PlainResultFormatter, ResultFormatter, render_plain
from .runtime import ToolRuntime
from .steps import (
    CompletionSummary,
    ExecutionContext,
    StepResult,
    WorkflowStep,
    validate_plan,
)

logger = get_logger(__name__)


class ResultSink(ABC):
    """Receives the completion summary for durable storage."""

    @abstractmethod
    async def save(self, task_id: str, summary: CompletionSummary) -> None:
        pass


class ChainRunner:
    """
    Executes a plan of tool steps strictly in order against one context.

    Per step: the input is taken from the plan (step 1) or extracted from the
    previous step's parsed data. Then the service and credentials are
    resolved, the tool is invoked through the runtime, and the result is
    formatted and recorded. The first failed step halts the run. Transport
    retries happen inside the adapter and are not visible here.
    """

    def __init__(
        self,
        runtime: ToolRuntime,
        credential_resolver: Optional[CredentialResolver] = None,
        formatter: Optional[ResultFormatter] = None,
        extractor: ExtractionStrategy = extract_useful_data,
        error_analyzer: Optional[ErrorAnalyzer] = None,
        result_sink: Optional[ResultSink] = None,
        telemetry: Optional[EngineTelemetry] = None,
        provider: Optional[BaseProvider] = None,
        event_log_dir: Optional[str] = None,
    ):
        self.runtime = runtime
        self.credential_resolver = credential_resolver
        self.formatter = formatter or PlainResultFormatter()
        self.extractor = extractor
        self.error_analyzer = error_analyzer
        self.result_sink = result_sink
        self.telemetry = telemetry or EngineTelemetry()
        self.provider = provider
        self.event_log_dir = event_log_dir

    async def __aenter__(self) -> "ChainRunner":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the runtime transports and shut down the AI provider, if any."""
        await self.runtime.aclose()
        if self.provider is not None:
            await self.provider.shutdown()

    async def run(
        self,
        plan: Sequence[Union[WorkflowStep, Dict[str, Any]]],
        context: ExecutionContext,
        subscriber: Optional[Subscriber] = None,
    ) -> CompletionSummary:
        """
        Execute a plan and return its completion summary.

        Args:
            plan: Steps numbered contiguously from 1 (dicts are accepted)
            context: Fresh execution context for this run
            subscriber: Receives progress events in emission order

        Raises:
            ValueError: If the plan is empty or not numbered 1..N
        """
        steps = [s if isinstance(s, WorkflowStep) else WorkflowStep.from_dict(s) for s in plan]
        validate_plan(steps)

        if self.event_log_dir:
            subscriber = fan_out(JsonlEventLog(context.task_id, self.event_log_dir), subscriber)
        streamer = ProgressStreamer(subscriber)
        bind_execution_context(context.task_id, context.user_id, context.conversation_id)
        try:
            return await self._run_steps(steps, context, streamer)
        finally:
            clear_execution_context()

    async def _run_steps(
        self,
        steps: List[WorkflowStep],
        context: ExecutionContext,
        streamer: ProgressStreamer,
    ) -> CompletionSummary:
        logger.info(f"Starting execution of {len(steps)} step(s)")
        await streamer.emit(
            EventType.EXECUTION_START,
            {
                "taskId": context.task_id,
                "conversationId": context.conversation_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
        await streamer.emit(
            EventType.STATUS_UPDATE, {"taskId": context.task_id, "status": "in_progress"}
        )

        halted_at: Optional[int] = None
        for step in steps:
            is_final = step.step_number == len(steps)
            result = await self._execute_step(step, is_final, context, streamer)
            context.record(result)
            if not result.success:
                halted_at = step.step_number
                remaining = len(steps) - step.step_number
                logger.warning(
                    f"Halting execution at step {step.step_number}; "
                    f"{remaining} remaining step(s) not attempted"
                )
                break

        success = halted_at is None and all(r.success for r in context.step_results)
        final_result = context.last_result.formatted_result if success else None

        if success:
            message = f"Workflow completed: {len(steps)} step(s) succeeded"
        else:
            message = f"Workflow halted at step {halted_at}"
        await streamer.emit(
            EventType.WORKFLOW_COMPLETE,
            {"success": success, "message": message, "finalResult": final_result},
        )

        summary = CompletionSummary(
            success=success,
            steps=list(context.step_results),
            final_result=final_result,
            halted_at_step=halted_at,
        )
        await self._persist(context, summary, streamer)

        await streamer.emit(
            EventType.STATUS_UPDATE,
            {"taskId": context.task_id, "status": "completed" if success else "failed"},
        )
        await streamer.emit(
            EventType.TASK_COMPLETE, {"taskId": context.task_id, "success": success}
        )
        logger.info(f"Execution finished: success={success}")
        return summary

    async def _persist(
        self, context: ExecutionContext, summary: CompletionSummary, streamer: ProgressStreamer
    ) -> None:
        if self.result_sink is None:
            return
        try:
            await self.result_sink.save(context.task_id, summary)
        except Exception as e:
            logger.error(f"Failed to persist task result: {e}")
            await streamer.emit(
                EventType.ERROR,
                {"message": "Failed to save task result", "details": str(e)},
            )

    def _step_input(self, step: WorkflowStep, context: ExecutionContext) -> Any:
        previous = context.last_result
        if step.step_number == 1 or previous is None:
            return step.input
        return self.extractor(previous.parsed_data, step.action)

    async def _require_credential(
        self, service_name: str, context: ExecutionContext
    ) -> ResolvedCredential:
        if self.credential_resolver is None:
            raise AuthRequiredError(context.user_id, service_name)
        return await self.credential_resolver.require_auth(context.user_id, service_name)

    async def _execute_step(
        self,
        step: WorkflowStep,
        is_final: bool,
        context: ExecutionContext,
        streamer: ProgressStreamer,
    ) -> StepResult:
        with self.telemetry.trace_operation(
            "chain.step",
            {"chain.step": step.step_number, "mcp.service": step.mcp_name},
        ):
            return await self._attempt_step(step, is_final, context, streamer)

    async def _attempt_step(
        self,
        step: WorkflowStep,
        is_final: bool,
        context: ExecutionContext,
        streamer: ProgressStreamer,
    ) -> StepResult:
        service_name = self.runtime.normalize_name(step.mcp_name)

        # Preconditions: no network call happens before these pass
        try:
            endpoint = self.runtime.resolve_endpoint(service_name)
            credential = None
            if endpoint.requires_auth:
                credential = await self._require_credential(endpoint.name, context)
        except Exception as e:
            return await self._fail(step, e, streamer)

        try:
            tool = await self.runtime.find_tool(endpoint.name, step.action, credential)
            tool_name = tool.name if tool else step.action
            arguments = await self.runtime.normalize_input(
                endpoint.name, tool, self._step_input(step, context)
            )
        except Exception as e:
            return await self._fail(step, e, streamer)

        await streamer.emit(
            EventType.STEP_START,
            {
                "step": step.step_number,
                "mcpName": endpoint.name,
                "actionName": step.action,
                "input": arguments,
            },
        )
        await streamer.emit(
            EventType.STEP_EXECUTING,
            {"step": step.step_number, "mcpName": endpoint.name, "toolName": tool_name},
        )

        try:
            tool_result = await self.runtime.invoke(
                endpoint.name, tool_name, arguments, credential
            )
        except Exception as e:
            return await self._fail(step, e, streamer)

        raw = tool_result.content
        await streamer.emit(
            EventType.STEP_RAW_RESULT,
            {"step": step.step_number, "success": True, "result": raw},
        )

        formatted = await self._format(step, raw, is_final, streamer)
        parsed = self.runtime.parse_result(raw)

        await streamer.emit(
            EventType.STEP_COMPLETE,
            {
                "step": step.step_number,
                "success": True,
                "result": formatted,
                "rawResult": raw,
            },
        )
        logger.info(f"Step {step.step_number} ({endpoint.name}.{tool_name}) completed")

        return StepResult(
            step_number=step.step_number,
            success=True,
            mcp_name=endpoint.name,
            action=step.action,
            raw_result=raw,
            formatted_result=formatted,
            parsed_data=parsed,
        )

    async def _format(
        self, step: WorkflowStep, raw: Any, is_final: bool, streamer: ProgressStreamer
    ) -> str:
        try:
            if not self.formatter.streaming:
                return await self.formatter.format(step, raw, is_final)

            chunk_event = EventType.FINAL_RESULT_CHUNK if is_final else EventType.STEP_RESULT_CHUNK
            chunks = []
            async for chunk in self.formatter.format_stream(step, raw, is_final):
                chunks.append(chunk)
                await streamer.emit(chunk_event, {"step": step.step_number, "chunk": chunk})
            return "".join(chunks)
        except Exception as e:
            logger.warning(f"Result formatting failed for step {step.step_number}: {e}")
            return render_plain(raw)

    async def _fail(
        self, step: WorkflowStep, error: Exception, streamer: ProgressStreamer
    ) -> StepResult:
        classified: ClassifiedError = classify_exception(error, tool_name=step.mcp_name)
        if self.error_analyzer is not None:
            classified = await self.error_analyzer.analyze(classified)

        logger.error(
            f"Step {step.step_number} ({step.mcp_name}) failed: "
            f"{classified.kind.value} retryable={classified.retryable}: {error}"
        )
        await streamer.emit(
            EventType.STEP_ERROR,
            {
                "step": step.step_number,
                "mcpName": step.mcp_name,
                "actionName": step.action,
                "error": classified.user_message,
                "kind": classified.kind.value,
                "retryable": classified.retryable,
                "requiresUserAction": classified.requires_user_action,
                "userMessage": classified.user_message,
                "suggestions": list(classified.suggestions),
                "mcpConnectionError": is_service_connection_error(classified),
                "detailedError": format_error_for_presentation(classified),
            },
        )
        return StepResult(
            step_number=step.step_number,
            success=False,
            mcp_name=step.mcp_name,
            action=step.action,
            formatted_result="",
            error=classified,
        )
