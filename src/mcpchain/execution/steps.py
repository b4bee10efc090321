"""Plan, step result and execution context types for chain runs."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from mcpchain.execution.error_classifier import ClassifiedError


@dataclass(frozen=True)
class WorkflowStep:
    """One planned tool invocation."""

    step_number: int
    mcp_name: str
    action: str
    input: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowStep":
        """Build a step from planner output (camelCase or snake_case keys)."""
        step_number = data.get("stepNumber", data.get("step_number", data.get("step")))
        if step_number is None:
            raise ValueError(f"Workflow step is missing its step number: {data!r}")
        return cls(
            step_number=int(step_number),
            mcp_name=data.get("mcpName") or data.get("mcp_name") or data.get("mcp") or "",
            action=data.get("action", ""),
            input=data.get("input"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step_number,
            "mcpName": self.mcp_name,
            "action": self.action,
            "input": self.input,
        }


@dataclass(frozen=True)
class StepResult:
    """Outcome of one executed step; immutable once recorded."""

    step_number: int
    success: bool
    mcp_name: str = ""
    action: str = ""
    raw_result: Any = None
    formatted_result: str = ""
    parsed_data: Any = None
    error: Optional[ClassifiedError] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step_number,
            "success": self.success,
            "mcpName": self.mcp_name,
            "actionName": self.action,
            "rawResult": self.raw_result,
            "result": self.formatted_result,
            "parsedData": self.parsed_data,
            "error": self.error.to_dict() if self.error else None,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ExecutionContext:
    """State of a single run. Never shared between concurrent runs."""

    task_id: str
    user_id: str
    conversation_id: Optional[str] = None
    step_results: List[StepResult] = field(default_factory=list)

    def record(self, result: StepResult) -> None:
        expected = len(self.step_results) + 1
        if result.step_number != expected:
            raise ValueError(
                f"Step results must be contiguous: expected step {expected}, "
                f"got {result.step_number}"
            )
        self.step_results.append(result)

    @property
    def last_result(self) -> Optional[StepResult]:
        return self.step_results[-1] if self.step_results else None


@dataclass(frozen=True)
class CompletionSummary:
    """Run outcome handed to the persistence sink."""

    success: bool
    steps: List[StepResult]
    final_result: Optional[str] = None
    halted_at_step: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "steps": [s.to_dict() for s in self.steps],
            "finalResult": self.final_result,
            "haltedAtStep": self.halted_at_step,
        }


def validate_plan(plan: List[WorkflowStep]) -> None:
    """Raise ValueError unless the plan is non-empty and numbered 1..N."""
    if not plan:
        raise ValueError("Workflow plan must contain at least one step")
    numbers = [step.step_number for step in plan]
    if numbers != list(range(1, len(plan) + 1)):
        raise ValueError(f"Workflow step numbers must be contiguous from 1, got {numbers}")
