"""Progress events pushed to a single live consumer during a run."""

import inspect
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)


class EventType(Enum):
    """Closed vocabulary of progress events."""

    EXECUTION_START = "execution_start"
    STATUS_UPDATE = "status_update"
    STEP_START = "step_start"
    STEP_EXECUTING = "step_executing"
    STEP_RAW_RESULT = "step_raw_result"
    STEP_RESULT_CHUNK = "step_result_chunk"
    STEP_COMPLETE = "step_complete"
    STEP_ERROR = "step_error"
    FINAL_RESULT_CHUNK = "final_result_chunk"
    WORKFLOW_COMPLETE = "workflow_complete"
    TASK_COMPLETE = "task_complete"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent:
    event: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.event.value, "data": self.data}


Subscriber = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


class ProgressStreamer:
    """
    Ordered, append-only event channel for one execution.

    The subscriber may be a plain or an async callable. A failing subscriber
    is logged and does not interrupt the run.
    """

    def __init__(self, subscriber: Optional[Subscriber] = None):
        self.subscriber = subscriber
        self._sequence = 0

    @property
    def emitted_count(self) -> int:
        return self._sequence

    async def emit(
        self, event: Union[EventType, str], data: Optional[Dict[str, Any]] = None
    ) -> ProgressEvent:
        """Push one event to the subscriber.

        Raises:
            ValueError: If ``event`` is not part of the vocabulary
        """
        event_type = event if isinstance(event, EventType) else EventType(event)
        self._sequence += 1
        progress_event = ProgressEvent(
            event=event_type, data=dict(data or {}), sequence=self._sequence
        )

        if self.subscriber is None:
            return progress_event

        try:
            outcome = self.subscriber(progress_event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Progress subscriber failed on {event_type.value}: {e}")
        return progress_event


class EventCollector:
    """Subscriber that keeps every event in memory."""

    def __init__(self):
        self.events: List[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def of_type(self, event: Union[EventType, str]) -> List[ProgressEvent]:
        event_type = event if isinstance(event, EventType) else EventType(event)
        return [e for e in self.events if e.event is event_type]

    @property
    def names(self) -> List[str]:
        return [e.event.value for e in self.events]


def fan_out(*subscribers: Optional[Subscriber]) -> Subscriber:
    """Combine subscribers into one that delivers each event to all of them in order."""
    targets = [s for s in subscribers if s is not None]

    async def _deliver(event: ProgressEvent) -> None:
        for target in targets:
            outcome = target(event)
            if inspect.isawaitable(outcome):
                await outcome

    return _deliver


class JsonlEventLog:
    """
    Subscriber that appends events to a JSONL file.

    One JSON object per line with sorted keys. Write failures are logged and
    never raised into the run.
    """

    def __init__(self, task_id: str, log_dir: str = "."):
        self.task_id = task_id
        self.log_dir = Path(log_dir).resolve()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_path = self.log_dir / f"{task_id}.jsonl"

    def __call__(self, event: ProgressEvent) -> None:
        record = {
            "timestamp": datetime.now().isoformat(),
            "task_id": self.task_id,
            "sequence": event.sequence,
            **event.to_dict(),
        }
        try:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, sort_keys=True, ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            logger.error(f"Failed to append event to log: {e}")

    def read_events(self) -> List[Dict[str, Any]]:
        if not self.log_path.exists():
            return []
        with open(self.log_path, encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
