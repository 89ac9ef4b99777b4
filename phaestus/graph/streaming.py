"""Run driver: streams orchestrator execution as structured events.

Processes LangGraph astream() updates (stream_mode="updates") into
StreamEvents for the CLI renderer and the SSE endpoint.

Event shapes:
- state:    {type, node, data}      one per node transition
- spec:     {type, data}            snapshot of the artifact fields, sent
                                    whenever a node touched one
- complete: {type, data}            data.status is completed, rejected,
                                    needs_input or incomplete
- error:    {type, error, data}     anything else that ended the run

HITL support:
- Detects __interrupt__ events from LangGraph interrupt() calls and ends
  the stream with a needs_input completion carrying the checkpoint payload
- resume_orchestrator() continues after a checkpoint with Command(resume=...)
"""

import asyncio
import logging
import time
import uuid
from contextlib import aclosing
from enum import Enum
from typing import Any, AsyncIterator

from langgraph.types import Command
from pydantic.alias_generators import to_camel
from pydantic_core import to_jsonable_python

from phaestus.errors import SnapshotError
from phaestus.graph.orchestrator import RECURSION_LIMIT, compile_graph
from phaestus.graph.state import (
    ARTIFACT_KEYS,
    is_complete,
    is_feasibility_rejected,
    merge_update,
    prepare_initial_state,
    state_to_project_spec,
)
from phaestus.llm.adapter import LLMAdapter
from phaestus.models.history import HistoryType, create_history_item
from phaestus.models.project import OrchestratorInput, Stage

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Run cancelled"


class EventType(str, Enum):
    """Structured event types emitted during a run."""

    STATE = "state"
    SPEC = "spec"
    COMPLETE = "complete"
    ERROR = "error"


class RunStatus(str, Enum):
    """Outcome carried by a ``complete`` event."""

    COMPLETED = "completed"
    REJECTED = "rejected"
    NEEDS_INPUT = "needs_input"
    INCOMPLETE = "incomplete"


class StreamEvent:
    """A structured event emitted during graph execution."""

    def __init__(
        self,
        event_type: "EventType | str",
        node: str = "",
        data: Any = None,
        error: str | None = None,
    ):
        self.type = event_type.value if isinstance(event_type, EventType) else event_type
        self.node = node
        self.data = data
        self.error = error
        self.timestamp = time.time()

    @property
    def status(self) -> str | None:
        if isinstance(self.data, dict):
            return self.data.get("status")
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for SSE / JSON transmission."""
        event: dict[str, Any] = {"type": self.type, "timestamp": self.timestamp}
        if self.node:
            event["node"] = self.node
        if self.data is not None:
            event["data"] = self.data
        if self.error is not None:
            event["error"] = self.error
        return event

    def __repr__(self) -> str:
        return f"StreamEvent(type={self.type!r}, node={self.node!r}, error={self.error!r})"


def to_json_update(update: dict[str, Any]) -> dict[str, Any]:
    """A node's partial update as camelCase JSON."""
    return {to_camel(key): to_jsonable_python(value) for key, value in update.items()}


def make_run_config(thread_id: str, llm: LLMAdapter | None = None) -> dict[str, Any]:
    """LangGraph run config: checkpoint thread, injected adapter, recursion limit."""
    configurable: dict[str, Any] = {"thread_id": thread_id}
    if llm is not None:
        configurable["llm"] = llm
    return {"configurable": configurable, "recursion_limit": RECURSION_LIMIT}


# ---------------------------------------------------------------------------
# Shared tracker for stream processing
# ---------------------------------------------------------------------------

class _RunTracker:
    """Mutable tracking state shared across stream processing calls."""

    def __init__(self, values: dict[str, Any], thread_id: str) -> None:
        self.values = values
        self.thread_id = thread_id
        self.interrupt: dict[str, Any] | None = None
        self.cancelled = False


def _parse_interrupt_value(raw: Any) -> dict[str, Any]:
    """Extract interrupt info from a LangGraph Interrupt object or raw value."""
    value = raw.value if hasattr(raw, "value") else raw
    if isinstance(value, dict):
        return value
    return {"message": str(value)}


def _result_data(tracker: _RunTracker, **extra: Any) -> dict[str, Any]:
    values = tracker.values
    return {
        **extra,
        "projectId": values.get("project_id", ""),
        "threadId": tracker.thread_id,
        "currentStage": values.get("current_stage"),
        "completedStages": list(values.get("completed_stages") or []),
        "iterationCount": values.get("iteration_count") or 0,
        "spec": state_to_project_spec(values),
        "history": [item.to_json_dict() for item in values.get("history") or []],
    }


def _final_event(tracker: _RunTracker) -> StreamEvent:
    """Terminal event for a stream that ended without raising."""
    values = tracker.values

    if tracker.cancelled:
        item = create_history_item(
            HistoryType.ERROR,
            values.get("current_stage", Stage.SPEC.value),
            "cancel",
            CANCELLED_MESSAGE,
        )
        tracker.values = merge_update(values, {"error": CANCELLED_MESSAGE, "history": [item]})
        logger.warning(f"RUN: {CANCELLED_MESSAGE} at stage '{values.get('current_stage')}'")
        return StreamEvent(EventType.ERROR, error=CANCELLED_MESSAGE, data=_result_data(tracker))

    if values.get("error"):
        logger.error(f"RUN: ended with error: {values['error']}")
        return StreamEvent(EventType.ERROR, error=values["error"], data=_result_data(tracker))

    if tracker.interrupt is not None:
        logger.info(f"RUN: waiting for input ({tracker.interrupt.get('type', 'unknown')})")
        return StreamEvent(
            EventType.COMPLETE,
            data=_result_data(
                tracker,
                status=RunStatus.NEEDS_INPUT.value,
                checkpoint=to_jsonable_python(tracker.interrupt),
            ),
        )

    if is_feasibility_rejected(values):
        feasibility = values["feasibility"]
        logger.info(f"RUN: rejected: {feasibility.rejection_reason}")
        return StreamEvent(
            EventType.COMPLETE,
            data=_result_data(
                tracker,
                status=RunStatus.REJECTED.value,
                rejectionReason=feasibility.rejection_reason,
                suggestedRevisions=feasibility.suggested_revisions,
            ),
        )

    status = RunStatus.COMPLETED if is_complete(values) else RunStatus.INCOMPLETE
    logger.info(f"RUN: {status.value} after {values.get('iteration_count') or 0} node executions")
    return StreamEvent(EventType.COMPLETE, data=_result_data(tracker, status=status.value))


async def _process_updates(
    graph: Any,
    graph_input: Any,
    config: dict[str, Any],
    tracker: _RunTracker,
    cancel_event: asyncio.Event | None,
) -> AsyncIterator[StreamEvent]:
    """Drive one astream() call and translate its updates into StreamEvents.

    Shared by run_orchestrator() and resume_orchestrator(). Always ends
    with exactly one ``complete`` or ``error`` event.
    """
    if cancel_event is not None and cancel_event.is_set():
        tracker.cancelled = True
        yield _final_event(tracker)
        return

    try:
        astream = graph.astream(graph_input, config=config, stream_mode="updates")
        async with aclosing(astream) as stream:
            async for update in stream:
                if not isinstance(update, dict):
                    continue

                # Detect __interrupt__ events from LangGraph interrupt() calls
                if "__interrupt__" in update:
                    interrupt_data = update["__interrupt__"]
                    items = interrupt_data if isinstance(interrupt_data, (list, tuple)) else [interrupt_data]
                    if items:
                        tracker.interrupt = _parse_interrupt_value(items[0])
                    # Stream pauses after interrupt; caller must resume
                    continue

                for node_name, node_update in update.items():
                    node_update = node_update if isinstance(node_update, dict) else {}
                    tracker.values = merge_update(tracker.values, node_update)
                    yield StreamEvent(EventType.STATE, node=node_name, data=to_json_update(node_update))
                    if ARTIFACT_KEYS & node_update.keys():
                        yield StreamEvent(EventType.SPEC, data=state_to_project_spec(tracker.values))

                if cancel_event is not None and cancel_event.is_set():
                    tracker.cancelled = True
                    break

    except Exception as e:
        logger.exception(f"RUN: orchestrator raised {type(e).__name__}")
        yield StreamEvent(
            EventType.ERROR,
            error=str(e) or type(e).__name__,
            data={"exceptionType": type(e).__name__, "threadId": tracker.thread_id},
        )
        return

    yield _final_event(tracker)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def run_orchestrator(
    run_input: "OrchestratorInput | dict[str, Any]",
    *,
    llm: LLMAdapter | None = None,
    checkpointer: Any = None,
    cancel_event: asyncio.Event | None = None,
    thread_id: str | None = None,
    graph: Any = None,
) -> AsyncIterator[StreamEvent]:
    """Stream a run from a fresh request or a persisted snapshot.

    Pass ``graph`` (and the same ``thread_id``) to resume later with
    resume_orchestrator(); otherwise a graph is compiled per call.

    Yields:
        StreamEvent objects, ending with one ``complete`` or ``error`` event.
    """
    try:
        initial_state = prepare_initial_state(run_input)
    except SnapshotError as e:
        logger.error(f"RUN: {e}")
        yield StreamEvent(EventType.ERROR, error=str(e), data={"exceptionType": type(e).__name__})
        return

    thread_id = thread_id or f"{initial_state['project_id']}-{uuid.uuid4().hex[:8]}"
    if graph is None:
        graph = compile_graph(checkpointer)
    config = make_run_config(thread_id, llm)

    logger.info("=" * 60)
    logger.info(
        f"RUN: project={initial_state['project_id']} mode={initial_state['mode']} "
        f"stage={initial_state['current_stage']} thread={thread_id}"
    )
    logger.info("=" * 60)

    tracker = _RunTracker(initial_state, thread_id)
    async for event in _process_updates(graph, initial_state, config, tracker, cancel_event):
        yield event


async def resume_orchestrator(
    graph: Any,
    resume_value: Any,
    config: dict[str, Any],
    *,
    cancel_event: asyncio.Event | None = None,
) -> AsyncIterator[StreamEvent]:
    """Resume a run suspended at a checkpoint with the user's answer.

    Sends Command(resume=resume_value) to the graph and continues
    streaming. Another checkpoint ends the stream with needs_input again.

    Yields:
        StreamEvent objects for the resumed execution.
    """
    thread_id = config.get("configurable", {}).get("thread_id", "")
    try:
        snapshot = await graph.aget_state(config)
    except Exception as e:
        logger.exception(f"RUN: cannot load checkpoint for thread {thread_id}")
        yield StreamEvent(
            EventType.ERROR,
            error=str(e) or type(e).__name__,
            data={"exceptionType": type(e).__name__, "threadId": thread_id},
        )
        return

    logger.info(f"RUN: resuming thread {thread_id} with {str(resume_value)[:80]!r}")
    tracker = _RunTracker(dict(snapshot.values), thread_id)
    async for event in _process_updates(graph, Command(resume=resume_value), config, tracker, cancel_event):
        yield event
