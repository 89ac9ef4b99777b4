"""LangGraph shared state for the Phaestus orchestrator.

Uses TypedDict so each key becomes its own LangGraph channel with
proper partial-update merge semantics. Nodes return partial dicts;
keys annotated with a reducer are merged (history and decisions are
concatenated), every other key is replaced.
"""

import logging
import operator
from typing import Annotated, Any, TypedDict, get_type_hints

from phaestus.errors import SnapshotError
from phaestus.models.history import HistoryType, create_history_item, utc_now
from phaestus.models.project import (
    STAGE_ORDER,
    OrchestratorInput,
    ProjectSnapshot,
    Stage,
    StageState,
    StageStatus,
)

logger = logging.getLogger(__name__)

ACCEPT_THRESHOLD = 85     # Review score that accepts an artifact outright
MAX_LOOP_ATTEMPTS = 3     # Generate calls per enclosure / firmware loop
MAX_ITERATIONS = 100      # Node executions per run, across all stages


def merge_stages(left: list, right: list) -> list:
    """Ordered union of completed stages (stage order, no duplicates)."""
    done = set(left or []) | set(right or [])
    return [s for s in STAGE_ORDER if s in done]


def merge_dict(left: dict, right: dict) -> dict:
    return {**(left or {}), **(right or {})}


class OrchestratorState(TypedDict, total=False):
    """State passed between all nodes of the orchestration graph."""

    project_id: str
    mode: str                    # DesignMode value
    description: str
    current_stage: str           # Stage value
    completed_stages: Annotated[list, merge_stages]
    # Spec stage
    feasibility: Any             # FeasibilityAnalysis | None
    open_questions: list         # list[OpenQuestion]
    decisions: Annotated[list, operator.add]
    blueprints: list             # list[Blueprint]
    selected_blueprint: Any      # int | None
    generated_names: list        # list[GeneratedName]
    selected_name: Any           # str | None
    final_spec: Any              # FinalSpec | None
    # PCB stage
    pcb: Any                     # PCBArtifacts | None
    # Enclosure loop
    enclosure: Any               # EnclosureArtifacts | None
    enclosure_review: Any        # ReviewResult | None
    enclosure_attempts: int
    enclosure_feedback: Any      # str | None
    # Firmware loop
    firmware: Any                # FirmwareArtifacts | None
    firmware_review: Any
    firmware_attempts: int
    firmware_feedback: Any
    # Run bookkeeping
    available_blocks: list       # list[BlockDefinition]
    stages: Annotated[dict, merge_dict]
    history: Annotated[list, operator.add]
    error: Any                   # str | None
    iteration_count: Annotated[int, operator.add]
    started_at: str
    completed_at: Any


def _state_reducers() -> dict[str, Any]:
    hints = get_type_hints(OrchestratorState, include_extras=True)
    return {
        key: hint.__metadata__[0]
        for key, hint in hints.items()
        if getattr(hint, "__metadata__", None)
    }


STATE_REDUCERS: dict[str, Any] = _state_reducers()

# Keys whose change is worth persisting as a spec snapshot
ARTIFACT_KEYS = frozenset({
    "feasibility", "open_questions", "decisions", "blueprints",
    "selected_blueprint", "generated_names", "selected_name", "final_spec",
    "pcb", "enclosure", "firmware", "stages",
})


def merge_update(values: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
    """Apply a node's partial update with the same reducers the graph uses."""
    merged = dict(values)
    for key, value in update.items():
        reducer = STATE_REDUCERS.get(key)
        if reducer is not None and key in merged:
            merged[key] = reducer(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# State preparation
# ---------------------------------------------------------------------------

def prepare_initial_state(run_input: "OrchestratorInput | dict[str, Any]") -> dict[str, Any]:
    """Create the initial state for a run, fresh or resumed from a snapshot.

    Resumed runs start at the first stage whose status is not complete;
    stages marked complete in the snapshot are never re-run.

    Raises:
        SnapshotError: If ``existingSpec`` does not validate.
    """
    try:
        run_input = OrchestratorInput.from_any(run_input)
    except ValueError as e:
        raise SnapshotError(f"Invalid orchestrator input: {e}") from e

    state: dict[str, Any] = {
        "project_id": run_input.project_id,
        "mode": run_input.mode.value,
        "description": run_input.description,
        "current_stage": Stage.SPEC.value,
        "completed_stages": [],
        "feasibility": None,
        "open_questions": [],
        "decisions": [],
        "blueprints": [],
        "selected_blueprint": None,
        "generated_names": [],
        "selected_name": None,
        "final_spec": None,
        "pcb": None,
        "enclosure": None,
        "enclosure_review": None,
        "enclosure_attempts": 0,
        "enclosure_feedback": None,
        "firmware": None,
        "firmware_review": None,
        "firmware_attempts": 0,
        "firmware_feedback": None,
        "available_blocks": list(run_input.available_blocks),
        "stages": {s: StageState() for s in STAGE_ORDER},
        "history": [],
        "error": None,
        "iteration_count": 0,
        "started_at": utc_now(),
        "completed_at": None,
    }

    snapshot = run_input.existing_spec
    if snapshot is None:
        state["stages"][Stage.SPEC.value] = StageState(status=StageStatus.IN_PROGRESS)
        return state

    completed = [s for s in STAGE_ORDER if snapshot.stage_status(s) == StageStatus.COMPLETE]
    current = next((s for s in STAGE_ORDER if s not in completed), Stage.EXPORT.value)

    state.update({
        "current_stage": current,
        "completed_stages": completed,
        "feasibility": snapshot.feasibility,
        "open_questions": list(snapshot.open_questions),
        "decisions": list(snapshot.decisions),
        "blueprints": list(snapshot.blueprints),
        "selected_blueprint": snapshot.selected_blueprint,
        "generated_names": list(snapshot.generated_names),
        "selected_name": snapshot.selected_name,
        "final_spec": snapshot.final_spec,
        "pcb": snapshot.pcb,
        "enclosure": snapshot.enclosure,
        "firmware": snapshot.firmware,
    })
    state["stages"].update(snapshot.stages)
    if current not in completed:
        state["stages"][current] = StageState(status=StageStatus.IN_PROGRESS)

    logger.info(
        f"Resuming project {run_input.project_id} at stage '{current}' "
        f"(completed: {', '.join(completed) or 'none'})"
    )
    return state


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def is_complete(state: dict[str, Any]) -> bool:
    return Stage.EXPORT.value in (state.get("completed_stages") or [])


def is_feasibility_rejected(state: dict[str, Any]) -> bool:
    feasibility = state.get("feasibility")
    return feasibility is not None and not feasibility.manufacturable


def has_exceeded_max_iterations(state: dict[str, Any]) -> bool:
    return (state.get("iteration_count") or 0) >= MAX_ITERATIONS


def create_max_iterations_error(state: dict[str, Any]) -> dict[str, Any]:
    """State update that halts a runaway run."""
    count = state.get("iteration_count") or 0
    message = f"Maximum iterations ({MAX_ITERATIONS}) exceeded after {count} node executions"
    logger.error(message)
    return {
        "error": message,
        "history": [
            create_history_item(
                HistoryType.ERROR,
                state.get("current_stage", Stage.SPEC.value),
                "max_iterations",
                message,
                {"iterationCount": count, "maxIterations": MAX_ITERATIONS},
            )
        ],
    }


def state_to_project_spec(state: dict[str, Any]) -> dict[str, Any]:
    """Project the state's artifact fields onto the persisted snapshot shape."""
    snapshot = ProjectSnapshot(
        description=state.get("description", ""),
        feasibility=state.get("feasibility"),
        open_questions=state.get("open_questions") or [],
        decisions=state.get("decisions") or [],
        blueprints=state.get("blueprints") or [],
        selected_blueprint=state.get("selected_blueprint"),
        generated_names=state.get("generated_names") or [],
        selected_name=state.get("selected_name"),
        final_spec=state.get("final_spec"),
        pcb=state.get("pcb"),
        enclosure=state.get("enclosure"),
        firmware=state.get("firmware"),
        stages=state.get("stages") or {},
    )
    return snapshot.model_dump(mode="json", by_alias=True, exclude_none=True)
