"""Conditional routing functions for the LangGraph orchestrator.

Every router is a total function over the closed ``RouteDecision`` enum
or over a fixed set of node names; nothing here touches the LLM.
"""

import logging
from enum import Enum
from typing import Any, Callable

from phaestus.graph.state import (
    ACCEPT_THRESHOLD,
    MAX_ITERATIONS,
    MAX_LOOP_ATTEMPTS,
    is_complete,
    is_feasibility_rejected,
)
from phaestus.models.project import Stage

logger = logging.getLogger(__name__)

END_ROUTE = "end"

# Node that starts each stage; resume routing enters the graph here
STAGE_ENTRY_NODES: dict[str, str] = {
    Stage.SPEC.value: "analyze_feasibility",
    Stage.PCB.value: "select_blocks",
    Stage.ENCLOSURE.value: "generate_enclosure",
    Stage.FIRMWARE.value: "generate_firmware",
    Stage.EXPORT.value: "mark_export_complete",
}


class RouteDecision(str, Enum):
    ACCEPT = "accept"        # Artifact is good enough
    REVISE = "revise"        # Regenerate with review feedback
    ESCALATE = "escalate"    # Attempts exhausted, ask a human
    REJECT = "reject"        # Not manufacturable, terminal
    CONTINUE = "continue"    # Nothing to decide yet, keep going
    HALT = "halt"            # Global iteration cap hit


def decide_review(review: Any, attempts: int, iteration_count: int = 0) -> RouteDecision:
    """Route a generate/review loop from its latest review.

    - Global iteration cap exceeded → HALT, overriding everything else
    - No review yet → CONTINUE (run the review)
    - score >= 85 OR verdict == "accept" → ACCEPT
    - attempts >= MAX_LOOP_ATTEMPTS → ESCALATE
    - otherwise → REVISE
    """
    if iteration_count >= MAX_ITERATIONS:
        return RouteDecision.HALT
    if review is None:
        return RouteDecision.CONTINUE
    if review.score >= ACCEPT_THRESHOLD or review.verdict == "accept":
        return RouteDecision.ACCEPT
    if attempts >= MAX_LOOP_ATTEMPTS:
        return RouteDecision.ESCALATE
    return RouteDecision.REVISE


def build_feedback(issues: list[Any]) -> str:
    """Bulleted feedback for the next generate call, one line per issue."""
    lines = []
    for issue in issues:
        line = f"- {issue.description}"
        if issue.suggestion:
            line += f": {issue.suggestion}"
        lines.append(line)
    return "\n".join(lines)


def decide_feasibility(state: dict[str, Any]) -> RouteDecision:
    if state.get("error"):
        return RouteDecision.HALT
    if is_feasibility_rejected(state):
        return RouteDecision.REJECT
    if state.get("open_questions"):
        return RouteDecision.ESCALATE
    return RouteDecision.CONTINUE


def route_after_feasibility(state: dict[str, Any]) -> str:
    """Route after feasibility analysis.

    - Error or rejection → END
    - Open questions → answer_questions
    - Otherwise → generate_blueprints
    """
    decision = decide_feasibility(state)
    if decision in (RouteDecision.HALT, RouteDecision.REJECT):
        logger.info(f"Feasibility {decision.value} → END")
        return END_ROUTE
    if decision == RouteDecision.ESCALATE:
        logger.info(f"{len(state['open_questions'])} open question(s) → answer_questions")
        return "answer_questions"
    return "generate_blueprints"


def route_to_stage(state: dict[str, Any]) -> str:
    """Route to the entry node of ``current_stage`` (graph entry and after each stage)."""
    if state.get("error") or is_complete(state):
        return END_ROUTE
    stage = state.get("current_stage", Stage.SPEC.value)
    target = STAGE_ENTRY_NODES.get(stage, END_ROUTE)
    logger.info(f"Stage '{stage}' → {target}")
    return target


def advance_to(next_node: str) -> Callable[[dict[str, Any]], str]:
    """Linear edge that stops the run once ``error`` is set."""

    def route(state: dict[str, Any]) -> str:
        if state.get("error"):
            logger.warning(f"Error set, not advancing to {next_node}: {state['error']}")
            return END_ROUTE
        return next_node

    route.__name__ = f"advance_to_{next_node}"
    return route
