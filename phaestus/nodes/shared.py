"""Helpers and nodes shared by every stage.

Stage-completion nodes, the human-input checkpoint, and the review /
decide helpers both artifact loops (enclosure and firmware) use.
"""

import logging
from typing import Any

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END
from langgraph.types import Command, interrupt
from pydantic import ValidationError

from phaestus.graph.routing import RouteDecision, build_feedback, decide_review
from phaestus.graph.state import create_max_iterations_error, merge_stages
from phaestus.llm.adapter import ChatRequest, get_llm
from phaestus.llm.parsing import parse_json_object
from phaestus.models.history import HistoryType, create_history_item, utc_now
from phaestus.models.project import STAGE_ORDER, Stage, StageState, StageStatus
from phaestus.models.results import ReviewIssue, ReviewResult

logger = logging.getLogger(__name__)

ESCALATION_OPTIONS = ["accept", "retry", "skip"]
STOP_RESPONSES = ("skip", "abort", "stop")
FEEDBACK_HEADER = "\n\n## PREVIOUS REVIEW FEEDBACK - Address these issues:\n"


def error_update(
    stage: str,
    action: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """State update that records an unrecoverable node failure."""
    logger.error(f"{stage.upper()}: {action} failed: {message}")
    return {
        "error": message,
        "history": [create_history_item(HistoryType.ERROR, stage, action, message, details)],
    }


# ---------------------------------------------------------------------------
# Stage completion
# ---------------------------------------------------------------------------

def _mark_complete(state: dict[str, Any], stage: Stage) -> dict[str, Any]:
    completed = merge_stages(state.get("completed_stages") or [], [stage.value])
    index = STAGE_ORDER.index(stage.value)
    next_stage = next(
        (s for s in STAGE_ORDER[index + 1:] if s not in completed), stage.value
    )
    now = utc_now()

    stages = {stage.value: StageState(status=StageStatus.COMPLETE, completed_at=now)}
    if next_stage != stage.value:
        stages[next_stage] = StageState(status=StageStatus.IN_PROGRESS)

    logger.info(f"STAGE: '{stage.value}' complete -> '{next_stage}'")
    update: dict[str, Any] = {
        "completed_stages": [stage.value],
        "current_stage": next_stage,
        "stages": stages,
        "history": [
            create_history_item(
                HistoryType.PROGRESS,
                stage.value,
                f"mark_{stage.value}_complete",
                f"Stage {stage.value} complete",
                {"nextStage": next_stage},
            )
        ],
    }
    if stage == Stage.EXPORT:
        update["completed_at"] = now
    return update


async def mark_spec_complete_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    return _mark_complete(state, Stage.SPEC)


async def mark_pcb_complete_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    return _mark_complete(state, Stage.PCB)


async def mark_enclosure_complete_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    return _mark_complete(state, Stage.ENCLOSURE)


async def mark_firmware_complete_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    return _mark_complete(state, Stage.FIRMWARE)


async def mark_export_complete_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    return _mark_complete(state, Stage.EXPORT)


# ---------------------------------------------------------------------------
# Review loop helpers
# ---------------------------------------------------------------------------

def fallback_review(content: str) -> ReviewResult:
    """Conservative review used when the reviewer's JSON cannot be parsed."""
    return ReviewResult(
        score=70,
        verdict="revise",
        issues=[
            ReviewIssue(
                severity="warning",
                description="Could not parse review response",
                suggestion="Re-run review",
            )
        ],
        summary=content[:200],
    )


async def run_review(
    state: dict[str, Any],
    config: RunnableConfig,
    stage: str,
    system_prompt: str,
    context: str,
) -> tuple[ReviewResult, bool]:
    """Call the reviewer and normalize its answer.

    Returns the review and whether the fallback review was used.
    Raises LLMError when the adapter fails.
    """
    llm = get_llm(config)
    response = await llm.chat(ChatRequest(
        system_prompt=system_prompt,
        user_prompt=context,
        temperature=0.2,
        max_tokens=2048,
        project_id=state.get("project_id", ""),
    ))

    data = parse_json_object(response.content)
    if data is not None:
        try:
            return ReviewResult.model_validate(data), False
        except ValidationError as e:
            logger.warning(f"{stage.upper()}: review JSON did not validate: {e}")
    logger.warning(f"{stage.upper()}: could not parse review, using fallback")
    return fallback_review(response.content), True


def review_update(stage: str, review: ReviewResult, parse_error: bool) -> dict[str, Any]:
    logger.info(
        f"{stage.upper()}: review score={review.score} verdict={review.verdict} "
        f"issues={len(review.issues)}"
    )
    details: dict[str, Any] = {
        "score": review.score,
        "verdict": review.verdict,
        "issueCount": len(review.issues),
        "issues": [i.to_json_dict() for i in review.issues],
        "positives": review.positives,
    }
    if parse_error:
        details["parseError"] = True
    return {
        f"{stage}_review": review,
        "history": [
            create_history_item(
                HistoryType.VALIDATION,
                stage,
                f"review_{stage}",
                f"Score {review.score}/100 ({review.verdict}): {review.summary}",
                details,
            )
        ],
    }


def decide_loop(state: dict[str, Any], stage: str) -> Command:
    """Turn the stage's latest review into a routing command."""
    review = state.get(f"{stage}_review")
    attempts = state.get(f"{stage}_attempts") or 0
    decision = decide_review(review, attempts, state.get("iteration_count") or 0)
    action = f"decide_{stage}"

    if decision == RouteDecision.HALT:
        return Command(update=create_max_iterations_error(state), goto=END)

    if decision == RouteDecision.CONTINUE:
        logger.info(f"{stage.upper()}: no review yet -> review_{stage}")
        return Command(goto=f"review_{stage}")

    if decision == RouteDecision.ACCEPT:
        logger.info(f"{stage.upper()}: accepted at score {review.score} -> accept_{stage}")
        return Command(
            update={
                f"{stage}_feedback": None,
                "history": [
                    create_history_item(
                        HistoryType.PROGRESS, stage, action,
                        f"Accepted (score {review.score}, verdict {review.verdict})",
                        {"decision": decision.value, "score": review.score, "attempts": attempts},
                    )
                ],
            },
            goto=f"accept_{stage}",
        )

    if decision == RouteDecision.ESCALATE:
        logger.warning(
            f"{stage.upper()}: score {review.score} after {attempts} attempts -> request_user_input"
        )
        return Command(
            update={
                "history": [
                    create_history_item(
                        HistoryType.PROGRESS, stage, action,
                        f"Escalating after {attempts} attempts (score {review.score})",
                        {"decision": decision.value, "score": review.score, "attempts": attempts},
                    )
                ],
            },
            goto="request_user_input",
        )

    feedback = build_feedback(review.issues)
    logger.info(f"{stage.upper()}: revise (attempt {attempts}, score {review.score}) -> generate_{stage}")
    return Command(
        update={
            f"{stage}_feedback": feedback,
            f"{stage}_review": None,
            "history": [
                create_history_item(
                    HistoryType.FIX, stage, action,
                    f"Revising after score {review.score}",
                    {"decision": decision.value, "score": review.score,
                     "attempts": attempts, "feedback": feedback},
                )
            ],
        },
        goto=f"generate_{stage}",
    )


# ---------------------------------------------------------------------------
# Human-input checkpoint
# ---------------------------------------------------------------------------

def _parse_user_response(response: Any) -> tuple[str, str]:
    """Split a resume value into (action, free text)."""
    if isinstance(response, dict):
        action = str(response.get("action", "")).strip().lower()
        return action, str(response.get("feedback") or "").strip()
    text = str(response or "").strip()
    if text.lower() in (*ESCALATION_OPTIONS, *STOP_RESPONSES):
        return text.lower(), ""
    return "feedback", text


async def request_user_input_node(state: dict[str, Any], config: RunnableConfig) -> Command:
    """Suspend a stuck loop until a human decides.

    Resume values: "accept" keeps the current artifact, "skip" stops the
    run, "retry" regenerates with the last review's feedback, and any
    other text is used as the feedback for the next attempt.
    """
    stage = state.get("current_stage", Stage.ENCLOSURE.value)
    review = state.get(f"{stage}_review")
    attempts = state.get(f"{stage}_attempts") or 0
    score = review.score if review is not None else None
    issues = [i.to_json_dict() for i in review.issues] if review is not None else []

    response = interrupt({
        "type": "escalation",
        "stage": stage,
        "message": (
            f"The {stage} did not reach an acceptable review after {attempts} attempts "
            f"(last score {score}). Type 'accept' to keep it, 'retry' to try again, "
            f"'skip' to stop, or describe what to change."
        ),
        "attempts": attempts,
        "score": score,
        "issues": issues,
        "options": ESCALATION_OPTIONS,
    })

    action, text = _parse_user_response(response)

    if action == "accept":
        logger.info(f"CHECKPOINT: user accepted {stage} as-is")
        return Command(
            update={
                f"{stage}_feedback": None,
                "history": [
                    create_history_item(
                        HistoryType.PROGRESS, stage, "request_user_input",
                        "User accepted the current artifact", {"response": "accept"},
                    )
                ],
            },
            goto=f"accept_{stage}",
        )

    if action in STOP_RESPONSES:
        message = f"{stage.capitalize()} stopped by user after {attempts} attempts"
        return Command(
            update=error_update(stage, "request_user_input", message, {"response": action}),
            goto=END,
        )

    feedback = text or state.get(f"{stage}_feedback") or (
        build_feedback(review.issues) if review is not None else ""
    )
    logger.info(f"CHECKPOINT: user requested another {stage} attempt")
    return Command(
        update={
            f"{stage}_feedback": feedback or None,
            f"{stage}_review": None,
            "history": [
                create_history_item(
                    HistoryType.FIX, stage, "request_user_input",
                    "User requested another attempt", {"response": action, "feedback": feedback},
                )
            ],
        },
        goto=f"generate_{stage}",
    )
