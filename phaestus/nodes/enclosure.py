"""Enclosure loop: generate OpenSCAD, review it, decide, accept.

generate -> review -> decide -> {accept | generate (retry) | request_user_input}
"""

import logging
import re
from typing import Any

from langchain_core.runnables import RunnableConfig
from langgraph.types import Command

from phaestus.errors import LLMError
from phaestus.llm.adapter import ChatRequest, get_llm
from phaestus.llm.parsing import extract_code_block
from phaestus.models.history import HistoryType, create_history_item, utc_now
from phaestus.models.project import Stage
from phaestus.models.results import EnclosureArtifacts
from phaestus.nodes.shared import (
    FEEDBACK_HEADER,
    decide_loop,
    error_update,
    review_update,
    run_review,
)
from phaestus.prompts.enclosure import ENCLOSURE_SYSTEM_PROMPT, build_enclosure_prompt
from phaestus.prompts.review import ENCLOSURE_REVIEW_PROMPT, build_enclosure_review_context

logger = logging.getLogger(__name__)

ENCLOSURE = Stage.ENCLOSURE.value


_DIMENSION_PATTERNS = {
    "width": re.compile(r"\bcase_w\s*=\s*([\d.]+)"),
    "height": re.compile(r"\bcase_h\s*=\s*([\d.]+)"),
    "depth": re.compile(r"\bcase_d\s*=\s*([\d.]+)"),
    "wall": re.compile(r"\bwall(?:_thickness)?\s*=\s*([\d.]+)"),
}


def extract_dimensions(code: str) -> dict[str, float]:
    """Top-level case parameters declared in the OpenSCAD source."""
    dims = {}
    for key, pattern in _DIMENSION_PATTERNS.items():
        match = pattern.search(code)
        if match:
            try:
                dims[key] = float(match.group(1))
            except ValueError:
                continue
    return dims


def extract_features(code: str) -> dict[str, bool]:
    lowered = code.lower()
    return {
        "buttons": "button" in lowered or "btn" in lowered,
        "usb": "usb" in lowered or "type-c" in lowered or "typec" in lowered,
        "led": "led" in lowered or "light_pipe" in lowered or "light pipe" in lowered,
        "mount": "mount" in lowered or "screw" in lowered or "boss" in lowered,
    }


async def generate_enclosure_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    """Generate the enclosure, folding in feedback from the previous review."""
    final_spec = state.get("final_spec")
    pcb = state.get("pcb")
    if final_spec is None or pcb is None:
        return error_update(
            ENCLOSURE, "generate_enclosure", "Spec and PCB must be complete before enclosure generation"
        )

    attempts = (state.get("enclosure_attempts") or 0) + 1
    feedback = state.get("enclosure_feedback")
    prompt = build_enclosure_prompt(final_spec, pcb)
    if feedback:
        prompt += FEEDBACK_HEADER + feedback

    logger.info(f"ENCLOSURE: Generating (attempt {attempts}{', with feedback' if feedback else ''})")
    llm = get_llm(config)
    try:
        response = await llm.chat(ChatRequest(
            system_prompt=ENCLOSURE_SYSTEM_PROMPT,
            user_prompt=prompt,
            temperature=0.3,
            max_tokens=4096,
            project_id=state.get("project_id", ""),
        ))
    except LLMError as e:
        return error_update(ENCLOSURE, "generate_enclosure", f"Enclosure generation failed: {e}")

    code = extract_code_block(response.content, "openscad") or response.content.strip()
    previous = state.get("enclosure")
    iterations = list(previous.iterations) if previous is not None else []
    iterations.append({"attempt": attempts, "feedback": feedback, "timestamp": utc_now()})

    dimensions = extract_dimensions(code)
    features = extract_features(code)
    logger.info(f"ENCLOSURE: {len(code)} chars of OpenSCAD, dimensions={dimensions}")
    return {
        "enclosure": EnclosureArtifacts(open_scad_code=code, iterations=iterations),
        "enclosure_attempts": attempts,
        "enclosure_review": None,
        "enclosure_feedback": None,
        "history": [
            create_history_item(
                HistoryType.TOOL_RESULT, ENCLOSURE, "generate_enclosure",
                f"Generated OpenSCAD (attempt {attempts})",
                {
                    "attempt": attempts,
                    "codeLength": len(code),
                    "dimensions": dimensions,
                    "features": features,
                    "usedFeedback": bool(feedback),
                },
            )
        ],
    }


async def review_enclosure_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    enclosure = state.get("enclosure")
    final_spec = state.get("final_spec")
    if enclosure is None or final_spec is None:
        return error_update(ENCLOSURE, "review_enclosure", "Enclosure review failed: no enclosure or spec to review")

    context = build_enclosure_review_context(final_spec, state.get("pcb"), enclosure.open_scad_code)
    try:
        review, parse_error = await run_review(state, config, ENCLOSURE, ENCLOSURE_REVIEW_PROMPT, context)
    except LLMError as e:
        return error_update(ENCLOSURE, "review_enclosure", f"Enclosure review failed: {e}")
    return review_update(ENCLOSURE, review, parse_error)


async def decide_enclosure_node(state: dict[str, Any], config: RunnableConfig) -> Command:
    return decide_loop(state, ENCLOSURE)


async def accept_enclosure_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    """Record the accepted enclosure. The artifact itself is left untouched."""
    enclosure = state.get("enclosure")
    if enclosure is None:
        return error_update(ENCLOSURE, "accept_enclosure", "Enclosure accept failed: no enclosure artifact")

    review = state.get("enclosure_review")
    score = review.score if review is not None else None
    logger.info(f"ENCLOSURE: Accepted (score {score})")
    return {
        "history": [
            create_history_item(
                HistoryType.TOOL_RESULT, ENCLOSURE, "accept_enclosure",
                f"Enclosure accepted (score {score})",
                {
                    "score": score,
                    "attempts": state.get("enclosure_attempts") or 0,
                    "codeLength": len(enclosure.open_scad_code),
                },
            )
        ],
    }
