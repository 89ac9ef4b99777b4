"""Firmware loop: generate a PlatformIO project, review it, decide, accept.

Same four-state machine as the enclosure loop. The generator expects a
JSON file list; plain text with a code block becomes ``src/main.cpp``.
"""

import logging
from typing import Any

from langchain_core.runnables import RunnableConfig
from langgraph.types import Command
from pydantic import ValidationError

from phaestus.errors import LLMError
from phaestus.llm.adapter import ChatRequest, get_llm
from phaestus.llm.parsing import extract_code_block, list_field, parse_json_object
from phaestus.models.history import HistoryType, create_history_item
from phaestus.models.project import Stage
from phaestus.models.results import FirmwareArtifacts, FirmwareFile
from phaestus.nodes.shared import (
    FEEDBACK_HEADER,
    decide_loop,
    error_update,
    review_update,
    run_review,
)
from phaestus.prompts.firmware import FIRMWARE_SYSTEM_PROMPT, build_firmware_prompt
from phaestus.prompts.review import FIRMWARE_REVIEW_PROMPT, build_firmware_review_context

logger = logging.getLogger(__name__)

FIRMWARE = Stage.FIRMWARE.value

FALLBACK_PATH = "src/main.cpp"


def parse_firmware_files(content: str) -> tuple[list[FirmwareFile], bool]:
    """Files from the generator's answer, and whether the fallback was used."""
    files = []
    for item in list_field(parse_json_object(content), "files"):
        try:
            files.append(FirmwareFile.model_validate(item))
        except ValidationError as e:
            logger.warning(f"FIRMWARE: skipping invalid file entry: {e}")
    if files:
        return files, False

    code = extract_code_block(content, "cpp") or content.strip()
    return [FirmwareFile(path=FALLBACK_PATH, content=code, language="cpp")], True


async def generate_firmware_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    """Generate the firmware project, folding in feedback from the previous review."""
    final_spec = state.get("final_spec")
    pcb = state.get("pcb")
    if final_spec is None or pcb is None:
        return error_update(
            FIRMWARE, "generate_firmware", "Spec and PCB must be complete before firmware generation"
        )

    attempts = (state.get("firmware_attempts") or 0) + 1
    feedback = state.get("firmware_feedback")
    prompt = build_firmware_prompt(final_spec, pcb)
    if feedback:
        prompt += FEEDBACK_HEADER + feedback

    logger.info(f"FIRMWARE: Generating (attempt {attempts}{', with feedback' if feedback else ''})")
    llm = get_llm(config)
    try:
        response = await llm.chat(ChatRequest(
            system_prompt=FIRMWARE_SYSTEM_PROMPT,
            user_prompt=prompt,
            temperature=0.3,
            max_tokens=8192,
            project_id=state.get("project_id", ""),
        ))
    except LLMError as e:
        return error_update(FIRMWARE, "generate_firmware", f"Firmware generation failed: {e}")

    files, parse_error = parse_firmware_files(response.content)
    if parse_error:
        logger.warning(f"FIRMWARE: response was not a file list, using {FALLBACK_PATH}")
    logger.info(f"FIRMWARE: {len(files)} file(s): {', '.join(f.path for f in files)}")

    details: dict[str, Any] = {
        "attempt": attempts,
        "fileCount": len(files),
        "files": [f.path for f in files],
        "usedFeedback": bool(feedback),
    }
    if parse_error:
        details["parseError"] = True
    return {
        "firmware": FirmwareArtifacts(files=files, build_status="pending"),
        "firmware_attempts": attempts,
        "firmware_review": None,
        "firmware_feedback": None,
        "history": [
            create_history_item(
                HistoryType.TOOL_RESULT, FIRMWARE, "generate_firmware",
                f"Generated {len(files)} firmware file(s) (attempt {attempts})",
                details,
            )
        ],
    }


async def review_firmware_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    firmware = state.get("firmware")
    final_spec = state.get("final_spec")
    if firmware is None or not firmware.files or final_spec is None:
        return error_update(FIRMWARE, "review_firmware", "Firmware review failed: no firmware files or spec to review")

    context = build_firmware_review_context(final_spec, state.get("pcb"), firmware.files)
    try:
        review, parse_error = await run_review(state, config, FIRMWARE, FIRMWARE_REVIEW_PROMPT, context)
    except LLMError as e:
        return error_update(FIRMWARE, "review_firmware", f"Firmware review failed: {e}")
    return review_update(FIRMWARE, review, parse_error)


async def decide_firmware_node(state: dict[str, Any], config: RunnableConfig) -> Command:
    return decide_loop(state, FIRMWARE)


async def accept_firmware_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    """Record the accepted firmware. The artifact itself is left untouched."""
    firmware = state.get("firmware")
    if firmware is None or not firmware.files:
        return error_update(FIRMWARE, "accept_firmware", "Firmware accept failed: no firmware files")

    review = state.get("firmware_review")
    score = review.score if review is not None else None
    logger.info(f"FIRMWARE: Accepted (score {score}, {len(firmware.files)} files)")
    return {
        "history": [
            create_history_item(
                HistoryType.TOOL_RESULT, FIRMWARE, "accept_firmware",
                f"Firmware accepted (score {score})",
                {
                    "score": score,
                    "attempts": state.get("firmware_attempts") or 0,
                    "fileCount": len(firmware.files),
                    "files": [f.path for f in firmware.files],
                },
            )
        ],
    }
