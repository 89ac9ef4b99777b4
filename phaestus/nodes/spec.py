"""Spec-stage nodes: feasibility through the locked final spec.

The spec stage is single-pass. Each node makes at most one LLM call and
produces one artifact. Feasibility is the only required parse; blueprints,
names and the final spec fall back to deterministic values.
"""

import logging
import re
from typing import Any

from langchain_core.runnables import RunnableConfig
from langgraph.types import interrupt
from pydantic import ValidationError

from phaestus.errors import LLMError
from phaestus.llm.adapter import ChatRequest, get_llm
from phaestus.llm.parsing import list_field, parse_json, parse_json_object
from phaestus.models.history import HistoryType, create_history_item, utc_now
from phaestus.models.project import Stage
from phaestus.models.spec import (
    Blueprint,
    Decision,
    DesignMode,
    FeasibilityAnalysis,
    FinalSpec,
    GeneratedName,
    OpenQuestion,
    PowerSpec,
    SpecItem,
)
from phaestus.nodes.shared import error_update
from phaestus.prompts.blueprint import (
    BLUEPRINT_SYSTEM_PROMPT,
    build_blueprint_prompt,
    build_style_prompts,
)
from phaestus.prompts.feasibility import FEASIBILITY_SYSTEM_PROMPT, build_feasibility_prompt
from phaestus.prompts.final_spec import FINAL_SPEC_SYSTEM_PROMPT, build_final_spec_prompt
from phaestus.prompts.naming import NAMING_SYSTEM_PROMPT, build_naming_prompt

logger = logging.getLogger(__name__)

SPEC = Stage.SPEC.value

FALLBACK_NAMES = [
    GeneratedName(name="Project Alpha", style="abstract", reasoning="Default fallback"),
    GeneratedName(name="DevBoard One", style="compound", reasoning="Default fallback"),
    GeneratedName(name="Prototype", style="punchy", reasoning="Default fallback"),
    GeneratedName(name="HardwareKit", style="descriptive", reasoning="Default fallback"),
]


# ---------------------------------------------------------------------------
# Feasibility
# ---------------------------------------------------------------------------

async def analyze_feasibility_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    """Ask the LLM whether the description can be built from the block library.

    A non-manufacturable verdict is stored as-is (not an error); the
    router after this node ends the run as a rejection.
    """
    description = (state.get("description") or "").strip()
    if not description:
        return error_update(SPEC, "analyze_feasibility", "Feasibility analysis failed: description is empty")

    logger.info("=" * 60)
    logger.info("SPEC: Analyzing feasibility...")
    logger.info("=" * 60)

    llm = get_llm(config)
    try:
        response = await llm.chat(ChatRequest(
            system_prompt=FEASIBILITY_SYSTEM_PROMPT,
            user_prompt=build_feasibility_prompt(description),
            temperature=0.3,
            project_id=state.get("project_id", ""),
        ))
    except LLMError as e:
        return error_update(SPEC, "analyze_feasibility", f"Feasibility analysis failed: {e}")

    feasibility = None
    data = parse_json_object(response.content)
    if data is not None:
        try:
            feasibility = FeasibilityAnalysis.model_validate(data)
        except ValidationError as e:
            logger.warning(f"SPEC: feasibility JSON did not validate: {e}")

    if feasibility is None:
        return error_update(
            SPEC, "analyze_feasibility", "Failed to parse feasibility response from LLM",
            {"parseError": True, "response": response.content[:500]},
        )

    if not feasibility.manufacturable:
        reason = feasibility.rejection_reason or "Not manufacturable with the available blocks"
        logger.info(f"SPEC: Rejected: {reason}")
        return {
            "feasibility": feasibility,
            "open_questions": [],
            "history": [
                create_history_item(
                    HistoryType.TOOL_RESULT, SPEC, "analyze_feasibility",
                    f"Rejected: {reason}",
                    {
                        "manufacturable": False,
                        "rejectionReason": reason,
                        "suggestedRevisions": feasibility.suggested_revisions,
                    },
                )
            ],
        }

    logger.info(
        f"SPEC: Feasible (score {feasibility.overall_score}), "
        f"{len(feasibility.open_questions)} open question(s)"
    )
    return {
        "feasibility": feasibility,
        "open_questions": list(feasibility.open_questions),
        "history": [
            create_history_item(
                HistoryType.TOOL_RESULT, SPEC, "analyze_feasibility",
                f"Feasible (score {feasibility.overall_score})",
                {
                    "manufacturable": True,
                    "overallScore": feasibility.overall_score,
                    "openQuestions": len(feasibility.open_questions),
                },
            )
        ],
    }


# ---------------------------------------------------------------------------
# Open questions
# ---------------------------------------------------------------------------

def _default_answer(question: OpenQuestion) -> str:
    return question.options[0] if question.options else "No preference"


def answer_specific_questions(
    questions: list[OpenQuestion],
    answers: dict[str, Any],
) -> list[Decision]:
    """Decisions from explicit answers; unanswered questions take the first option."""
    now = utc_now()
    decisions = []
    for q in questions:
        answer = answers.get(q.id)
        if answer:
            decisions.append(Decision(
                question_id=q.id, question=q.question, answer=str(answer),
                rationale="User selected", timestamp=now,
            ))
        else:
            decisions.append(Decision(
                question_id=q.id, question=q.question, answer=_default_answer(q),
                rationale="Default (first option)", timestamp=now,
            ))
    return decisions


async def answer_questions_auto_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    """Turn open questions into decisions.

    vibe_it and fix_it pick the first option of every question. design_it
    suspends the run until the user answers (resume value: question id ->
    answer).
    """
    questions = state.get("open_questions") or []
    if not questions:
        return {
            "decisions": [],
            "history": [
                create_history_item(HistoryType.PROGRESS, SPEC, "answer_questions", "No questions to answer")
            ],
        }

    if state.get("mode") == DesignMode.DESIGN_IT.value:
        answers = interrupt({
            "type": "open_questions",
            "stage": SPEC,
            "message": f"{len(questions)} question(s) need an answer before the design continues.",
            "questions": [q.to_json_dict() for q in questions],
        })
        decisions = answer_specific_questions(questions, answers if isinstance(answers, dict) else {})
        result = f"Answered {len(decisions)} question(s) from user input"
    else:
        now = utc_now()
        decisions = [
            Decision(
                question_id=q.id, question=q.question, answer=_default_answer(q),
                rationale="Auto-selected first option", timestamp=now,
            )
            for q in questions
        ]
        result = f"Auto-answered {len(decisions)} question(s)"

    logger.info(f"SPEC: {result}")
    return {
        "decisions": decisions,
        "open_questions": [],
        "history": [
            create_history_item(
                HistoryType.PROGRESS, SPEC, "answer_questions", result,
                {"decisions": [{"questionId": d.question_id, "answer": d.answer} for d in decisions]},
            )
        ],
    }


# ---------------------------------------------------------------------------
# Blueprints
# ---------------------------------------------------------------------------

def _fallback_blueprints(state: dict[str, Any]) -> list[Blueprint]:
    prompts = build_style_prompts(
        state.get("description", ""), state.get("decisions") or [], state.get("feasibility"),
    )
    return [Blueprint(style=p["style"], title=p["title"], prompt=p["prompt"]) for p in prompts]


async def generate_blueprints_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    """Generate four visual design directions in one LLM call."""
    description = state.get("description", "")
    decisions = state.get("decisions") or []
    llm = get_llm(config)

    try:
        response = await llm.chat(ChatRequest(
            system_prompt=BLUEPRINT_SYSTEM_PROMPT,
            user_prompt=build_blueprint_prompt(description, decisions, state.get("feasibility")),
            temperature=0.7,
            project_id=state.get("project_id", ""),
        ))
    except LLMError as e:
        logger.warning(f"SPEC: blueprint generation failed, using style prompts: {e}")
        return {
            "blueprints": _fallback_blueprints(state),
            "history": [
                create_history_item(
                    HistoryType.ERROR, SPEC, "generate_blueprints", str(e), {"fallback": True}
                )
            ],
        }

    blueprints = []
    for item in list_field(parse_json(response.content), "blueprints"):
        try:
            blueprints.append(Blueprint.model_validate(item))
        except ValidationError as e:
            logger.warning(f"SPEC: skipping invalid blueprint: {e}")

    parse_error = not blueprints
    if parse_error:
        blueprints = _fallback_blueprints(state)

    logger.info(f"SPEC: {len(blueprints)} blueprints ({'fallback' if parse_error else 'generated'})")
    details: dict[str, Any] = {"styles": [b.style for b in blueprints]}
    if parse_error:
        details["parseError"] = True
    return {
        "blueprints": blueprints,
        "history": [
            create_history_item(
                HistoryType.TOOL_RESULT, SPEC, "generate_blueprints",
                f"Generated {len(blueprints)} blueprints", details,
            )
        ],
    }


async def select_blueprint_auto_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    blueprints = state.get("blueprints") or []
    if not blueprints:
        return {
            "selected_blueprint": None,
            "history": [
                create_history_item(HistoryType.PROGRESS, SPEC, "select_blueprint", "No blueprints to select")
            ],
        }
    return {
        "selected_blueprint": 0,
        "history": [
            create_history_item(
                HistoryType.PROGRESS, SPEC, "select_blueprint",
                f"Selected blueprint: {blueprints[0].title or blueprints[0].style}",
                {"index": 0, "style": blueprints[0].style},
            )
        ],
    }


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

async def generate_names_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    description = state.get("description", "")
    if not description:
        return {
            "generated_names": list(FALLBACK_NAMES),
            "history": [
                create_history_item(
                    HistoryType.TOOL_RESULT, SPEC, "generate_names",
                    "Using fallback names (no description)", {"fallback": True},
                )
            ],
        }

    llm = get_llm(config)
    try:
        response = await llm.chat(ChatRequest(
            system_prompt=NAMING_SYSTEM_PROMPT,
            user_prompt=build_naming_prompt(
                description, state.get("decisions") or [], state.get("feasibility"),
            ),
            temperature=0.8,
            max_tokens=1024,
            project_id=state.get("project_id", ""),
        ))
    except LLMError as e:
        logger.warning(f"SPEC: name generation failed, using fallback names: {e}")
        return {
            "generated_names": list(FALLBACK_NAMES),
            "history": [create_history_item(HistoryType.ERROR, SPEC, "generate_names", str(e))],
        }

    names = []
    for item in list_field(parse_json(response.content), "names"):
        try:
            names.append(GeneratedName.model_validate(item))
        except ValidationError as e:
            logger.warning(f"SPEC: skipping invalid name: {e}")

    if not names:
        return {
            "generated_names": list(FALLBACK_NAMES),
            "history": [
                create_history_item(
                    HistoryType.TOOL_RESULT, SPEC, "generate_names",
                    "Using fallback names (parse failed)", {"fallback": True, "parseError": True},
                )
            ],
        }

    logger.info(f"SPEC: names: {', '.join(n.name for n in names)}")
    return {
        "generated_names": names,
        "history": [
            create_history_item(
                HistoryType.TOOL_RESULT, SPEC, "generate_names",
                f"Generated {len(names)} name options",
                {"nameCount": len(names), "names": [n.name for n in names]},
            )
        ],
    }


async def select_name_auto_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    preset = state.get("selected_name")
    names = state.get("generated_names") or []
    if preset:
        name, source = preset, "preset"
    elif names:
        name, source = names[0].name, "first"
    else:
        return error_update(SPEC, "select_name", "Name selection failed: no generated names available")

    return {
        "selected_name": name,
        "history": [
            create_history_item(
                HistoryType.TOOL_RESULT, SPEC, "select_name",
                f"Selected name: {name}", {"source": source},
            )
        ],
    }


# ---------------------------------------------------------------------------
# Final spec
# ---------------------------------------------------------------------------

def build_fallback_spec(
    description: str,
    decisions: list[Decision],
    feasibility: FeasibilityAnalysis | None,
    name: str | None = None,
) -> FinalSpec:
    """Deterministic final spec from the description, decisions and feasibility."""
    power = PowerSpec()
    outputs: list[SpecItem] = []
    inputs: list[SpecItem] = []

    for d in decisions:
        if not d.question or not d.answer:
            continue
        q = d.question.lower()
        a = d.answer.lower()
        if "power" in q:
            power.source = d.answer
        if "display" in q:
            if "oled" in a:
                outputs.append(SpecItem(type="OLED Display", count=1, notes='0.96" I2C'))
            elif "lcd" in a:
                outputs.append(SpecItem(type="LCD Display", count=1, notes="SPI"))
        if "led" in q:
            leading = re.match(r"\s*(\d+)", a)
            outputs.append(SpecItem(type="WS2812B LEDs", count=int(leading.group(1)) if leading else 4,
                                    notes="RGB addressable"))

    if feasibility is not None:
        for item in feasibility.input_items:
            if not any(i.type.lower() == item.lower() for i in inputs):
                inputs.append(SpecItem(type=item))
        for item in feasibility.output_items:
            if item and not any(item.lower() in o.type.lower() for o in outputs):
                outputs.append(SpecItem(type=item))

    return FinalSpec(
        name=name or description[:50] or "Hardware Project",
        summary=description,
        inputs=inputs,
        outputs=outputs,
        power=power,
        locked=True,
        locked_at=utc_now(),
    )


def _blueprint_prompt(state: dict[str, Any]) -> str:
    blueprints = state.get("blueprints") or []
    index = state.get("selected_blueprint")
    if index is None or not 0 <= index < len(blueprints):
        return ""
    return blueprints[index].prompt or blueprints[index].description


async def finalize_spec_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    """Lock the final spec.

    The LLM expands the gathered information into a full spec; when the
    call or the parse fails a deterministic spec is built instead. The
    result is always locked.
    """
    description = state.get("description", "")
    decisions = state.get("decisions") or []
    feasibility = state.get("feasibility")
    name = state.get("selected_name")

    logger.info("SPEC: Finalizing specification...")
    llm = get_llm(config)
    details: dict[str, Any] = {}
    final_spec = None
    try:
        response = await llm.chat(ChatRequest(
            system_prompt=FINAL_SPEC_SYSTEM_PROMPT,
            user_prompt=build_final_spec_prompt(
                description, feasibility, decisions, _blueprint_prompt(state), name,
            ),
            temperature=0.3,
            project_id=state.get("project_id", ""),
        ))
    except LLMError as e:
        logger.warning(f"SPEC: final spec call failed, building it from decisions: {e}")
        details.update({"fallback": True, "llmError": str(e)})
    else:
        data = parse_json_object(response.content)
        if data is not None:
            data.setdefault("name", name or description[:50] or "Hardware Project")
            try:
                final_spec = FinalSpec.model_validate(data)
            except ValidationError as e:
                logger.warning(f"SPEC: final spec JSON did not validate: {e}")
        if final_spec is None:
            details.update({"fallback": True, "parseError": True})

    if final_spec is None:
        final_spec = build_fallback_spec(description, decisions, feasibility, name)
    else:
        updates: dict[str, Any] = {"locked": True, "locked_at": utc_now()}
        if name:
            updates["name"] = name
        final_spec = final_spec.model_copy(update=updates)

    logger.info(
        f"SPEC: Locked '{final_spec.name}' "
        f"({len(final_spec.inputs)} inputs, {len(final_spec.outputs)} outputs)"
    )
    details.update({
        "specLocked": True,
        "projectName": final_spec.name,
        "inputCount": len(final_spec.inputs),
        "outputCount": len(final_spec.outputs),
    })
    return {
        "final_spec": final_spec,
        "history": [
            create_history_item(
                HistoryType.TOOL_RESULT, SPEC, "finalize_spec",
                f"Spec locked: {final_spec.name}", details,
            )
        ],
    }
