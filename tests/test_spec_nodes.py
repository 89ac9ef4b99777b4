"""Tests for the spec-stage nodes."""

import json
from unittest.mock import patch

from conftest import FEASIBLE_JSON, FINAL_SPEC_JSON, NAMES_JSON

from phaestus.errors import LLMError
from phaestus.models.history import HistoryType
from phaestus.models.spec import Blueprint, Decision, FeasibilityAnalysis, GeneratedName, OpenQuestion
from phaestus.nodes.spec import (
    FALLBACK_NAMES,
    analyze_feasibility_node,
    answer_questions_auto_node,
    answer_specific_questions,
    build_fallback_spec,
    finalize_spec_node,
    generate_blueprints_node,
    generate_names_node,
    select_blueprint_auto_node,
    select_name_auto_node,
)

QUESTIONS = [
    OpenQuestion(id="power", question="How should it be powered?", options=["USB-C", "LiPo battery"]),
    OpenQuestion(id="leds", question="How many LEDs?", options=["8 LEDs", "4 LEDs"]),
]


class TestAnalyzeFeasibility:
    def test_rejection_keeps_exact_reason(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(feasibility=json.dumps({
            "manufacturable": False,
            "rejectionReason": "needs FPGA",
            "suggestedRevisions": "Use a simpler signal path",
        }))
        result = run_async(analyze_feasibility_node(base_state, run_config(llm)))

        assert "error" not in result
        assert result["feasibility"].manufacturable is False
        assert result["feasibility"].rejection_reason == "needs FPGA"
        assert result["feasibility"].suggested_revisions == ["Use a simpler signal path"]
        assert result["history"][0].details["rejectionReason"] == "needs FPGA"

    def test_feasible_with_questions(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(feasibility=json.dumps({
            "manufacturable": True,
            "overallScore": 75,
            "openQuestions": [q.to_json_dict() for q in QUESTIONS],
        }))
        result = run_async(analyze_feasibility_node(base_state, run_config(llm)))

        assert result["feasibility"].overall_score == 75
        assert [q.id for q in result["open_questions"]] == ["power", "leds"]
        assert result["history"][0].type == HistoryType.TOOL_RESULT

    def test_item_lists_tolerate_odd_shapes(self):
        feasibility = FeasibilityAnalysis.model_validate({
            "inputs": {"items": 3},
            "outputs": {"items": ["LED ring", 2]},
            "power": {"options": "USB-C"},
        })

        assert feasibility.input_items == []
        assert feasibility.output_items == ["LED ring", "2"]
        assert feasibility.power_options == []

    def test_unparseable_response_is_an_error(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(feasibility="I think it is doable!")
        result = run_async(analyze_feasibility_node(base_state, run_config(llm)))

        assert result["error"] == "Failed to parse feasibility response from LLM"
        assert result["history"][0].type == HistoryType.ERROR
        assert result["history"][0].details["parseError"] is True

    def test_empty_description_skips_llm(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(feasibility=FEASIBLE_JSON)
        result = run_async(analyze_feasibility_node({**base_state, "description": "  "}, run_config(llm)))

        assert "description is empty" in result["error"]
        assert llm.requests == []

    def test_llm_failure_is_an_error(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(feasibility=LLMError("rate limited", retryable=True))
        result = run_async(analyze_feasibility_node(base_state, run_config(llm)))

        assert result["error"].startswith("Feasibility analysis failed")


class TestAnswerQuestions:
    def test_no_questions(self, base_state, run_config, make_llm, run_async):
        result = run_async(answer_questions_auto_node(base_state, run_config(make_llm())))

        assert result["decisions"] == []
        assert result["history"][0].result == "No questions to answer"

    def test_auto_mode_picks_first_option(self, base_state, run_config, make_llm, run_async):
        state = {**base_state, "open_questions": QUESTIONS}
        result = run_async(answer_questions_auto_node(state, run_config(make_llm())))

        assert [d.answer for d in result["decisions"]] == ["USB-C", "8 LEDs"]
        assert result["open_questions"] == []
        assert all(d.rationale == "Auto-selected first option" for d in result["decisions"])

    def test_design_mode_suspends_for_answers(self, base_state, run_config, make_llm, run_async):
        state = {**base_state, "mode": "design_it", "open_questions": QUESTIONS}
        with patch("phaestus.nodes.spec.interrupt", return_value={"power": "LiPo battery"}) as mock_interrupt:
            result = run_async(answer_questions_auto_node(state, run_config(make_llm())))

        payload = mock_interrupt.call_args.args[0]
        assert payload["type"] == "open_questions"
        assert [q["id"] for q in payload["questions"]] == ["power", "leds"]
        assert [d.answer for d in result["decisions"]] == ["LiPo battery", "8 LEDs"]
        assert result["decisions"][0].rationale == "User selected"

    def test_answer_specific_questions_defaults(self):
        decisions = answer_specific_questions(
            [*QUESTIONS, OpenQuestion(id="color", question="Color?")], {"leds": "4 LEDs"},
        )
        assert [d.answer for d in decisions] == ["USB-C", "4 LEDs", "No preference"]


class TestBlueprints:
    def test_generated(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(blueprints=json.dumps({"blueprints": [
            {"style": "minimal", "title": "Clean", "prompt": "a"},
            {"style": "retro", "title": "Old", "prompt": "b"},
        ]}))
        result = run_async(generate_blueprints_node(base_state, run_config(llm)))

        assert [b.style for b in result["blueprints"]] == ["minimal", "retro"]
        assert "parseError" not in result["history"][0].details

    def test_parse_failure_falls_back_to_style_prompts(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(blueprints="sorry")
        result = run_async(generate_blueprints_node(base_state, run_config(llm)))

        assert len(result["blueprints"]) == 4
        assert result["history"][0].details["parseError"] is True
        assert "error" not in result

    def test_llm_failure_falls_back(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(blueprints=LLMError("down"))
        result = run_async(generate_blueprints_node(base_state, run_config(llm)))

        assert len(result["blueprints"]) == 4
        assert result["history"][0].type == HistoryType.ERROR
        assert "error" not in result

    def test_select_first(self, base_state, run_config, make_llm, run_async):
        state = {**base_state, "blueprints": [Blueprint(style="minimal", title="Clean")]}
        result = run_async(select_blueprint_auto_node(state, run_config(make_llm())))
        assert result["selected_blueprint"] == 0

    def test_select_with_none(self, base_state, run_config, make_llm, run_async):
        result = run_async(select_blueprint_auto_node(base_state, run_config(make_llm())))
        assert result["selected_blueprint"] is None


class TestNames:
    def test_generated(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(names=NAMES_JSON)
        result = run_async(generate_names_node(base_state, run_config(llm)))

        assert [n.name for n in result["generated_names"]] == ["Glow Station", "Lumo"]
        assert llm.calls("names")[0].max_tokens == 1024

    def test_parse_failure_uses_fallback_names(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(names="Glow Station, Lumo")
        result = run_async(generate_names_node(base_state, run_config(llm)))

        assert result["generated_names"] == FALLBACK_NAMES
        assert result["history"][0].details == {"fallback": True, "parseError": True}

    def test_no_description_skips_llm(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(names=NAMES_JSON)
        result = run_async(generate_names_node({**base_state, "description": ""}, run_config(llm)))

        assert result["generated_names"] == FALLBACK_NAMES
        assert llm.requests == []

    def test_select_prefers_preset(self, base_state, run_config, make_llm, run_async):
        state = {
            **base_state,
            "selected_name": "Custom",
            "generated_names": [GeneratedName(name="Lumo")],
        }
        result = run_async(select_name_auto_node(state, run_config(make_llm())))
        assert result["selected_name"] == "Custom"
        assert result["history"][0].details["source"] == "preset"

    def test_select_first_generated(self, base_state, run_config, make_llm, run_async):
        state = {**base_state, "generated_names": [GeneratedName(name="Lumo"), GeneratedName(name="Glow")]}
        result = run_async(select_name_auto_node(state, run_config(make_llm())))
        assert result["selected_name"] == "Lumo"

    def test_select_without_names_is_an_error(self, base_state, run_config, make_llm, run_async):
        result = run_async(select_name_auto_node(base_state, run_config(make_llm())))
        assert "no generated names" in result["error"]


class TestFinalizeSpec:
    def test_llm_spec_is_locked_with_selected_name(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(final_spec=FINAL_SPEC_JSON)
        state = {**base_state, "selected_name": "Lumo"}
        result = run_async(finalize_spec_node(state, run_config(llm)))

        spec = result["final_spec"]
        assert spec.name == "Lumo"
        assert spec.locked is True
        assert spec.locked_at
        assert spec.outputs[0].count == 4
        assert "fallback" not in result["history"][0].details

    def test_parse_failure_builds_fallback(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(final_spec="not json")
        state = {
            **base_state,
            "selected_name": "Lumo",
            "feasibility": FeasibilityAnalysis.model_validate_json(FEASIBLE_JSON),
        }
        result = run_async(finalize_spec_node(state, run_config(llm)))

        spec = result["final_spec"]
        assert spec.name == "Lumo"
        assert spec.locked is True
        assert [i.type for i in spec.inputs] == ["Temperature sensor"]
        assert result["history"][0].details["fallback"] is True

    def test_llm_failure_builds_fallback(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(final_spec=LLMError("down"))
        result = run_async(finalize_spec_node(base_state, run_config(llm)))

        assert result["final_spec"].locked is True
        assert result["history"][0].details["llmError"] == "down"


class TestBuildFallbackSpec:
    def test_decisions_shape_power_and_outputs(self):
        decisions = [
            Decision(question_id="power", question="Power source?", answer="LiPo battery"),
            Decision(question_id="display", question="Which display?", answer="OLED"),
            Decision(question_id="leds", question="How many LEDs?", answer="8 LEDs"),
        ]
        spec = build_fallback_spec("A badge", decisions, None)

        assert spec.power.source == "LiPo battery"
        assert [(o.type, o.count) for o in spec.outputs] == [("OLED Display", 1), ("WS2812B LEDs", 8)]
        assert spec.name == "A badge"

    def test_feasibility_items_are_not_duplicated(self):
        feasibility = FeasibilityAnalysis(outputs={"items": ["WS2812B LEDs"]}, inputs={"items": ["Button"]})
        decisions = [Decision(question_id="leds", question="LED count?", answer="4")]
        spec = build_fallback_spec("x", decisions, feasibility, name="Named")

        assert [o.type for o in spec.outputs] == ["WS2812B LEDs"]
        assert [i.type for i in spec.inputs] == ["Button"]
        assert spec.name == "Named"
