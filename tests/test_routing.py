"""Tests for routing decisions and the loop decide helper."""

from langgraph.graph import END

from phaestus.graph.routing import (
    END_ROUTE,
    RouteDecision,
    advance_to,
    build_feedback,
    decide_feasibility,
    decide_review,
    route_after_feasibility,
    route_to_stage,
)
from phaestus.models.results import ReviewIssue, ReviewResult
from phaestus.models.spec import FeasibilityAnalysis, OpenQuestion
from phaestus.nodes.shared import decide_loop


def _review(score, verdict="revise", issues=None):
    return ReviewResult(score=score, verdict=verdict, issues=issues or [])


class TestDecideReview:
    def test_no_review_continues(self):
        assert decide_review(None, 1) == RouteDecision.CONTINUE

    def test_score_gate_accepts_despite_revise_verdict(self):
        assert decide_review(_review(90, "revise"), 1) == RouteDecision.ACCEPT

    def test_threshold_is_inclusive(self):
        assert decide_review(_review(85), 1) == RouteDecision.ACCEPT
        assert decide_review(_review(84), 1) == RouteDecision.REVISE

    def test_accept_verdict_wins_at_low_score(self):
        assert decide_review(_review(50, "accept"), 1) == RouteDecision.ACCEPT

    def test_escalates_when_attempts_exhausted(self):
        assert decide_review(_review(60), 3) == RouteDecision.ESCALATE
        assert decide_review(_review(60), 2) == RouteDecision.REVISE

    def test_accept_beats_exhausted_attempts(self):
        assert decide_review(_review(88), 3) == RouteDecision.ACCEPT

    def test_iteration_cap_overrides_everything(self):
        assert decide_review(_review(95, "accept"), 1, iteration_count=100) == RouteDecision.HALT


class TestBuildFeedback:
    def test_one_line_per_issue(self):
        issues = [
            ReviewIssue(description="Wall too thin", suggestion="Use 2mm walls"),
            ReviewIssue(description="No USB cutout"),
        ]
        assert build_feedback(issues) == "- Wall too thin: Use 2mm walls\n- No USB cutout"


class TestFeasibilityRouting:
    def test_rejection_ends_run(self, base_state):
        state = {**base_state, "feasibility": FeasibilityAnalysis(manufacturable=False)}
        assert decide_feasibility(state) == RouteDecision.REJECT
        assert route_after_feasibility(state) == END_ROUTE

    def test_error_ends_run(self, base_state):
        assert route_after_feasibility({**base_state, "error": "boom"}) == END_ROUTE

    def test_open_questions_go_to_answer(self, base_state):
        state = {
            **base_state,
            "feasibility": FeasibilityAnalysis(manufacturable=True),
            "open_questions": [OpenQuestion(id="power", question="Power?", options=["USB-C"])],
        }
        assert route_after_feasibility(state) == "answer_questions"

    def test_no_questions_go_to_blueprints(self, base_state):
        state = {**base_state, "feasibility": FeasibilityAnalysis(manufacturable=True)}
        assert route_after_feasibility(state) == "generate_blueprints"


class TestStageRouting:
    def test_routes_to_stage_entry(self, base_state):
        assert route_to_stage(base_state) == "analyze_feasibility"
        assert route_to_stage({**base_state, "current_stage": "pcb"}) == "select_blocks"
        assert route_to_stage({**base_state, "current_stage": "firmware"}) == "generate_firmware"
        assert route_to_stage({**base_state, "current_stage": "export"}) == "mark_export_complete"

    def test_error_or_complete_ends(self, base_state):
        assert route_to_stage({**base_state, "error": "boom"}) == END_ROUTE
        assert route_to_stage({**base_state, "completed_stages": ["export"]}) == END_ROUTE

    def test_advance_to_stops_on_error(self, base_state):
        route = advance_to("select_name")
        assert route(base_state) == "select_name"
        assert route({**base_state, "error": "boom"}) == END_ROUTE


class TestDecideLoop:
    def test_score_gate_routes_to_accept(self, build_state):
        state = {**build_state, "enclosure_review": _review(90, "revise"), "enclosure_attempts": 1}
        command = decide_loop(state, "enclosure")
        assert command.goto == "accept_enclosure"
        assert command.update["enclosure_feedback"] is None

    def test_revise_clears_review_and_sets_feedback(self, build_state):
        issues = [ReviewIssue(description="Wall too thin", suggestion="Use 2mm walls")]
        state = {**build_state, "enclosure_review": _review(60, issues=issues), "enclosure_attempts": 1}
        command = decide_loop(state, "enclosure")
        assert command.goto == "generate_enclosure"
        assert command.update["enclosure_review"] is None
        assert command.update["enclosure_feedback"] == "- Wall too thin: Use 2mm walls"
        assert command.update["history"][0].type.value == "fix"

    def test_third_low_score_escalates(self, build_state):
        state = {**build_state, "enclosure_review": _review(60), "enclosure_attempts": 3}
        command = decide_loop(state, "enclosure")
        assert command.goto == "request_user_input"

    def test_missing_review_runs_review(self, build_state):
        command = decide_loop({**build_state, "firmware_attempts": 1}, "firmware")
        assert command.goto == "review_firmware"

    def test_iteration_cap_halts(self, build_state):
        state = {**build_state, "firmware_review": _review(40), "iteration_count": 100}
        command = decide_loop(state, "firmware")
        assert command.goto == END
        assert "Maximum iterations" in command.update["error"]
