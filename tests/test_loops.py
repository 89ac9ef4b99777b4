"""Tests for the enclosure and firmware generate/review/accept nodes and the human checkpoint."""

import json
from unittest.mock import patch

import pytest
from conftest import ENCLOSURE_REPLY, FIRMWARE_JSON, review_json
from langgraph.graph import END

from phaestus.errors import LLMError
from phaestus.models.history import HistoryType
from phaestus.models.results import EnclosureArtifacts, FirmwareArtifacts, FirmwareFile, ReviewResult
from phaestus.nodes.enclosure import (
    accept_enclosure_node,
    extract_dimensions,
    extract_features,
    generate_enclosure_node,
    review_enclosure_node,
)
from phaestus.nodes.firmware import (
    FALLBACK_PATH,
    accept_firmware_node,
    generate_firmware_node,
    parse_firmware_files,
    review_firmware_node,
)
from phaestus.nodes.shared import request_user_input_node


class TestEnclosureHelpers:
    def test_extract_dimensions(self):
        assert extract_dimensions(ENCLOSURE_REPLY) == {"width": 60.0, "height": 45.0, "depth": 25.0, "wall": 2.0}

    def test_extract_features(self):
        features = extract_features(ENCLOSURE_REPLY)
        assert features["usb"] is True
        assert features["led"] is True
        assert features["buttons"] is False


class TestGenerateEnclosure:
    def test_first_attempt(self, build_state, make_llm, run_config, run_async):
        llm = make_llm(enclosure=ENCLOSURE_REPLY)
        result = run_async(generate_enclosure_node(build_state, run_config(llm)))

        assert result["enclosure"].open_scad_code.startswith("case_w = 60;")
        assert result["enclosure_attempts"] == 1
        assert result["enclosure_review"] is None
        assert result["enclosure"].iterations[0]["attempt"] == 1
        assert "PREVIOUS REVIEW FEEDBACK" not in llm.calls("enclosure")[0].user_prompt

    def test_feedback_goes_into_prompt(self, build_state, make_llm, run_config, run_async):
        llm = make_llm(enclosure=ENCLOSURE_REPLY)
        previous = EnclosureArtifacts(open_scad_code="cube(1);", iterations=[{"attempt": 1}])
        state = {
            **build_state,
            "enclosure": previous,
            "enclosure_attempts": 1,
            "enclosure_feedback": "- Wall too thin: Use 2mm walls",
        }
        result = run_async(generate_enclosure_node(state, run_config(llm)))

        prompt = llm.calls("enclosure")[0].user_prompt
        assert "## PREVIOUS REVIEW FEEDBACK - Address these issues:\n- Wall too thin: Use 2mm walls" in prompt
        assert result["enclosure_attempts"] == 2
        assert result["enclosure_feedback"] is None
        assert [i["attempt"] for i in result["enclosure"].iterations] == [1, 2]
        assert result["history"][0].details["usedFeedback"] is True

    def test_unfenced_reply_is_used_raw(self, build_state, make_llm, run_config, run_async):
        llm = make_llm(enclosure="  cube([60, 45, 25]);  ")
        result = run_async(generate_enclosure_node(build_state, run_config(llm)))
        assert result["enclosure"].open_scad_code == "cube([60, 45, 25]);"

    def test_requires_spec_and_pcb(self, base_state, make_llm, run_config, run_async):
        llm = make_llm(enclosure=ENCLOSURE_REPLY)
        result = run_async(generate_enclosure_node(base_state, run_config(llm)))

        assert result["error"] == "Spec and PCB must be complete before enclosure generation"
        assert llm.requests == []

    def test_llm_failure_is_an_error(self, build_state, make_llm, run_config, run_async):
        llm = make_llm(enclosure=LLMError("timeout", retryable=True))
        result = run_async(generate_enclosure_node(build_state, run_config(llm)))
        assert result["error"].startswith("Enclosure generation failed")


class TestReviewEnclosure:
    def test_review_is_stored(self, build_state, make_llm, run_config, run_async):
        llm = make_llm(enclosure_review=review_json(72))
        state = {**build_state, "enclosure": EnclosureArtifacts(open_scad_code="cube(1);")}
        result = run_async(review_enclosure_node(state, run_config(llm)))

        review = result["enclosure_review"]
        assert review.score == 72
        assert review.verdict == "revise"
        assert result["history"][0].type == HistoryType.VALIDATION
        assert result["history"][0].details["issueCount"] == 1
        assert llm.calls("enclosure_review")[0].temperature == 0.2

    def test_unparseable_review_falls_back(self, build_state, make_llm, run_config, run_async):
        llm = make_llm(enclosure_review="Looks fine to me")
        state = {**build_state, "enclosure": EnclosureArtifacts(open_scad_code="cube(1);")}
        result = run_async(review_enclosure_node(state, run_config(llm)))

        review = result["enclosure_review"]
        assert review.score == 70
        assert review.verdict == "revise"
        assert review.issues[0].description == "Could not parse review response"
        assert result["history"][0].details["parseError"] is True

    def test_verdict_and_score_are_normalized(self, build_state, make_llm, run_config, run_async):
        llm = make_llm(enclosure_review='{"score": 140.4, "verdict": "Maybe", "issues": ["gap"]}')
        state = {**build_state, "enclosure": EnclosureArtifacts(open_scad_code="cube(1);")}
        review = run_async(review_enclosure_node(state, run_config(llm)))["enclosure_review"]

        assert review.score == 100
        assert review.verdict == "revise"
        assert review.issues[0].description == "gap"

    @pytest.mark.parametrize("reply,score", [
        ('{"score": 60, "verdict": "revise", "issues": 5}', 60),
        ('{"score": 65, "verdict": "revise", "positives": 3}', 65),
        ('{"score": Infinity, "verdict": "revise"}', 0),
        ('{"score": 55, "issues": ["gap", 7, null]}', 55),
    ])
    def test_malformed_shapes_are_normalized(self, build_state, make_llm, run_config, run_async, reply, score):
        llm = make_llm(enclosure_review=reply)
        state = {**build_state, "enclosure": EnclosureArtifacts(open_scad_code="cube(1);")}
        result = run_async(review_enclosure_node(state, run_config(llm)))

        review = result["enclosure_review"]
        assert review.score == score
        assert review.verdict == "revise"
        assert all(issue.description for issue in review.issues)
        assert isinstance(review.positives, list)

    def test_requires_enclosure(self, build_state, make_llm, run_config, run_async):
        result = run_async(review_enclosure_node(build_state, run_config(make_llm())))
        assert "no enclosure" in result["error"]


class TestAcceptEnclosure:
    def test_leaves_artifact_untouched(self, build_state, make_llm, run_config, run_async):
        state = {
            **build_state,
            "enclosure": EnclosureArtifacts(open_scad_code="cube(1);"),
            "enclosure_review": ReviewResult(score=90, verdict="accept"),
            "enclosure_attempts": 2,
        }
        result = run_async(accept_enclosure_node(state, run_config(make_llm())))

        assert set(result) == {"history"}
        assert result["history"][0].details == {"score": 90, "attempts": 2, "codeLength": 8}


class TestFirmwareFiles:
    def test_json_file_list(self):
        files, fallback = parse_firmware_files(FIRMWARE_JSON)
        assert [f.path for f in files] == ["src/main.cpp", "platformio.ini"]
        assert fallback is False

    def test_fenced_cpp_falls_back_to_main(self):
        content = "Here is the firmware:\n```cpp\nvoid setup() {}\nvoid loop() {}\n```"
        files, fallback = parse_firmware_files(content)

        assert fallback is True
        assert len(files) == 1
        assert files[0].path == FALLBACK_PATH
        assert files[0].content == "void setup() {}\nvoid loop() {}"
        assert files[0].language == "cpp"

    def test_non_list_files_fall_back_to_main(self):
        files, fallback = parse_firmware_files('{"files": 5}\n```cpp\nvoid setup() {}\n```')

        assert fallback is True
        assert [f.path for f in files] == [FALLBACK_PATH]
        assert files[0].content == "void setup() {}"

    def test_invalid_entries_are_skipped(self):
        content = json.dumps({"files": [5, {"path": "src/main.cpp", "content": "void loop() {}"}]})
        files, fallback = parse_firmware_files(content)

        assert fallback is False
        assert [f.path for f in files] == ["src/main.cpp"]

    def test_unknown_language_becomes_cpp(self):
        assert FirmwareFile(path="x.rs", content="", language="rust").language == "cpp"
        assert FirmwareFile(path="x.h", content="", language="H").language == "h"


class TestGenerateFirmware:
    def test_fallback_is_recorded(self, build_state, make_llm, run_config, run_async):
        llm = make_llm(firmware="```cpp\nvoid setup() {}\n```")
        result = run_async(generate_firmware_node(build_state, run_config(llm)))

        assert [f.path for f in result["firmware"].files] == ["src/main.cpp"]
        assert result["firmware"].build_status == "pending"
        assert result["firmware_attempts"] == 1
        assert result["history"][0].details["parseError"] is True

    def test_feedback_goes_into_prompt(self, build_state, make_llm, run_config, run_async):
        llm = make_llm(firmware=FIRMWARE_JSON)
        state = {**build_state, "firmware_attempts": 2, "firmware_feedback": "- Missing WiFi reconnect"}
        result = run_async(generate_firmware_node(state, run_config(llm)))

        assert "- Missing WiFi reconnect" in llm.calls("firmware")[0].user_prompt
        assert result["firmware_attempts"] == 3
        assert llm.calls("firmware")[0].max_tokens == 8192

    def test_requires_spec_and_pcb(self, base_state, make_llm, run_config, run_async):
        result = run_async(generate_firmware_node(base_state, run_config(make_llm())))
        assert result["error"] == "Spec and PCB must be complete before firmware generation"


class TestReviewAndAcceptFirmware:
    def test_review(self, build_state, make_llm, run_config, run_async):
        llm = make_llm(firmware_review=review_json(88, "accept", issues=[]))
        files = [FirmwareFile(path="src/main.cpp", content="void setup() {}")]
        state = {**build_state, "firmware": FirmwareArtifacts(files=files)}
        result = run_async(review_firmware_node(state, run_config(llm)))

        assert result["firmware_review"].score == 88
        assert "src/main.cpp" in llm.calls("firmware_review")[0].user_prompt

    def test_review_requires_files(self, build_state, make_llm, run_config, run_async):
        state = {**build_state, "firmware": FirmwareArtifacts(files=[])}
        result = run_async(review_firmware_node(state, run_config(make_llm())))
        assert "no firmware files" in result["error"]

    def test_accept_without_review_reports_no_score(self, build_state, make_llm, run_config, run_async):
        files = [FirmwareFile(path="src/main.cpp", content="")]
        state = {**build_state, "firmware": FirmwareArtifacts(files=files), "firmware_attempts": 3}
        result = run_async(accept_firmware_node(state, run_config(make_llm())))

        assert result["history"][0].details["score"] is None
        assert result["history"][0].details["files"] == ["src/main.cpp"]


class TestRequestUserInput:
    def _escalated(self, build_state):
        review = ReviewResult.model_validate_json(review_json(60))
        return {
            **build_state,
            "enclosure": EnclosureArtifacts(open_scad_code="cube(1);"),
            "enclosure_review": review,
            "enclosure_attempts": 3,
        }

    def _resume(self, state, response, run_config, make_llm, run_async):
        with patch("phaestus.nodes.shared.interrupt", return_value=response) as mock_interrupt:
            command = run_async(request_user_input_node(state, run_config(make_llm())))
        return command, mock_interrupt.call_args.args[0]

    def test_payload(self, build_state, run_config, make_llm, run_async):
        _, payload = self._resume(self._escalated(build_state), "accept", run_config, make_llm, run_async)

        assert payload["type"] == "escalation"
        assert payload["stage"] == "enclosure"
        assert payload["attempts"] == 3
        assert payload["score"] == 60
        assert payload["options"] == ["accept", "retry", "skip"]
        assert payload["issues"][0]["description"] == "Wall too thin"

    def test_accept(self, build_state, run_config, make_llm, run_async):
        command, _ = self._resume(self._escalated(build_state), "accept", run_config, make_llm, run_async)
        assert command.goto == "accept_enclosure"

    def test_skip_stops_the_run(self, build_state, run_config, make_llm, run_async):
        command, _ = self._resume(self._escalated(build_state), "skip", run_config, make_llm, run_async)

        assert command.goto == END
        assert command.update["error"] == "Enclosure stopped by user after 3 attempts"

    def test_retry_uses_review_feedback(self, build_state, run_config, make_llm, run_async):
        command, _ = self._resume(self._escalated(build_state), "retry", run_config, make_llm, run_async)

        assert command.goto == "generate_enclosure"
        assert command.update["enclosure_feedback"] == "- Wall too thin: Use 2mm walls"
        assert command.update["enclosure_review"] is None
        assert "enclosure_attempts" not in command.update

    def test_free_text_becomes_feedback(self, build_state, run_config, make_llm, run_async):
        command, _ = self._resume(
            self._escalated(build_state), "Make the lid snap-fit", run_config, make_llm, run_async,
        )
        assert command.goto == "generate_enclosure"
        assert command.update["enclosure_feedback"] == "Make the lid snap-fit"

    def test_structured_response(self, build_state, run_config, make_llm, run_async):
        response = {"action": "retry", "feedback": "Thicker walls"}
        command, _ = self._resume(self._escalated(build_state), response, run_config, make_llm, run_async)
        assert command.update["enclosure_feedback"] == "Thicker walls"
        assert command.update["history"][0].type == HistoryType.FIX
