"""Tests for the FastAPI app: health, DRC and the SSE orchestrator endpoints."""

import json

import pytest
from conftest import HAPPY_REPLIES, FakeLLM, review_json
from fastapi.testclient import TestClient

from phaestus.api.routes.orchestrator import get_llm_adapter
from phaestus.api.server import app


def parse_sse(text):
    """SSE body -> list of (event type, payload)."""
    frames = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        frames.append((lines["event"], json.loads(lines["data"])))
    return frames


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def use_llm(llm):
    app.dependency_overrides[get_llm_adapter] = lambda: llm
    return llm


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": "0.1.0"}


class TestDRC:
    def test_slugs(self, client):
        response = client.post("/api/v1/drc", json={"slugs": ["mcu-esp32c6", "power-usb", "sensor-bme280"]})
        body = response.json()

        assert response.status_code == 200
        assert body["valid"] is True
        assert body["totalPower"]["provides"]["3V3"] == 600
        assert body["summary"].startswith("DRC: PASSED")

    def test_unknown_slugs_are_reported(self, client):
        body = client.post("/api/v1/drc", json={"slugs": ["power-usb", "nope"]}).json()

        assert body["unknownSlugs"] == ["nope"]
        assert body["valid"] is False
        assert body["errors"][0]["code"] == "NO_MCU"

    def test_block_definitions(self, client):
        blocks = [
            {"slug": "mcu-custom", "category": "mcu"},
            {"slug": "sensor-a", "name": "A", "bus": {"i2c": {"addresses": ["0x40"]}}},
            {"slug": "sensor-b", "name": "B", "bus": {"i2c": {"addresses": ["0x40"]}}},
        ]
        body = client.post("/api/v1/drc", json={"blocks": blocks}).json()

        assert "I2C_ADDRESS_CONFLICT" in [e["code"] for e in body["errors"]]

    def test_empty_request(self, client):
        assert client.post("/api/v1/drc", json={}).status_code == 422


class TestOrchestratorRun:
    def test_streams_to_completion(self, client):
        use_llm(FakeLLM(**HAPPY_REPLIES))
        response = client.post("/api/v1/orchestrator/run", json={
            "projectId": "api-1",
            "description": "A desk lamp with 4 RGB LEDs",
            "threadId": "api-thread-1",
        })

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = parse_sse(response.text)
        event, final = frames[-1]

        assert event == "complete"
        assert final["data"]["status"] == "completed"
        assert final["data"]["threadId"] == "api-thread-1"
        assert frames[0][0] == "state"
        assert frames[0][1]["node"] == "analyze_feasibility"

    def test_rejection(self, client):
        use_llm(FakeLLM(feasibility=json.dumps({"manufacturable": False, "rejectionReason": "needs FPGA"})))
        frames = parse_sse(client.post("/api/v1/orchestrator/run", json={
            "projectId": "api-2", "description": "A software-defined radio",
        }).text)

        assert frames[-1][1]["data"]["status"] == "rejected"
        assert frames[-1][1]["data"]["rejectionReason"] == "needs FPGA"

    def test_invalid_body(self, client):
        response = client.post("/api/v1/orchestrator/run", json={"description": "no project id"})
        assert response.status_code == 422


class TestOrchestratorResume:
    def test_escalation_then_accept(self, client):
        use_llm(FakeLLM(**{**HAPPY_REPLIES, "enclosure_review": review_json(55)}))
        frames = parse_sse(client.post("/api/v1/orchestrator/run", json={
            "projectId": "api-3", "description": "A desk lamp", "threadId": "api-esc",
        }).text)
        checkpoint = frames[-1][1]["data"]["checkpoint"]
        assert checkpoint["type"] == "escalation"

        response = client.post("/api/v1/orchestrator/resume", json={
            "threadId": "api-esc", "response": "accept",
        })
        frames = parse_sse(response.text)

        assert frames[-1][0] == "complete"
        assert frames[-1][1]["data"]["status"] == "completed"

    def test_unknown_thread(self, client):
        response = client.post("/api/v1/orchestrator/resume", json={
            "threadId": "never-started", "response": "accept",
        })
        assert response.status_code == 404
