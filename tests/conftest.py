"""Shared fixtures for the PHAESTUS test suite."""

import asyncio
import json

import pytest

from phaestus.graph.state import prepare_initial_state
from phaestus.llm.adapter import ChatResponse, LLMAdapter
from phaestus.models.spec import FinalSpec
from phaestus.nodes.pcb import auto_select_blocks, build_net_list
from phaestus.catalog import DEFAULT_BLOCKS
from phaestus.models.blocks import PCBArtifacts
from phaestus.prompts.blueprint import BLUEPRINT_SYSTEM_PROMPT
from phaestus.prompts.enclosure import ENCLOSURE_SYSTEM_PROMPT
from phaestus.prompts.feasibility import FEASIBILITY_SYSTEM_PROMPT
from phaestus.prompts.final_spec import FINAL_SPEC_SYSTEM_PROMPT
from phaestus.prompts.firmware import FIRMWARE_SYSTEM_PROMPT
from phaestus.prompts.naming import NAMING_SYSTEM_PROMPT
from phaestus.prompts.review import ENCLOSURE_REVIEW_PROMPT, FIRMWARE_REVIEW_PROMPT

SYSTEM_PROMPTS = {
    "feasibility": FEASIBILITY_SYSTEM_PROMPT,
    "blueprints": BLUEPRINT_SYSTEM_PROMPT,
    "names": NAMING_SYSTEM_PROMPT,
    "final_spec": FINAL_SPEC_SYSTEM_PROMPT,
    "enclosure": ENCLOSURE_SYSTEM_PROMPT,
    "enclosure_review": ENCLOSURE_REVIEW_PROMPT,
    "firmware": FIRMWARE_SYSTEM_PROMPT,
    "firmware_review": FIRMWARE_REVIEW_PROMPT,
}


class FakeLLM(LLMAdapter):
    """Scripted adapter keyed by call kind (feasibility, names, enclosure, ...).

    Each kind holds a list of replies consumed in order; the last reply
    repeats. A reply may be a string, an exception to raise, or a
    callable taking the request and returning a string.
    """

    def __init__(self, **replies):
        super().__init__(model="fake:scripted", timeout=5, max_retries=0)
        self.replies = {
            SYSTEM_PROMPTS[kind]: list(value) if isinstance(value, list) else [value]
            for kind, value in replies.items()
        }
        self.requests = []

    def calls(self, kind: str) -> list:
        return [r for r in self.requests if r.system_prompt == SYSTEM_PROMPTS[kind]]

    async def chat(self, request):
        self.requests.append(request)
        queue = self.replies.get(request.system_prompt)
        if not queue:
            return ChatResponse(content="no scripted reply", model=self.model)
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(request)
        return ChatResponse(content=reply, model=self.model)


def review_json(score: int, verdict: str = "revise", issues=None) -> str:
    return json.dumps({
        "score": score,
        "verdict": verdict,
        "issues": issues if issues is not None else [
            {"severity": "warning", "description": "Wall too thin", "suggestion": "Use 2mm walls"},
        ],
        "positives": ["Clear layout"],
        "summary": f"Scored {score}",
    })


FEASIBLE_JSON = json.dumps({
    "manufacturable": True,
    "overallScore": 82,
    "communication": {"type": "WiFi", "confidence": 0.9},
    "processing": {"level": "low"},
    "power": {"options": ["USB-C", "LiPo"]},
    "inputs": {"items": ["Temperature sensor"]},
    "outputs": {"items": ["WS2812B LEDs"]},
    "openQuestions": [],
})

FINAL_SPEC_JSON = json.dumps({
    "name": "Glow Station",
    "summary": "A desk weather lamp",
    "pcbSize": {"width": 50.8, "height": 38.1, "unit": "mm"},
    "inputs": [{"type": "Temperature sensor", "count": 1}],
    "outputs": [{"type": "WS2812B LEDs", "count": 4}],
    "power": {"source": "USB-C", "voltage": "5V", "current": "500mA"},
    "communication": {"type": "WiFi", "protocol": "MQTT"},
    "enclosure": {"style": "rounded_box", "width": 60, "height": 45, "depth": 25},
    "estimatedBOM": [{"item": "ESP32-C6", "quantity": 1, "unitCost": 4.5}],
})

BLUEPRINTS_JSON = json.dumps({
    "blueprints": [
        {"style": "minimal", "title": "Clean", "description": "Flat box", "prompt": "minimal lamp"},
        {"style": "friendly", "title": "Soft", "description": "Rounded", "prompt": "friendly lamp"},
    ]
})

NAMES_JSON = json.dumps({
    "names": [
        {"name": "Glow Station", "style": "descriptive", "reasoning": "Says what it does"},
        {"name": "Lumo", "style": "abstract", "reasoning": "Short"},
    ]
})

ENCLOSURE_REPLY = """Here is the enclosure:

```openscad
case_w = 60;
case_h = 45;
case_d = 25;
wall = 2;
module usb_cutout() { cube([9, 4, 3]); }
module led_window() { cylinder(d=5, h=3); }
difference() { cube([case_w, case_h, case_d]); usb_cutout(); led_window(); }
```
"""

FIRMWARE_JSON = json.dumps({
    "files": [
        {"path": "src/main.cpp", "content": "#include <Arduino.h>\nvoid setup() {}\nvoid loop() {}", "language": "cpp"},
        {"path": "platformio.ini", "content": "[env:esp32-c6]\nplatform = espressif32", "language": "ini"},
    ]
})


@pytest.fixture
def make_llm():
    """Factory for scripted adapters: ``make_llm(feasibility=..., names=[...])``."""
    return FakeLLM


# Replies that drive a run through every stage on the first try
HAPPY_REPLIES = {
    "feasibility": FEASIBLE_JSON,
    "blueprints": BLUEPRINTS_JSON,
    "names": NAMES_JSON,
    "final_spec": FINAL_SPEC_JSON,
    "enclosure": ENCLOSURE_REPLY,
    "enclosure_review": review_json(92, "accept", issues=[]),
    "firmware": FIRMWARE_JSON,
    "firmware_review": review_json(90, "accept", issues=[]),
}


@pytest.fixture
def happy_llm():
    return FakeLLM(**HAPPY_REPLIES)


@pytest.fixture
def base_state():
    """Fresh state for a vibe_it run."""
    return prepare_initial_state({
        "projectId": "test-project",
        "mode": "vibe_it",
        "description": "A desk lamp that shows the room temperature with 4 RGB LEDs",
    })


@pytest.fixture
def final_spec():
    return FinalSpec.model_validate_json(FINAL_SPEC_JSON)


@pytest.fixture
def pcb(final_spec):
    placer, warnings = auto_select_blocks(final_spec, DEFAULT_BLOCKS)
    by_slug = {b.slug: b for b in DEFAULT_BLOCKS}
    return PCBArtifacts(
        placed_blocks=placer.placed,
        board_size=placer.board_size(),
        net_list=build_net_list([by_slug[p.block_slug] for p in placer.placed]),
        warnings=warnings,
    )


@pytest.fixture
def build_state(base_state, final_spec, pcb):
    """State at the start of the enclosure stage."""
    return {
        **base_state,
        "current_stage": "enclosure",
        "completed_stages": ["spec", "pcb"],
        "final_spec": final_spec,
        "pcb": pcb,
    }


@pytest.fixture
def run_config():
    """RunnableConfig carrying an injected adapter."""

    def _config(llm):
        return {"configurable": {"llm": llm}}

    return _config


@pytest.fixture
def run_async():
    """Run a coroutine to completion from a plain test function."""
    return asyncio.run


@pytest.fixture
def collect():
    """Drain an async event iterator into a list."""

    def _collect(events):
        async def _drain():
            return [event async for event in events]

        return asyncio.run(_drain())

    return _collect
