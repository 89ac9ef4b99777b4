"""Analyst review prompts for the enclosure and firmware loops.

The reviewer returns a score and verdict; the decide step accepts at a
score of 85 or an explicit "accept".
"""

import json
from typing import Any

_REVIEW_OUTPUT_FORMAT = """\
## Output Format

Return ONE JSON object:

{
  "score": <0-100>,
  "verdict": "accept" | "revise",
  "issues": [
    {
      "severity": "critical" | "warning" | "info",
      "category": "<area>",
      "description": "Clear description of the issue",
      "suggestion": "How to fix it"
    }
  ],
  "positives": ["Things done well"],
  "summary": "One-sentence overall assessment"
}

## Scoring Guide

- 90-100: ready, minor polish only
- 75-89: good foundation, needs specific fixes
- 50-74: significant issues
- <50: fundamental problems

Use "accept" only when the score is >= 85 and there are no critical issues.
"""

ENCLOSURE_REVIEW_PROMPT = """\
You are an expert enclosure design analyst for 3D-printed hardware. Review \
the OpenSCAD code against the project specification.

## Checklist

1. Dimensions: PCB fits with >= 1mm clearance; walls >= 1.5mm.
2. Cutouts: buttons, ports, LEDs and sensor openings sized and placed.
3. Assembly: mounting bosses align; lid and base mate.
4. Printability: no unsupported overhangs > 45 degrees; features > 0.4mm.
5. Code: parametric, named variables, organized modules.

""" + _REVIEW_OUTPUT_FORMAT

FIRMWARE_REVIEW_PROMPT = """\
You are an expert embedded firmware analyst for the ESP32-C6. Review the \
firmware against the project specification and PCB net list.

## Checklist

1. Pins: GPIO assignments match the net list, no conflicts.
2. Peripherals: sensors initialized with correct I2C/SPI addresses.
3. Function: main loop implements every required behaviour.
4. Power: deep sleep and wake sources when battery powered.
5. Code quality: compiles, handles errors, sensible structure.
6. Reliability: watchdog, bounded buffers, input validation.

""" + _REVIEW_OUTPUT_FORMAT


def _spec_header(final_spec: Any) -> list[str]:
    def dump(items: Any) -> str:
        if isinstance(items, list):
            return json.dumps([i.to_json_dict() for i in items], indent=2)
        return json.dumps(items.to_json_dict(), indent=2)

    return [
        "## Project Specification",
        f"Name: {final_spec.name}",
        f"Summary: {final_spec.summary}",
        f"\n## Inputs\n{dump(final_spec.inputs)}",
        f"\n## Outputs\n{dump(final_spec.outputs)}",
        f"\n## Power\n{dump(final_spec.power)}",
    ]


def build_enclosure_review_context(final_spec: Any, pcb: Any, code: str) -> str:
    """Review context: spec, enclosure requirements, PCB board size and the code."""
    parts = _spec_header(final_spec)
    parts.append(
        "\n## Enclosure Requirements\n"
        + json.dumps(final_spec.enclosure.to_json_dict(), indent=2)
    )
    if pcb is not None:
        size = pcb.board_size
        parts.append(f"\n## PCB Dimensions\n{size.width:.1f} x {size.height:.1f} {size.unit}")
    parts.append(f"\n## OpenSCAD Code to Review\n```openscad\n{code}\n```")
    return "\n".join(parts)


def build_firmware_review_context(final_spec: Any, pcb: Any, files: list[Any]) -> str:
    """Review context: spec, communication, PCB net list and every firmware file."""
    parts = _spec_header(final_spec)
    parts.append(
        "\n## Communication\n"
        + json.dumps(final_spec.communication.to_json_dict(), indent=2)
    )
    net_list = pcb.net_list if pcb is not None else []
    parts.append(f"\n## PCB Pin Assignments\n{json.dumps(net_list, indent=2)}")
    parts.append("\n## Firmware Files to Review")
    for f in files:
        parts.append(f"### {f.path}\n```{f.language or 'cpp'}\n{f.content}\n```")
    return "\n".join(parts)
