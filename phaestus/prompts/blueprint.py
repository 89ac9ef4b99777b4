"""Blueprint prompts: four visual design directions for the product.

The LLM returns a short description plus an image-generation prompt per
style. When its reply cannot be parsed, ``build_style_prompts`` produces
the image prompts directly from the templates below.
"""

from typing import Any

BLUEPRINT_STYLES: list[dict[str, str]] = [
    {
        "style": "minimal",
        "title": "Minimal",
        "template": "Clean minimal design with smooth matte finish. "
                    "White background, soft studio lighting, product mockup style.",
    },
    {
        "style": "friendly",
        "title": "Rounded & Friendly",
        "template": "Rounded corners, friendly approachable design. "
                    "Subtle gradient background, professional product photography style.",
    },
    {
        "style": "industrial",
        "title": "Industrial",
        "template": "Industrial design with visible mounting points and robust construction. "
                    "Neutral gray background, technical product visualization.",
    },
    {
        "style": "sleek",
        "title": "Sleek & Modern",
        "template": "Sleek modern design with thin profile and precise edges. "
                    "Dark background, dramatic rim lighting.",
    },
]

BLUEPRINT_SYSTEM_PROMPT = """\
You are PHAESTUS, an industrial designer for small electronic devices. \
Propose four distinct visual design directions for one product.

Use exactly these styles, in this order: minimal, friendly, industrial, sleek.

## Output Format

Return ONE JSON object:

{
  "blueprints": [
    {
      "style": "minimal",
      "title": "Short title",
      "description": "Two sentences on form factor, materials and where the controls sit.",
      "prompt": "Image-generation prompt for a simple 3D product render. No text or labels."
    }
  ]
}
"""


def _features(decisions: list[Any], feasibility: Any) -> str:
    items: list[str] = []
    if feasibility is not None:
        items.extend(feasibility.input_items)
        items.extend(feasibility.output_items)
        items.extend(feasibility.power_options)
        comm = feasibility.communication.get("type")
        if comm:
            items.append(str(comm))
    items.extend(d.answer for d in decisions)

    seen: list[str] = []
    for item in items:
        key = item.lower()
        if key and key not in seen:
            seen.append(key)
    return ", ".join(seen)


def _enclosure_style(decisions: list[Any]) -> str:
    for d in decisions:
        q = d.question.lower()
        if "enclosure" in q or "form factor" in q or "housing" in q:
            return d.answer
    return "compact handheld device"


def build_blueprint_prompt(description: str, decisions: list[Any], feasibility: Any) -> str:
    """Build the user prompt asking for four blueprint directions."""
    parts = [
        "## Product",
        f'"{description}"',
        f"\n## Form factor\n{_enclosure_style(decisions)}",
        f"\n## Features\n{_features(decisions, feasibility) or 'not specified'}",
    ]
    if decisions:
        parts.append("\n## Design decisions")
        for d in decisions:
            parts.append(f"- {d.question}: {d.answer}")
    parts.append("\nReturn the four blueprints as JSON now.")
    return "\n".join(parts)


def build_style_prompts(description: str, decisions: list[Any], feasibility: Any) -> list[dict[str, str]]:
    """Deterministic image prompts, one per style."""
    base = f"A {_enclosure_style(decisions)} electronic device: {description}"
    features = _features(decisions, feasibility)
    return [
        {
            "style": s["style"],
            "title": s["title"],
            "prompt": (
                f"Simple 3D product render of {base}. {s['template']} "
                f"Features: {features}. No text or labels."
            ),
        }
        for s in BLUEPRINT_STYLES
    ]
