"""Project naming prompt."""

from typing import Any

NAMING_SYSTEM_PROMPT = """\
You are a creative product naming specialist. Generate distinctive, \
memorable names for hardware projects.

## Naming Styles

1. **compound**: combine function words creatively (AirPulse, LightSync)
2. **abstract**: evocative without being literal (Zephyr, Nimbus, Helix)
3. **portmanteau**: blend two relevant words (Plantastic, Sensify)
4. **punchy**: single short words (Blink, Flux, Node)

## Rules

- NO generic prefixes: "Smart", "IoT", "Connected", "Digital", "Auto"
- NO generic suffixes: "Hub", "Station", "System", "Device", "Unit"
- 1-2 words, max 15 characters, pronounceable
- Each suggestion uses a DIFFERENT style

## Output Format

{
  "names": [
    {"name": "Zephyr", "style": "abstract", "reasoning": "Evokes air movement"},
    {"name": "BreatheSense", "style": "compound", "reasoning": "Breathing + sensing"},
    {"name": "Airity", "style": "portmanteau", "reasoning": "Air + quality"},
    {"name": "Puff", "style": "punchy", "reasoning": "Short and playful"}
  ]
}
"""


def build_naming_prompt(description: str, decisions: list[Any], feasibility: Any) -> str:
    """Build the user prompt for name generation."""
    components = ", ".join(
        (feasibility.input_items + feasibility.output_items) if feasibility else []
    ) or "various sensors"
    choices = "\n".join(f"- {d.answer}" for d in decisions[:3]) or "- Standard configuration"

    return (
        "Generate 4 creative name options for this hardware project.\n\n"
        f'## Project Description\n"{description}"\n\n'
        f"## Key Components\n{components}\n\n"
        f"## Design Choices\n{choices}\n\n"
        "Use four different naming styles and avoid generic tech naming patterns."
    )
