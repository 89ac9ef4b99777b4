"""Enclosure generation prompt: parametric OpenSCAD from spec and PCB."""

from typing import Any

ENCLOSURE_SYSTEM_PROMPT = """\
You are PHAESTUS, an expert mechanical engineer designing 3D-printable \
enclosures in OpenSCAD.

## OpenSCAD Rules

- Use `$fn = 32;` for curves.
- Define every dimension as a variable at the top: `case_w`, `case_h`, \
`case_d`, `wall`, `corner_radius`, `pcb_clearance`.
- Use modules for reusable parts, difference() for cutouts.
- Prefer 2D offset() + linear_extrude() over hull() on spheres.
- NEVER use text(); fonts are unavailable when rendering.
- Extend cutouts 1mm past the wall; add 0.3mm tolerance for PCB slots.

## Output

Generate COMPLETE, VALID OpenSCAD that:
1. Defines parameters at the top
2. Builds the enclosure body
3. Adds PCB mounting (screw bosses or edge rails)
4. Cuts apertures for every listed feature
5. Splits into top and bottom shells
6. Ends with an assembled preview

Respond with ONLY the code in one ```openscad block.
"""


def build_feature_list(final_spec: Any) -> list[dict[str, Any]]:
    """Apertures the enclosure needs, derived from the spec's inputs and outputs."""
    features: list[dict[str, Any]] = [
        {"type": "USB-C port", "count": 1, "width": 9, "height": 3.2,
         "notes": "Usually on back or bottom edge"},
    ]

    for item in final_spec.inputs:
        kind = item.type.lower()
        if "button" in kind:
            features.append({"type": "Button", "count": item.count, "width": 6, "height": 6,
                             "notes": "Tactile button with cap"})
        if "encoder" in kind or "rotary" in kind:
            features.append({"type": "Rotary encoder", "count": item.count, "width": 12,
                             "height": 12, "notes": "Round aperture for shaft and knob"})

    for item in final_spec.outputs:
        kind = item.type.lower()
        if "oled" in kind or "display" in kind:
            features.append({"type": "OLED display window", "count": 1, "width": 27,
                             "height": 15, "notes": '0.96" OLED active area'})
        if "lcd" in kind:
            features.append({"type": "LCD display window", "count": 1, "width": 40,
                             "height": 30, "notes": "LCD panel"})
        if "led" in kind and "oled" not in kind:
            features.append({"type": "LED window", "count": item.count, "width": 5,
                             "height": 5, "notes": "Status LED aperture"})
        if "buzzer" in kind or "speaker" in kind:
            features.append({"type": "Sound vent", "count": 1, "width": 10, "height": 10,
                             "notes": "Grid of small holes"})

    return features


def build_enclosure_prompt(
    final_spec: Any,
    pcb: Any,
    wall_thickness: float = 2.0,
    corner_radius: float = 3.0,
) -> str:
    """Build the user prompt for enclosure generation."""
    board = pcb.board_size
    enc = final_spec.enclosure
    parts = [
        f"Design an enclosure for **{final_spec.name}**.",
        f"\n{final_spec.summary}",
        "\n## PCB",
        f"- Board: {board.width:.1f} x {board.height:.1f} {board.unit}, 1.6mm thick",
        f"- Blocks: {', '.join(b.block_slug for b in pcb.placed_blocks) or 'none'}",
        "\n## Style",
        f"- Type: {enc.style}",
        f"- Target outer size: {enc.width} x {enc.height} x {enc.depth} mm",
        f"- Wall thickness: {wall_thickness}mm",
        f"- Corner radius: {corner_radius}mm",
        f"- Power: {final_spec.power.source}",
        "\n## Features requiring apertures",
    ]
    for f in build_feature_list(final_spec):
        parts.append(
            f"- {f['type']} x{f['count']} ({f['width']}x{f['height']}mm): {f['notes']}"
        )
    return "\n".join(parts)
