"""Firmware generation prompt: a PlatformIO project for the ESP32-C6."""

from typing import Any

FIRMWARE_SYSTEM_PROMPT = """\
You are PHAESTUS, an expert embedded firmware developer for the ESP32-C6 \
(RISC-V, 160MHz, WiFi 6, BLE 5.3). Generate complete firmware for the \
device described by the user, as an Arduino-framework PlatformIO project.

## Standards

1. Validate GPIO numbers; no dynamic allocation in ISRs.
2. WiFi with reconnection logic when connectivity is required.
3. Deep sleep with configured wake sources when battery powered.
4. Serial debug logging with a compile-time log level.

## Layout

include/config.h (pins, constants), src/main.cpp, and one .cpp/.h pair per \
concern (sensors, outputs, network).

## Libraries

BME280 `adafruit/Adafruit BME280 Library`, SHT40 `adafruit/Adafruit SHT4x \
Library`, LIS3DH `adafruit/Adafruit LIS3DH`, VEML7700 `adafruit/Adafruit \
VEML7700 Library`, VL53L0X `pololu/VL53L0X`, WS2812B `fastled/FastLED`, \
OLED `adafruit/Adafruit SSD1306`.

## Output Format

Respond with ONE JSON object:

{
  "files": [
    {"path": "include/config.h", "content": "...", "language": "h"},
    {"path": "src/main.cpp", "content": "...", "language": "cpp"}
  ]
}

language is one of: cpp, c, h, json. Generate COMPLETE, COMPILABLE code \
with no placeholders.
"""


def build_firmware_prompt(final_spec: Any, pcb: Any) -> str:
    """Build the user prompt for firmware generation."""
    parts = [
        "Generate complete ESP32-C6 firmware for the following project:",
        f"\n**Project**: {final_spec.name}",
        f"**Description**: {final_spec.summary}",
        "\n## Blocks on the PCB",
    ]
    for block in pcb.placed_blocks:
        parts.append(f"- {block.block_slug}")

    if pcb.net_list:
        parts.append("\n## Net list")
        for net in pcb.net_list:
            parts.append(f"- {net.get('net')}: {', '.join(net.get('blocks', []))}")

    parts.append("\n## Inputs")
    for item in final_spec.inputs:
        parts.append(f"- {item.type} x{item.count}" + (f" ({item.notes})" if item.notes else ""))
    parts.append("\n## Outputs")
    for item in final_spec.outputs:
        parts.append(f"- {item.type} x{item.count}" + (f" ({item.notes})" if item.notes else ""))

    source = final_spec.power.source
    battery = any(k in source.lower() for k in ("lipo", "battery", "aa", "cr2032", "coin"))
    parts.extend([
        "\n## Power",
        f"- Source: {source} ({final_spec.power.voltage}, {final_spec.power.current})",
        f"- Deep sleep: {'Enabled' if battery else 'Disabled'}",
        "\n## Connectivity",
        f"- {final_spec.communication.type} ({final_spec.communication.protocol})",
        "\nGenerate the complete firmware project as JSON now.",
    ])
    return "\n".join(parts)
