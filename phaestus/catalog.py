"""Default PCB block library.

Pre-validated modules on the 12.7 mm grid, wired to a shared bus
(power rails, I2C0, SPI0, GPIO taps). Used when a run is started
without its own catalog.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from phaestus.errors import ConfigError
from phaestus.models.blocks import BlockDefinition

logger = logging.getLogger(__name__)


def _power(provides=(), requires=()) -> dict[str, Any]:
    return {
        "provides": [{"rail": rail, "maxMa": ma} for rail, ma in provides],
        "requires": [{"rail": rail, "typicalMa": typ, "maxMa": peak} for rail, typ, peak in requires],
    }


_CATALOG: list[dict[str, Any]] = [
    # MCU
    {"slug": "mcu-esp32c6", "name": "ESP32-C6 MCU", "category": "mcu",
     "description": "ESP32-C6 SuperMini carrier. WiFi 6, BLE 5.3, Zigbee/Thread.",
     "widthUnits": 2, "heightUnits": 2,
     "bus": {"power": _power(requires=[("3V3", 80, 350)]),
             "i2c": {"addresses": [], "providesPullups": True}}},
    # Power
    {"slug": "power-usb", "name": "USB-C Power", "category": "power",
     "description": "USB-C input with 3.3V LDO. Passes VBUS (5V) to the bus.",
     "widthUnits": 1, "heightUnits": 1,
     "bus": {"power": _power(provides=[("3V3", 600), ("VBUS", 500)])}},
    {"slug": "power-lipo", "name": "LiPo Battery", "category": "power",
     "description": "Single-cell LiPo with TP4056 charger. Outputs V3V3 via LDO.",
     "widthUnits": 1, "heightUnits": 2,
     "bus": {"power": _power(provides=[("V3V3", 500)])}},
    {"slug": "power-buck", "name": "Buck Converter", "category": "power",
     "description": "7-24V barrel jack input. Dual output: V3V3 and VBUS (5V).",
     "widthUnits": 1, "heightUnits": 2,
     "bus": {"power": _power(provides=[("V3V3", 1000), ("VBUS", 1000)])}},
    {"slug": "power-aa", "name": "AA Battery Boost", "category": "power",
     "description": "2xAA/AAA holder with boost converter to 3.3V.",
     "widthUnits": 1, "heightUnits": 2,
     "bus": {"power": _power(provides=[("V3V3", 300)])}},
    {"slug": "power-cr2032", "name": "CR2032 Coin Cell", "category": "power",
     "description": "Coin cell holder for very low power designs.",
     "widthUnits": 1, "heightUnits": 1,
     "bus": {"power": _power(provides=[("V3V3", 30)])}},
    # Sensors
    {"slug": "sensor-bme280", "name": "BME280 Environment", "category": "sensor",
     "description": "Temperature, humidity, and pressure sensor. I2C interface.",
     "bus": {"power": _power(requires=[("3V3", 1, 1)]),
             "i2c": {"addresses": ["0x76", "0x77"], "addressConfigurable": True}}},
    {"slug": "sensor-sht40", "name": "SHT40 Temp/Humidity", "category": "sensor",
     "description": "High-accuracy temperature and humidity sensor. I2C interface.",
     "bus": {"power": _power(requires=[("3V3", 1, 1)]),
             "i2c": {"addresses": ["0x44", "0x45"]}}},
    {"slug": "sensor-lis3dh", "name": "LIS3DH Accelerometer", "category": "sensor",
     "description": "3-axis accelerometer with I2C or SPI interface.",
     "bus": {"power": _power(requires=[("3V3", 1, 1)]),
             "i2c": {"addresses": ["0x18", "0x19"], "addressConfigurable": True},
             "spi": {"csPin": "SPI0_CS0"}}},
    {"slug": "sensor-veml7700", "name": "VEML7700 Light", "category": "sensor",
     "description": "High-accuracy ambient light sensor. I2C interface.",
     "bus": {"power": _power(requires=[("3V3", 1, 1)]),
             "i2c": {"addresses": ["0x10"]}}},
    {"slug": "sensor-vl53l0x", "name": "VL53L0X Distance", "category": "sensor",
     "description": "Time-of-flight distance sensor. Range up to 2m. I2C interface.",
     "heightUnits": 2,
     "bus": {"power": _power(requires=[("3V3", 10, 20)]),
             "i2c": {"addresses": ["0x29"]}}},
    {"slug": "sensor-pir", "name": "PIR Motion", "category": "sensor",
     "description": "Passive infrared motion detector. Digital GPIO output.",
     "bus": {"power": _power(requires=[("3V3", 1, 1)]),
             "gpio": {"claims": ["GPIO0"]}}},
    # Outputs
    {"slug": "output-led-ws2812", "name": "WS2812B LED", "category": "output",
     "description": "Addressable RGB LED connector. Single GPIO data line.",
     "bus": {"power": _power(requires=[("3V3", 20, 60)]),
             "gpio": {"claims": ["GPIO1"]}}},
    {"slug": "output-buzzer", "name": "Piezo Buzzer", "category": "output",
     "description": "Piezo buzzer with driver transistor. PWM input.",
     "bus": {"power": _power(requires=[("3V3", 10, 30)]),
             "gpio": {"claims": ["GPIO2"]}}},
    {"slug": "output-relay", "name": "Relay Module", "category": "output",
     "description": "Single relay with flyback diode and indicator LED. GPIO control.",
     "heightUnits": 2,
     "bus": {"power": _power(requires=[("3V3", 70, 80)]),
             "gpio": {"claims": ["GPIO3"]}}},
    {"slug": "output-motor", "name": "Motor Driver", "category": "output",
     "description": "DRV8833 dual H-bridge for DC motors or stepper. PWM control.",
     "heightUnits": 2,
     "bus": {"power": _power(requires=[("3V3", 2, 5), ("VBUS", 300, 1500)]),
             "gpio": {"claims": ["GPIO4", "GPIO5", "GPIO6", "GPIO7"]}}},
    # Connectors
    {"slug": "conn-oled", "name": "OLED Connector", "category": "connector",
     "description": '4-pin JST-SH for an off-board 0.96" SSD1306 I2C OLED.',
     "bus": {"power": _power(requires=[("3V3", 20, 30)]),
             "i2c": {"addresses": ["0x3C"]}}},
    {"slug": "conn-button", "name": "Button Connector", "category": "connector",
     "description": "6-pin JST-SH for up to 4 off-board buttons with common ground.",
     "bus": {"gpio": {"claims": ["GPIO4", "GPIO5", "GPIO6", "GPIO7"]}}},
    {"slug": "conn-encoder", "name": "Encoder Connector", "category": "connector",
     "description": "5-pin JST-SH for an off-board rotary encoder with button.",
     "bus": {"power": _power(requires=[("3V3", 1, 5)]),
             "gpio": {"claims": ["GPIO8", "GPIO9", "GPIO10"]}}},
    {"slug": "conn-lcd", "name": "LCD Connector", "category": "connector",
     "description": "8-pin FFC connector for an SPI display module.",
     "bus": {"power": _power(requires=[("3V3", 30, 50)]),
             "spi": {"csPin": "SPI0_CS1"},
             "gpio": {"claims": ["GPIO11"]}}},
    # Utility
    {"slug": "util-header", "name": "Header Breakout", "category": "utility",
     "description": "Terminates bus signals to a 2.54mm header for debugging or expansion.",
     "heightUnits": 2},
    {"slug": "util-terminator", "name": "Bus Terminator", "category": "utility",
     "description": "Termination block with test points and I2C pull-ups.",
     "bus": {"i2c": {"addresses": [], "providesPullups": True}}},
]

DEFAULT_BLOCKS: list[BlockDefinition] = [BlockDefinition.model_validate(b) for b in _CATALOG]


def get_block(slug: str, blocks: list[BlockDefinition] | None = None) -> BlockDefinition | None:
    for block in blocks if blocks is not None else DEFAULT_BLOCKS:
        if block.slug == slug:
            return block
    return None


def load_blocks(path: str | Path) -> list[BlockDefinition]:
    """Load a block catalog from a JSON file (a list, or ``{"blocks": [...]}``).

    Raises:
        ConfigError: If the file is missing or does not validate.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read block catalog {path}: {e}") from e

    items = raw.get("blocks", []) if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        raise ConfigError(f"Invalid block catalog {path}: expected a list of blocks")
    try:
        blocks = [BlockDefinition.model_validate(item) for item in items]
    except ValidationError as e:
        raise ConfigError(f"Invalid block catalog {path}: {e}") from e

    logger.info(f"Loaded {len(blocks)} blocks from {path}")
    return blocks
