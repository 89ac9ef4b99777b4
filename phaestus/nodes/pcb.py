"""PCB-stage nodes: block selection and placement, then layout validation.

Selection is deterministic. Keywords from the locked spec pick blocks
from the catalog; each block goes to the first free spot of a 6-unit-wide
occupancy grid scanned row by row.
"""

import logging
from typing import Any

from langchain_core.runnables import RunnableConfig

from phaestus.catalog import DEFAULT_BLOCKS
from phaestus.drc.validator import normalize_rail, validate_block_combination
from phaestus.models.blocks import (
    GRID_SIZE_MM,
    BlockDefinition,
    BoardSize,
    PCBArtifacts,
    PlacedBlock,
)
from phaestus.models.history import HistoryType, create_history_item
from phaestus.models.project import Stage
from phaestus.nodes.shared import error_update

logger = logging.getLogger(__name__)

PCB = Stage.PCB.value

GRID_COLUMNS = 6
MIN_BOARD_WIDTH_UNITS = 4
MIN_BOARD_HEIGHT_UNITS = 3

# Known fixed I2C addresses, used by the layout check independent of catalog data
KNOWN_I2C_ADDRESSES: dict[str, str] = {
    "sensor-bme280": "0x76",
    "sensor-sht40": "0x44",
    "sensor-lis3dh": "0x18",
    "sensor-veml7700": "0x10",
    "sensor-vl53l0x": "0x29",
    "output-oled-096": "0x3C",
}

# (keywords in a spec item type, candidate slug patterns in priority order, veto words)
SPEC_ITEM_RULES: list[tuple[tuple[str, ...], tuple[str, ...], tuple[str, ...]]] = [
    (("temperature", "humidity", "environmental", "bme280", "pressure"),
     ("sensor-bme280", "sensor-sht40"), ()),
    (("acceleration", "accelerometer", "motion", "tilt"), ("sensor-lis3dh",), ("pir",)),
    (("light", "ambient", "lux"), ("sensor-veml7700",), ()),
    (("distance", "proximity", "range"), ("sensor-vl53l0x",), ()),
    (("pir", "presence"), ("sensor-pir",), ()),
    (("led", "neopixel", "ws2812"), ("output-ws2812b", "output-led-ws2812"), ("oled",)),
    (("display", "oled", "screen"), ("output-oled", "conn-oled"), ()),
    (("buzzer", "sound", "beep"), ("output-buzzer",), ()),
    (("relay", "switch"), ("output-relay",), ()),
    (("motor",), ("output-drv8833", "output-motor"), ()),
]


def matches_rule(kind: str, keywords: tuple[str, ...], excluded: tuple[str, ...]) -> bool:
    """Keyword match on a lowercased spec item type; an excluded word vetoes the rule."""
    if any(word in kind for word in excluded):
        return False
    return any(k in kind for k in keywords)


def find_block(blocks: list[BlockDefinition], *patterns: str) -> BlockDefinition | None:
    """First block whose slug contains one of the patterns, tried in order."""
    for pattern in patterns:
        for block in blocks:
            if pattern.lower() in block.slug.lower():
                return block
    return None


def power_patterns(source: str) -> tuple[str, ...]:
    source = source.lower()
    if "usb" in source:
        return ("power-usb",)
    if "lipo" in source or "battery" in source or "lithium" in source:
        return ("power-lipo",)
    if "aa" in source:
        return ("power-boost", "power-aa")
    if "cr2032" in source or "coin" in source:
        return ("power-cr2032",)
    return ("power-usb",)


class GridPlacer:
    """Places blocks on a fixed-width occupancy grid, row-major first fit."""

    def __init__(self, columns: int = GRID_COLUMNS):
        self.columns = columns
        self.occupied: set[tuple[int, int]] = set()
        self.placed: list[PlacedBlock] = []
        self.width = 0
        self.height = 0

    def _fits(self, x: int, y: int, w: int, h: int) -> bool:
        return all((cx, cy) not in self.occupied for cx in range(x, x + w) for cy in range(y, y + h))

    def place(self, block: BlockDefinition, reason: str) -> PlacedBlock:
        w = min(block.width_units, self.columns)
        h = block.height_units
        y = 0
        while True:
            for x in range(self.columns - w + 1):
                if self._fits(x, y, w, h):
                    self.occupied.update((cx, cy) for cx in range(x, x + w) for cy in range(y, y + h))
                    placed = PlacedBlock(block_slug=block.slug, grid_x=x, grid_y=y, reason=reason)
                    self.placed.append(placed)
                    self.width = max(self.width, x + w)
                    self.height = max(self.height, y + h)
                    return placed
            y += 1

    def board_size(self) -> BoardSize:
        return BoardSize(
            width=max(self.width, MIN_BOARD_WIDTH_UNITS) * GRID_SIZE_MM,
            height=max(self.height, MIN_BOARD_HEIGHT_UNITS) * GRID_SIZE_MM,
        )


def auto_select_blocks(final_spec: Any, blocks: list[BlockDefinition]) -> tuple[GridPlacer, list[str]]:
    """Pick and place blocks for a spec. Returns the placer and any warnings."""
    placer = GridPlacer()
    warnings: list[str] = []
    chosen: set[str] = set()

    def add(patterns: tuple[str, ...], reason: str) -> None:
        block = find_block(blocks, *patterns)
        if block is None:
            warnings.append(f"Block {patterns[0]} not found in library")
            return
        if block.slug in chosen:
            return
        chosen.add(block.slug)
        placer.place(block, reason)

    add(("mcu-esp32c6", "mcu-"), "Required MCU")
    add(power_patterns(final_spec.power.source), f"Power source: {final_spec.power.source}")

    for item in [*final_spec.outputs, *final_spec.inputs]:
        kind = item.type.lower()
        for keywords, patterns, excluded in SPEC_ITEM_RULES:
            if matches_rule(kind, keywords, excluded):
                add(patterns, f"For {item.type}")

    for item in final_spec.inputs:
        kind = item.type.lower()
        if "button" in kind:
            first = "connector-buttons-2" if item.count <= 2 else "connector-buttons-4"
            add((first, "conn-button"), f"Input for {item.type}")
        if "encoder" in kind or "dial" in kind or "knob" in kind:
            add(("connector-encoder", "conn-encoder"), f"Input for {item.type}")

    return placer, warnings


def build_net_list(blocks: list[BlockDefinition]) -> list[dict[str, Any]]:
    """Nets on the shared bus and the blocks attached to each."""
    nets: dict[str, dict[str, Any]] = {"GND": {"net": "GND", "blocks": [b.slug for b in blocks]}}

    def attach(net: str, slug: str) -> None:
        entry = nets.setdefault(net, {"net": net, "blocks": []})
        if slug not in entry["blocks"]:
            entry["blocks"].append(slug)

    mcu = next((b.slug for b in blocks if b.is_mcu), None)
    for block in blocks:
        bus = block.bus
        if bus.power is not None:
            for p in bus.power.provides:
                attach(normalize_rail(p.rail), block.slug)
            for r in bus.power.requires:
                attach(normalize_rail(r.rail), block.slug)
        if bus.i2c is not None and bus.i2c.addresses:
            for net in ("I2C0_SDA", "I2C0_SCL"):
                if mcu:
                    attach(net, mcu)
                attach(net, block.slug)
        if bus.spi is not None:
            for net in ("SPI0_MOSI", "SPI0_MISO", "SPI0_SCK", bus.spi.cs_pin):
                if mcu:
                    attach(net, mcu)
                attach(net, block.slug)
        if bus.gpio is not None:
            for gpio in bus.gpio.claims:
                if mcu:
                    attach(gpio, mcu)
                attach(gpio, block.slug)

    return list(nets.values())


async def select_blocks_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    """Select PCB blocks for the locked spec and place them on the grid."""
    final_spec = state.get("final_spec")
    if final_spec is None:
        return error_update(PCB, "select_blocks", "Final spec must be complete before block selection")

    catalog = state.get("available_blocks") or DEFAULT_BLOCKS
    logger.info("=" * 60)
    logger.info(f"PCB: Selecting blocks from {len(catalog)} available")
    logger.info("=" * 60)

    placer, warnings = auto_select_blocks(final_spec, catalog)
    by_slug = {b.slug: b for b in catalog}
    definitions = [by_slug[p.block_slug] for p in placer.placed]

    pcb = PCBArtifacts(
        placed_blocks=placer.placed,
        board_size=placer.board_size(),
        net_list=build_net_list(definitions),
        warnings=warnings,
    )
    for w in warnings:
        logger.warning(f"PCB: {w}")
    logger.info(
        f"PCB: Placed {len(pcb.placed_blocks)} blocks on "
        f"{pcb.board_size.width:.1f}x{pcb.board_size.height:.1f}mm"
    )
    return {
        "pcb": pcb,
        "history": [
            create_history_item(
                HistoryType.TOOL_RESULT, PCB, "select_blocks",
                f"Placed {len(pcb.placed_blocks)} blocks",
                {
                    "blockCount": len(pcb.placed_blocks),
                    "blocks": [p.block_slug for p in pcb.placed_blocks],
                    "boardSize": pcb.board_size.to_json_dict(),
                    "warnings": warnings,
                },
            )
        ],
    }


def find_overlaps(placed: list[PlacedBlock], by_slug: dict[str, BlockDefinition]) -> list[str]:
    """One message per grid cell claimed by two placed blocks."""
    issues = []
    occupied: dict[tuple[int, int], str] = {}
    for p in placed:
        block = by_slug.get(p.block_slug)
        if block is None:
            continue
        for x in range(p.grid_x, p.grid_x + block.width_units):
            for y in range(p.grid_y, p.grid_y + block.height_units):
                if (x, y) in occupied:
                    issues.append(f"Block overlap at ({x}, {y}): {p.block_slug} and {occupied[(x, y)]}")
                else:
                    occupied[(x, y)] = p.block_slug
    return issues


async def validate_pcb_node(state: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
    """Check the placed layout. Reports only; never changes the PCB."""
    pcb = state.get("pcb")
    if pcb is None:
        return error_update(PCB, "validate_pcb", "PCB validation failed: no PCB layout to validate")

    catalog = state.get("available_blocks") or DEFAULT_BLOCKS
    by_slug = {b.slug: b for b in catalog}
    slugs = [p.block_slug for p in pcb.placed_blocks]
    issues: list[str] = []
    warnings: list[str] = []

    mcu_count = sum(1 for s in slugs if s.startswith("mcu-"))
    if mcu_count == 0:
        issues.append("No MCU block selected")
    elif mcu_count > 1:
        issues.append(f"{mcu_count} MCU blocks selected, exactly one is allowed")
    if not any(s.startswith("power-") for s in slugs):
        issues.append("No power block selected")

    issues.extend(find_overlaps(pcb.placed_blocks, by_slug))

    by_address: dict[str, list[str]] = {}
    for slug in slugs:
        if slug in KNOWN_I2C_ADDRESSES:
            by_address.setdefault(KNOWN_I2C_ADDRESSES[slug], []).append(slug)
    for addr, users in by_address.items():
        if len(users) > 1:
            warnings.append(f"I2C address conflict at {addr}: {', '.join(users)}")

    unknown = [s for s in slugs if s not in by_slug]
    warnings.extend(f"Unknown block {s}" for s in unknown)

    drc = validate_block_combination([by_slug[s] for s in slugs if s in by_slug])
    valid = not issues

    logger.info(
        f"PCB: validation {'passed' if valid else 'failed'} "
        f"({len(issues)} issues, {len(warnings)} warnings, DRC {'ok' if drc.valid else 'failed'})"
    )
    return {
        "history": [
            create_history_item(
                HistoryType.TOOL_RESULT if valid else HistoryType.VALIDATION,
                PCB, "validate_pcb",
                "PCB validation passed" if valid else f"PCB validation failed: {len(issues)} issues",
                {
                    "valid": valid,
                    "issueCount": len(issues),
                    "warningCount": len(warnings),
                    "issues": issues,
                    "warnings": warnings,
                    "drc": drc.to_json_dict(),
                },
            )
        ],
    }
