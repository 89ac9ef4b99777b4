"""Design rule check for a combination of PCB blocks.

Checks the shared bus for conflicts (I2C addresses, GPIO claims, SPI chip
selects), the MCU count, and the per-rail power budget.
"""

import logging
from typing import Any

from pydantic import Field

from phaestus.models.base import CamelModel
from phaestus.models.blocks import BlockDefinition

logger = logging.getLogger(__name__)

# Fraction of a rail's capacity above which typical draw earns a warning
NEAR_CAPACITY_RATIO = 0.8


class DRCIssue(CamelModel):
    code: str
    message: str
    blocks: list[str] = Field(default_factory=list)
    details: dict[str, Any] | None = None


class DRCResult(CamelModel):
    valid: bool = True
    errors: list[DRCIssue] = Field(default_factory=list)
    warnings: list[DRCIssue] = Field(default_factory=list)


class PowerBudget(CamelModel):
    provides: dict[str, int] = Field(default_factory=dict)
    requires: dict[str, dict[str, int]] = Field(default_factory=dict)


def normalize_rail(rail: str) -> str:
    """Canonical rail name: V3V3/3V3 -> 3V3, VBUS/5V0 -> 5V0."""
    rail = rail.upper()
    if rail in ("V3V3", "3V3"):
        return "3V3"
    if rail in ("VBUS", "5V0"):
        return "5V0"
    return rail


# ---------------------------------------------------------------------------
# Pairwise checks
# ---------------------------------------------------------------------------

def _check_i2c(a: BlockDefinition, b: BlockDefinition) -> tuple[list[DRCIssue], list[DRCIssue]]:
    errors: list[DRCIssue] = []
    warnings: list[DRCIssue] = []
    if a.bus.i2c is None or b.bus.i2c is None:
        return errors, warnings

    configurable = a.bus.i2c.address_configurable or b.bus.i2c.address_configurable
    for addr in a.bus.i2c.addresses:
        if addr not in b.bus.i2c.addresses:
            continue
        addr_hex = f"0x{addr:02x}"
        details = {"address": addr, "addressHex": addr_hex}
        if configurable:
            warnings.append(DRCIssue(
                code="I2C_ADDRESS_CONFLICT_CONFIGURABLE",
                message=(
                    f"I2C address conflict at {addr_hex} between {a.name} and {b.name}. "
                    f"One or both blocks have configurable addresses - adjust jumpers to resolve."
                ),
                blocks=[a.slug, b.slug],
                details=details,
            ))
        else:
            errors.append(DRCIssue(
                code="I2C_ADDRESS_CONFLICT",
                message=(
                    f"I2C address conflict at {addr_hex} between {a.name} and {b.name}. "
                    f"These blocks cannot be used together."
                ),
                blocks=[a.slug, b.slug],
                details=details,
            ))
    return errors, warnings


def _check_gpio(a: BlockDefinition, b: BlockDefinition) -> list[DRCIssue]:
    if a.bus.gpio is None or b.bus.gpio is None:
        return []
    return [
        DRCIssue(
            code="GPIO_CONFLICT",
            message=f"GPIO conflict: {gpio} claimed by both {a.name} and {b.name}",
            blocks=[a.slug, b.slug],
            details={"gpio": gpio},
        )
        for gpio in a.bus.gpio.claims
        if gpio in b.bus.gpio.claims
    ]


def _check_spi(a: BlockDefinition, b: BlockDefinition) -> list[DRCIssue]:
    if a.bus.spi is None or b.bus.spi is None:
        return []
    if a.bus.spi.cs_pin != b.bus.spi.cs_pin:
        return []
    return [DRCIssue(
        code="SPI_CS_CONFLICT",
        message=f"SPI chip select conflict: {a.bus.spi.cs_pin} used by both {a.name} and {b.name}",
        blocks=[a.slug, b.slug],
        details={"csPin": a.bus.spi.cs_pin},
    )]


# ---------------------------------------------------------------------------
# Whole-board checks
# ---------------------------------------------------------------------------

def _analyze_power(blocks: list[BlockDefinition]) -> tuple[list[DRCIssue], list[DRCIssue], PowerBudget]:
    errors: list[DRCIssue] = []
    warnings: list[DRCIssue] = []
    provides: dict[str, int] = {}
    providers: dict[str, list[BlockDefinition]] = {}
    requires: dict[str, dict[str, int]] = {}
    consumers: dict[str, list[str]] = {}

    for block in blocks:
        power = block.bus.power
        if power is None:
            continue
        for p in power.provides:
            rail = normalize_rail(p.rail)
            provides[rail] = max(provides.get(rail, 0), p.max_ma)
            providers.setdefault(rail, []).append(block)
        for r in power.requires:
            rail = normalize_rail(r.rail)
            totals = requires.setdefault(rail, {"typical": 0, "max": 0})
            totals["typical"] += r.typical_ma
            totals["max"] += r.max_ma
            consumers.setdefault(rail, []).append(block.slug)

    for rail, rail_providers in providers.items():
        if len(rail_providers) > 1:
            names = [b.name for b in rail_providers]
            warnings.append(DRCIssue(
                code="MULTIPLE_POWER_PROVIDERS",
                message=(
                    f"Multiple blocks provide {rail} rail: {', '.join(names)}. "
                    f"Ensure power sources don't conflict (e.g., via isolation taps)."
                ),
                blocks=[b.slug for b in rail_providers],
                details={"rail": rail, "providers": names},
            ))

    all_slugs = [b.slug for b in blocks]
    for rail, req in requires.items():
        available = provides.get(rail, 0)
        if available <= 0:
            errors.append(DRCIssue(
                code="MISSING_POWER_RAIL",
                message=f"No block provides {rail} rail, but {req['max']}mA max is required",
                blocks=consumers[rail],
                details={"rail": rail, "requiredMax": req["max"]},
            ))
        elif req["max"] > available:
            errors.append(DRCIssue(
                code="POWER_BUDGET_EXCEEDED",
                message=f"{rail} rail budget exceeded: {req['max']}mA required, {available}mA available",
                blocks=all_slugs,
                details={"rail": rail, "required": req["max"], "available": available},
            ))
        elif req["typical"] > available * NEAR_CAPACITY_RATIO:
            utilization = req["typical"] / available
            warnings.append(DRCIssue(
                code="POWER_NEAR_CAPACITY",
                message=(
                    f"{rail} rail near capacity: {req['typical']}mA typical usage, "
                    f"{available}mA available ({round(utilization * 100)}% utilization)"
                ),
                blocks=all_slugs,
                details={"rail": rail, "typical": req["typical"], "available": available,
                         "utilization": utilization},
            ))

    return errors, warnings, PowerBudget(provides=provides, requires=requires)


def _check_pullups(blocks: list[BlockDefinition]) -> DRCIssue | None:
    devices = [b.slug for b in blocks if b.bus.i2c is not None and b.bus.i2c.addresses]
    has_pullups = any(b.bus.i2c is not None and b.bus.i2c.provides_pullups for b in blocks)
    if devices and not has_pullups:
        return DRCIssue(
            code="NO_I2C_PULLUPS",
            message="No block provides I2C pullup resistors. External pullups may be required.",
            blocks=devices,
        )
    return None


def validate_block_combination(blocks: list[BlockDefinition]) -> DRCResult:
    """Run every design rule over a set of blocks.

    Returns a DRCResult; ``valid`` is False when any error was found.
    Warnings never affect validity.
    """
    errors: list[DRCIssue] = []
    warnings: list[DRCIssue] = []
    if not blocks:
        return DRCResult()

    mcus = [b for b in blocks if b.is_mcu]
    if not mcus:
        errors.append(DRCIssue(
            code="NO_MCU",
            message="No MCU block selected. An MCU block is required to define the bus.",
        ))
    elif len(mcus) > 1:
        errors.append(DRCIssue(
            code="MULTIPLE_MCU",
            message=(
                f"Multiple MCU blocks selected: {', '.join(b.name for b in mcus)}. "
                f"Only one MCU is allowed."
            ),
            blocks=[b.slug for b in mcus],
        ))

    for i, a in enumerate(blocks):
        for b in blocks[i + 1:]:
            i2c_errors, i2c_warnings = _check_i2c(a, b)
            errors.extend(i2c_errors)
            warnings.extend(i2c_warnings)
            errors.extend(_check_gpio(a, b))
            errors.extend(_check_spi(a, b))

    power_errors, power_warnings, _ = _analyze_power(blocks)
    errors.extend(power_errors)
    warnings.extend(power_warnings)

    pullups = _check_pullups(blocks)
    if pullups is not None:
        warnings.append(pullups)

    result = DRCResult(valid=not errors, errors=errors, warnings=warnings)
    logger.debug(f"DRC over {len(blocks)} blocks: {len(errors)} errors, {len(warnings)} warnings")
    return result


# ---------------------------------------------------------------------------
# Convenience helpers
# ---------------------------------------------------------------------------

def format_drc_result(result: DRCResult) -> str:
    """Human-readable DRC report."""
    lines = ["DRC: PASSED" if result.valid else "DRC: FAILED"]
    if result.errors:
        lines.extend(["", f"Errors ({len(result.errors)}):"])
        lines.extend(f"  - [{e.code}] {e.message}" for e in result.errors)
    if result.warnings:
        lines.extend(["", f"Warnings ({len(result.warnings)}):"])
        lines.extend(f"  - [{w.code}] {w.message}" for w in result.warnings)
    return "\n".join(lines)


def are_blocks_compatible(blocks: list[BlockDefinition]) -> bool:
    return validate_block_combination(blocks).valid


def calculate_total_power(blocks: list[BlockDefinition]) -> PowerBudget:
    _, _, budget = _analyze_power(blocks)
    return budget


def find_conflicting_blocks(
    new_block: BlockDefinition,
    existing_blocks: list[BlockDefinition],
) -> list[dict[str, str]]:
    """Existing blocks that conflict with ``new_block``, with the first reason for each."""
    conflicts = []
    for existing in existing_blocks:
        i2c_errors, _ = _check_i2c(new_block, existing)
        found = i2c_errors or _check_gpio(new_block, existing) or _check_spi(new_block, existing)
        if found:
            conflicts.append({"slug": existing.slug, "reason": found[0].message})
    return conflicts
