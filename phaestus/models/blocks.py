"""PCB block catalog and placement models."""

from typing import Any

from pydantic import Field, field_validator

from phaestus.models.base import CamelModel

GRID_SIZE_MM = 12.7


class PowerProvides(CamelModel):
    """A rail a block can source, with its current capacity."""

    rail: str
    max_ma: int


class PowerRequires(CamelModel):
    """A rail a block draws from."""

    rail: str
    typical_ma: int = 0
    max_ma: int = 0


class PowerInterface(CamelModel):
    provides: list[PowerProvides] = Field(default_factory=list)
    requires: list[PowerRequires] = Field(default_factory=list)


class I2CDetails(CamelModel):
    addresses: list[int] = Field(default_factory=list)
    address_configurable: bool = False
    provides_pullups: bool = False

    @field_validator("addresses", mode="before")
    @classmethod
    def _parse_addresses(cls, value: Any) -> list[int]:
        # Catalog rows store "0x76"; block.json stores 118.
        if not isinstance(value, list):
            return value or []
        return [int(a, 16) if isinstance(a, str) else a for a in value]


class SPIDetails(CamelModel):
    cs_pin: str


class GPIOClaims(CamelModel):
    claims: list[str] = Field(default_factory=list)


class BusInterface(CamelModel):
    """What a block connects to on the shared bus."""

    power: PowerInterface | None = None
    i2c: I2CDetails | None = None
    spi: SPIDetails | None = None
    gpio: GPIOClaims | None = None


class BlockDefinition(CamelModel):
    """A catalog entry: a pre-validated PCB module on the 12.7 mm grid."""

    slug: str
    name: str = ""
    category: str = ""
    description: str = ""
    width_units: int = 1
    height_units: int = 1
    bus: BusInterface = Field(default_factory=BusInterface)

    @property
    def is_mcu(self) -> bool:
        return self.category == "mcu" or self.slug.startswith("mcu-")

    @property
    def is_power(self) -> bool:
        return self.category == "power" or self.slug.startswith("power-")


class PlacedBlock(CamelModel):
    """A catalog block positioned on the board grid."""

    block_slug: str
    grid_x: int = 0
    grid_y: int = 0
    rotation: int = 0
    reason: str = ""


class BoardSize(CamelModel):
    width: float = 4 * GRID_SIZE_MM
    height: float = 3 * GRID_SIZE_MM
    unit: str = "mm"


class PCBArtifacts(CamelModel):
    """Output of the PCB stage."""

    placed_blocks: list[PlacedBlock] = Field(default_factory=list)
    schematic_data: Any = None
    board_size: BoardSize = Field(default_factory=BoardSize)
    net_list: list[dict[str, Any]] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
