"""Spec-stage models: feasibility, questions, decisions, blueprints, final spec."""

from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from phaestus.models.base import CamelModel


class DesignMode(str, Enum):
    """How much the run is allowed to decide on its own."""

    VIBE_IT = "vibe_it"      # Fully automatic
    FIX_IT = "fix_it"        # Automatic, human only on loop exhaustion
    DESIGN_IT = "design_it"  # Human answers the open questions


def _strings(value: Any) -> list[str]:
    return [str(i) for i in value] if isinstance(value, list) else []


class OpenQuestion(CamelModel):
    """A clarification the feasibility analysis could not settle alone."""

    id: str
    question: str
    options: list[str] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)


class FeasibilityAnalysis(CamelModel):
    """Structured manufacturability verdict returned by the feasibility LLM call."""

    manufacturable: bool = True
    overall_score: int = 0
    rejection_reason: str | None = None
    suggested_revisions: list[str] = Field(default_factory=list)
    communication: dict[str, Any] = Field(default_factory=dict)
    processing: dict[str, Any] = Field(default_factory=dict)
    power: dict[str, Any] = Field(default_factory=dict)
    inputs: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)
    open_questions: list[OpenQuestion] = Field(default_factory=list)

    @field_validator("suggested_revisions", mode="before")
    @classmethod
    def _coerce_revisions(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("open_questions", mode="before")
    @classmethod
    def _coerce_questions(cls, value: Any) -> list:
        return value or []

    @property
    def input_items(self) -> list[str]:
        return _strings(self.inputs.get("items"))

    @property
    def output_items(self) -> list[str]:
        return _strings(self.outputs.get("items"))

    @property
    def power_options(self) -> list[str]:
        return _strings(self.power.get("options"))


class Decision(CamelModel):
    """An answer to one open question."""

    question_id: str
    question: str
    answer: str
    rationale: str = ""
    timestamp: str = ""


class Blueprint(CamelModel):
    """One visual design direction for the product."""

    style: str
    title: str = ""
    description: str = ""
    prompt: str = ""
    url: str | None = None


class GeneratedName(CamelModel):
    """A candidate product name."""

    name: str
    style: str = ""
    reasoning: str = ""


class SpecItem(CamelModel):
    """An input or output line of the final spec."""

    type: str
    count: int = 1
    notes: str = ""


class PcbSize(CamelModel):
    width: float = 50.8
    height: float = 38.1
    unit: str = "mm"


class PowerSpec(CamelModel):
    source: str = "USB-C"
    voltage: str = "5V"
    current: str = "500mA"
    battery_life: str | None = None


class CommunicationSpec(CamelModel):
    type: str = "WiFi"
    protocol: str = "HTTP/MQTT"


class EnclosureSpec(CamelModel):
    style: str = "rounded_box"
    width: float = 60
    height: float = 45
    depth: float = 25


class BomItem(CamelModel):
    item: str
    quantity: int = 1
    unit_cost: float = 0.0


class FinalSpec(CamelModel):
    """The locked product specification every downstream stage builds from."""

    name: str
    summary: str = ""
    pcb_size: PcbSize = Field(default_factory=PcbSize)
    inputs: list[SpecItem] = Field(default_factory=list)
    outputs: list[SpecItem] = Field(default_factory=list)
    power: PowerSpec = Field(default_factory=PowerSpec)
    communication: CommunicationSpec = Field(default_factory=CommunicationSpec)
    enclosure: EnclosureSpec = Field(default_factory=EnclosureSpec)
    estimated_bom: list[BomItem] = Field(default_factory=list, alias="estimatedBOM")
    locked: bool = True
    locked_at: str | None = None
