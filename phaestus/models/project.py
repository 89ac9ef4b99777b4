"""Persisted project snapshot exchanged with the storage layer at resume boundaries."""

from enum import Enum
from typing import Any

from pydantic import Field

from phaestus.models.base import CamelModel
from phaestus.models.blocks import BlockDefinition, PCBArtifacts
from phaestus.models.results import EnclosureArtifacts, FirmwareArtifacts
from phaestus.models.spec import (
    Blueprint,
    Decision,
    DesignMode,
    FeasibilityAnalysis,
    FinalSpec,
    GeneratedName,
    OpenQuestion,
)


class Stage(str, Enum):
    SPEC = "spec"
    PCB = "pcb"
    ENCLOSURE = "enclosure"
    FIRMWARE = "firmware"
    EXPORT = "export"


STAGE_ORDER: list[str] = [s.value for s in Stage]


class StageStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    ERROR = "error"


class StageState(CamelModel):
    status: StageStatus = StageStatus.PENDING
    completed_at: str | None = None
    error: str | None = None


class ProjectSnapshot(CamelModel):
    """Artifact fields of a project as stored between runs."""

    description: str = ""
    feasibility: FeasibilityAnalysis | None = None
    open_questions: list[OpenQuestion] = Field(default_factory=list)
    decisions: list[Decision] = Field(default_factory=list)
    blueprints: list[Blueprint] = Field(default_factory=list)
    selected_blueprint: int | None = None
    generated_names: list[GeneratedName] = Field(default_factory=list)
    selected_name: str | None = None
    final_spec: FinalSpec | None = None
    pcb: PCBArtifacts | None = None
    enclosure: EnclosureArtifacts | None = None
    firmware: FirmwareArtifacts | None = None
    stages: dict[str, StageState] = Field(default_factory=dict)

    def stage_status(self, stage: str) -> StageStatus:
        state = self.stages.get(stage)
        return state.status if state else StageStatus.PENDING

    @classmethod
    def from_any(cls, value: "ProjectSnapshot | dict[str, Any]") -> "ProjectSnapshot":
        if isinstance(value, cls):
            return value
        return cls.model_validate(value)


class OrchestratorInput(CamelModel):
    """Everything a run starts from: the request plus an optional snapshot to resume."""

    project_id: str
    mode: DesignMode = DesignMode.VIBE_IT
    description: str = ""
    available_blocks: list[BlockDefinition] = Field(default_factory=list)
    existing_spec: ProjectSnapshot | None = None

    @classmethod
    def from_any(cls, value: "OrchestratorInput | dict[str, Any]") -> "OrchestratorInput":
        if isinstance(value, cls):
            return value
        return cls.model_validate(value)
