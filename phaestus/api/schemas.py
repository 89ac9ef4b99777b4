"""Pydantic request/response models for the PHAESTUS REST API.

Bodies use the same camelCase JSON as persisted snapshots; snake_case
field names are accepted too.
"""

from typing import Any

from pydantic import Field

from phaestus.drc.validator import DRCIssue, PowerBudget
from phaestus.models.base import CamelModel
from phaestus.models.blocks import BlockDefinition
from phaestus.models.project import OrchestratorInput


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class RunRequest(OrchestratorInput):
    """Request body for POST /api/v1/orchestrator/run."""

    thread_id: str | None = Field(
        default=None,
        description="Checkpoint thread to run on; generated when omitted",
    )


class ResumeRequest(CamelModel):
    """Request body for POST /api/v1/orchestrator/resume."""

    thread_id: str = Field(..., min_length=1, description="Thread returned by the needs_input event")
    response: Any = Field(
        ...,
        description="'accept', 'retry', 'skip', free-text feedback, or a questionId -> answer mapping",
    )


# ---------------------------------------------------------------------------
# DRC
# ---------------------------------------------------------------------------

class DRCRequest(CamelModel):
    """Request body for POST /api/v1/drc.

    Either full block definitions or slugs from the default catalog.
    """

    blocks: list[BlockDefinition] = Field(default_factory=list)
    slugs: list[str] = Field(default_factory=list)


class DRCResponse(CamelModel):
    """Response for POST /api/v1/drc."""

    valid: bool
    errors: list[DRCIssue] = Field(default_factory=list)
    warnings: list[DRCIssue] = Field(default_factory=list)
    summary: str = ""
    total_power: PowerBudget = Field(default_factory=PowerBudget)
    unknown_slugs: list[str] = Field(default_factory=list)
