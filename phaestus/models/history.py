"""Audit-log records appended by every node."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field

from phaestus.models.base import CamelModel


class HistoryType(str, Enum):
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    VALIDATION = "validation"
    ERROR = "error"
    FIX = "fix"
    PROGRESS = "progress"
    THINKING = "thinking"


class HistoryItem(CamelModel):
    """One immutable entry in the run's history log."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: str = Field(default_factory=lambda: utc_now())
    type: HistoryType
    stage: str
    action: str
    result: str | None = None
    details: dict[str, Any] | None = None


def utc_now() -> str:
    """ISO-8601 UTC timestamp used for history, decisions and stage completion."""
    return datetime.now(timezone.utc).isoformat()


def create_history_item(
    type: HistoryType | str,
    stage: str,
    action: str,
    result: str | None = None,
    details: dict[str, Any] | None = None,
) -> HistoryItem:
    """Build a history entry with a fresh id and timestamp."""
    return HistoryItem(
        type=HistoryType(type),
        stage=stage,
        action=action,
        result=result,
        details=details,
    )
