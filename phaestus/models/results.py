"""Result models for the enclosure and firmware loops."""

from typing import Any, Literal

from pydantic import Field, field_validator

from phaestus.models.base import CamelModel

FIRMWARE_LANGUAGES = ("cpp", "c", "h", "json")


class EnclosureArtifacts(CamelModel):
    """Parametric enclosure produced by the enclosure generator."""

    open_scad_code: str
    iterations: list[dict[str, Any]] = Field(default_factory=list)


class FirmwareFile(CamelModel):
    path: str
    content: str
    language: str = "cpp"

    @field_validator("language", mode="before")
    @classmethod
    def _known_language(cls, value: Any) -> str:
        value = str(value or "").lower()
        return value if value in FIRMWARE_LANGUAGES else "cpp"


class FirmwareArtifacts(CamelModel):
    """Firmware project produced by the firmware generator."""

    files: list[FirmwareFile] = Field(default_factory=list)
    build_status: str = "pending"


class ReviewIssue(CamelModel):
    severity: str = "warning"
    description: str = ""
    suggestion: str | None = None
    category: str | None = None


class ReviewResult(CamelModel):
    """Normalized review returned by the enclosure and firmware reviewers.

    ``score`` and ``verdict`` always hold a value after validation: a
    missing score becomes 0, and anything other than ``accept`` is a
    ``revise`` verdict.
    """

    score: int = 0
    verdict: Literal["accept", "revise"] = "revise"
    issues: list[ReviewIssue] = Field(default_factory=list)
    positives: list[str] = Field(default_factory=list)
    summary: str = "Review completed"

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> int:
        try:
            score = int(round(float(value)))
        except (TypeError, ValueError, OverflowError):
            return 0
        return max(0, min(100, score))

    @field_validator("verdict", mode="before")
    @classmethod
    def _normalize_verdict(cls, value: Any) -> str:
        return "accept" if str(value or "").strip().lower() == "accept" else "revise"

    @field_validator("issues", mode="before")
    @classmethod
    def _coerce_issues(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [{"description": i} if isinstance(i, str) else i for i in value if isinstance(i, (str, dict))]

    @field_validator("positives", mode="before")
    @classmethod
    def _default_positives(cls, value: Any) -> list:
        return [str(p) for p in value] if isinstance(value, list) else []

    @field_validator("summary", mode="before")
    @classmethod
    def _default_summary(cls, value: Any) -> str:
        return str(value) if value else "Review completed"
