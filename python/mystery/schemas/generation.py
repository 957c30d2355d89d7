"""Generation status schemas.

GenerationStatus is persisted in mystery_packages.generation_status and
transmitted to clients as-is, so it serializes with camelCase keys:

    { "status": "not_started" | "in_progress" | "completed" | "failed",
      "progress": 0-100,
      "currentStep": "...",
      "resumable": true | false,        (optional)
      "sections": { "<section>": bool } (optional) }
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

GENERATION_STATES = Literal["not_started", "in_progress", "completed", "failed"]

# Sections reported by the generator, in display order
PACKAGE_SECTIONS: tuple[str, ...] = (
    "hostGuide",
    "characters",
    "clues",
    "inspectorScript",
    "characterMatrix",
)

STEP_NOT_STARTED = "Not started"
STEP_COMPLETED = "Package generation completed"
STEP_UNKNOWN = "Unknown step"
STEP_IN_PROGRESS = "Package generation in progress..."
STEP_STATUS_ERROR = "Error checking status"
STEP_SENDING = "Sending to external generation service..."
STEP_PROCESSING = "Processing by external service..."
STEP_TRIGGER_FAILED = "Failed to trigger generation"


class GenerationOutcome(str, Enum):
    """Result of a start/resume request."""

    already_completed = "already_completed"
    already_in_progress = "already_in_progress"
    started = "started"


class GenerationStatus(BaseModel):
    """Authoritative status of a package generation job."""

    status: GENERATION_STATES
    progress: int = Field(default=0, ge=0, le=100)
    current_step: str = Field(default=STEP_UNKNOWN, alias="currentStep")
    resumable: bool | None = None
    error: str | None = None
    sections: dict[str, bool] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> dict:
        """Serialize to the persisted / wire JSON shape."""
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def not_started(cls, current_step: str = STEP_NOT_STARTED) -> "GenerationStatus":
        return cls(status="not_started", progress=0, current_step=current_step)

    @classmethod
    def completed(cls) -> "GenerationStatus":
        return cls(
            status="completed",
            progress=100,
            current_step=STEP_COMPLETED,
            sections={section: True for section in PACKAGE_SECTIONS},
        )


class GenerationProgressUpdate(BaseModel):
    """Progress report pushed by the external generation service."""

    status: GENERATION_STATES | None = None
    progress: int | None = Field(default=None, ge=0, le=100)
    current_step: str | None = Field(default=None, alias="currentStep")
    resumable: bool | None = None
    error: str | None = None
    sections: dict[str, bool] | None = None

    model_config = ConfigDict(populate_by_name=True)


class GenerateRequest(BaseModel):
    """Body of the start/resume endpoints."""

    test_mode: bool | None = Field(default=None, alias="testMode")
    background: bool = False

    model_config = ConfigDict(populate_by_name=True)


class GenerateResponse(BaseModel):
    """Result of a start/resume request.

    outcome is None when the trigger was handed to a background worker.
    """

    outcome: GenerationOutcome | None = None
    queued: bool = False
