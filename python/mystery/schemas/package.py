"""Package content schemas.

The generation service has historically sent both camelCase and
snake_case keys (``gameOverview`` / ``game_overview``,
``round2Questions`` / ``round2_questions``). PackageContentIn and
CharacterIn accept either spelling through alias choices and are the only
place where that normalization happens; everything downstream sees the
canonical field names below.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _aliases(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# =============================================================================
# Inbound (generator -> store)
# =============================================================================


class CharacterIn(BaseModel):
    """A character dossier as produced by the generator."""

    name: str | None = Field(
        default=None, validation_alias=_aliases("name", "character_name", "characterName")
    )
    description: str | None = None
    background: str | None = None
    secret: str | None = None
    introduction: str | None = None
    rumors: str | None = None

    round2_questions: str | None = Field(
        default=None, validation_alias=_aliases("round2_questions", "round2Questions")
    )
    round2_innocent: str | None = Field(
        default=None, validation_alias=_aliases("round2_innocent", "round2Innocent")
    )
    round2_guilty: str | None = Field(
        default=None, validation_alias=_aliases("round2_guilty", "round2Guilty")
    )
    round2_accomplice: str | None = Field(
        default=None, validation_alias=_aliases("round2_accomplice", "round2Accomplice")
    )
    round3_questions: str | None = Field(
        default=None, validation_alias=_aliases("round3_questions", "round3Questions")
    )
    round3_innocent: str | None = Field(
        default=None, validation_alias=_aliases("round3_innocent", "round3Innocent")
    )
    round3_guilty: str | None = Field(
        default=None, validation_alias=_aliases("round3_guilty", "round3Guilty")
    )
    round3_accomplice: str | None = Field(
        default=None, validation_alias=_aliases("round3_accomplice", "round3Accomplice")
    )
    round4_questions: str | None = Field(
        default=None, validation_alias=_aliases("round4_questions", "round4Questions")
    )
    round4_innocent: str | None = Field(
        default=None, validation_alias=_aliases("round4_innocent", "round4Innocent")
    )
    round4_guilty: str | None = Field(
        default=None, validation_alias=_aliases("round4_guilty", "round4Guilty")
    )
    round4_accomplice: str | None = Field(
        default=None, validation_alias=_aliases("round4_accomplice", "round4Accomplice")
    )
    final_innocent: str | None = Field(
        default=None, validation_alias=_aliases("final_innocent", "finalInnocent")
    )
    final_guilty: str | None = Field(
        default=None, validation_alias=_aliases("final_guilty", "finalGuilty")
    )
    final_accomplice: str | None = Field(
        default=None, validation_alias=_aliases("final_accomplice", "finalAccomplice")
    )

    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def normalize_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)


class PackageContentIn(BaseModel):
    """Structured package payload delivered by the generator."""

    title: str | None = None
    game_overview: str | None = Field(
        default=None, validation_alias=_aliases("game_overview", "gameOverview")
    )
    host_guide: str | None = Field(
        default=None, validation_alias=_aliases("host_guide", "hostGuide")
    )
    materials: str | None = None
    preparation_instructions: str | None = Field(
        default=None,
        validation_alias=_aliases(
            "preparation_instructions", "preparationInstructions", "preparation"
        ),
    )
    timeline: str | None = None
    hosting_tips: str | None = Field(
        default=None, validation_alias=_aliases("hosting_tips", "hostingTips")
    )
    evidence_cards: Any | None = Field(
        default=None, validation_alias=_aliases("evidence_cards", "evidenceCards")
    )
    relationship_matrix: Any | None = Field(
        default=None, validation_alias=_aliases("relationship_matrix", "relationshipMatrix")
    )
    detective_script: str | None = Field(
        default=None, validation_alias=_aliases("detective_script", "detectiveScript")
    )
    characters: list[CharacterIn] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator(
        "title",
        "game_overview",
        "host_guide",
        "materials",
        "preparation_instructions",
        "timeline",
        "hosting_tips",
        "detective_script",
        mode="before",
    )
    @classmethod
    def normalize_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("characters", mode="before")
    @classmethod
    def characters_or_empty(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []


# =============================================================================
# Outbound
# =============================================================================


class CharacterOut(BaseModel):
    """Response schema for a character dossier."""

    id: UUID
    name: str
    description: str | None = None
    background: str | None = None
    secret: str | None = None
    introduction: str | None = None
    rumors: str | None = None
    round2_questions: str | None = None
    round2_innocent: str | None = None
    round2_guilty: str | None = None
    round2_accomplice: str | None = None
    round3_questions: str | None = None
    round3_innocent: str | None = None
    round3_guilty: str | None = None
    round3_accomplice: str | None = None
    round4_questions: str | None = None
    round4_innocent: str | None = None
    round4_guilty: str | None = None
    round4_accomplice: str | None = None
    final_innocent: str | None = None
    final_guilty: str | None = None
    final_accomplice: str | None = None
    guest_name: str | None = None
    guest_email: str | None = None


class PackageContentOut(BaseModel):
    """Full generated package for the owner's view."""

    id: UUID
    conversation_id: UUID
    title: str | None = None
    game_overview: str | None = None
    host_guide: str | None = None
    materials: str | None = None
    preparation_instructions: str | None = None
    timeline: str | None = None
    hosting_tips: str | None = None
    evidence_cards: Any | None = None
    relationship_matrix: Any | None = None
    detective_script: str | None = None
    characters: list[CharacterOut] = Field(default_factory=list)
    generation_completed_at: datetime | None = None
    updated_at: datetime


class HostPackageOut(BaseModel):
    """Host-role view returned for a host access token."""

    title: str | None = None
    game_overview: str | None = None
    host_guide: str | None = None
    materials: str | None = None
    preparation_instructions: str | None = None
    timeline: str | None = None
    hosting_tips: str | None = None
    detective_script: str | None = None
    evidence_cards: Any | None = None
    host_guide_markdown: str
    detective_kit_markdown: str


class CharacterAccessOut(BaseModel):
    """Character-role view returned for a character access token."""

    mystery_title: str | None = None
    character: CharacterOut
    guide_markdown: str


class CharacterAssignment(BaseModel):
    """Assign a generated character to a guest."""

    guest_name: str = Field(min_length=1, max_length=200)
    guest_email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    notify: bool = False
