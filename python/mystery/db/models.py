"""SQLAlchemy ORM models for the mystery package generator.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Column types are the generic SQLAlchemy ones (Uuid, JSON with a JSONB
variant, timezone-aware DateTime) so the schema maps onto PostgreSQL in
production and SQLite in unit tests.

Tables:
    conversations: one mystery request configured by a host
    mystery_packages: generation job status + generated content (latest row wins)
    mystery_characters: character dossiers owned by a package
"""

import secrets
from datetime import UTC, datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_access_token() -> str:
    """Opaque URL-safe token for unauthenticated role-scoped access."""
    return secrets.token_urlsafe(24)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class GenerationState(str, PyEnum):
    """Lifecycle of a package generation job.

    States:
        not_started: No generation has been requested
        in_progress: The external generator has been triggered
        completed: Package content is available
        failed: Triggering failed; the job can be resumed
    """

    not_started = "not_started"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"


class DisplayStatus(str, PyEnum):
    """How a conversation is presented in the host's dashboard."""

    draft = "draft"
    purchased = "purchased"
    archived = "archived"


# =============================================================================
# Models
# =============================================================================


class Conversation(Base):
    """A mystery request: the party configuration chosen by the host."""

    __tablename__ = "conversations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_request: Mapped[str | None] = mapped_column(Text, nullable=True)
    theme: Mapped[str | None] = mapped_column(Text, nullable=True)
    player_count: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    mystery_style: Mapped[str] = mapped_column(Text, nullable=False, default="detective")
    script_type: Mapped[str] = mapped_column(Text, nullable=False, default="full")
    has_accomplice: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    additional_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    host_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    host_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    needs_package_generation: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    has_complete_package: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    display_status: Mapped[str] = mapped_column(
        Text, nullable=False, default=DisplayStatus.draft.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "player_count BETWEEN 4 AND 32",
            name="ck_conversations_player_count",
        ),
        CheckConstraint(
            "script_type IN ('full', 'pointForm', 'both')",
            name="ck_conversations_script_type",
        ),
        CheckConstraint(
            "mystery_style IN ('character', 'detective')",
            name="ck_conversations_mystery_style",
        ),
    )

    packages: Mapped[list["MysteryPackage"]] = relationship(
        "MysteryPackage", back_populates="conversation", cascade="all, delete-orphan"
    )


class MysteryPackage(Base):
    """Generation job status and generated content for a conversation.

    A conversation may accumulate several rows over time; the row with the
    most recent updated_at is authoritative. generation_status holds the
    GenerationStatus JSON document exactly as it is transmitted.
    """

    __tablename__ = "mystery_packages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    conversation_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Generated content
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    game_overview: Mapped[str | None] = mapped_column(Text, nullable=True)
    host_guide: Mapped[str | None] = mapped_column(Text, nullable=True)
    materials: Mapped[str | None] = mapped_column(Text, nullable=True)
    preparation_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    timeline: Mapped[str | None] = mapped_column(Text, nullable=True)
    hosting_tips: Mapped[str | None] = mapped_column(Text, nullable=True)
    evidence_cards: Mapped[Any | None] = mapped_column(JSONType, nullable=True)
    relationship_matrix: Mapped[Any | None] = mapped_column(JSONType, nullable=True)
    detective_script: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Generation job
    generation_status: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    generation_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    generation_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    host_access_token: Mapped[str] = mapped_column(
        Text, nullable=False, unique=True, default=new_access_token
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_mystery_packages_conversation_updated", "conversation_id", "updated_at"),
    )

    conversation: Mapped["Conversation"] = relationship("Conversation", back_populates="packages")
    characters: Mapped[list["MysteryCharacter"]] = relationship(
        "MysteryCharacter",
        back_populates="package",
        cascade="all, delete-orphan",
        order_by="MysteryCharacter.position",
    )


class MysteryCharacter(Base):
    """A character dossier.

    Owned exclusively by one package; the full set is deleted and
    re-inserted whenever package content is saved.
    """

    __tablename__ = "mystery_characters"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    package_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("mystery_packages.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    character_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    background: Mapped[str | None] = mapped_column(Text, nullable=True)
    secret: Mapped[str | None] = mapped_column(Text, nullable=True)
    introduction: Mapped[str | None] = mapped_column(Text, nullable=True)
    rumors: Mapped[str | None] = mapped_column(Text, nullable=True)

    round2_questions: Mapped[str | None] = mapped_column(Text, nullable=True)
    round2_innocent: Mapped[str | None] = mapped_column(Text, nullable=True)
    round2_guilty: Mapped[str | None] = mapped_column(Text, nullable=True)
    round2_accomplice: Mapped[str | None] = mapped_column(Text, nullable=True)
    round3_questions: Mapped[str | None] = mapped_column(Text, nullable=True)
    round3_innocent: Mapped[str | None] = mapped_column(Text, nullable=True)
    round3_guilty: Mapped[str | None] = mapped_column(Text, nullable=True)
    round3_accomplice: Mapped[str | None] = mapped_column(Text, nullable=True)
    round4_questions: Mapped[str | None] = mapped_column(Text, nullable=True)
    round4_innocent: Mapped[str | None] = mapped_column(Text, nullable=True)
    round4_guilty: Mapped[str | None] = mapped_column(Text, nullable=True)
    round4_accomplice: Mapped[str | None] = mapped_column(Text, nullable=True)
    final_innocent: Mapped[str | None] = mapped_column(Text, nullable=True)
    final_guilty: Mapped[str | None] = mapped_column(Text, nullable=True)
    final_accomplice: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Guest the character is assigned to (optional until the host assigns it)
    guest_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    guest_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    access_token: Mapped[str] = mapped_column(
        Text, nullable=False, unique=True, default=new_access_token
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_mystery_characters_package_position", "package_id", "position"),
    )

    package: Mapped["MysteryPackage"] = relationship("MysteryPackage", back_populates="characters")
