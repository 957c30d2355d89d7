"""Mystery schema - conversations, mystery_packages, mystery_characters

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Creates the conversation (party configuration), package (generation
status + generated content) and character tables.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # Enable pgcrypto extension for gen_random_uuid() / gen_random_bytes()
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ==========================================================================
    # conversations table
    # ==========================================================================
    op.create_table(
        "conversations",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.UUID(), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("user_request", sa.Text(), nullable=True),
        sa.Column("theme", sa.Text(), nullable=True),
        sa.Column("player_count", sa.Integer(), server_default="6", nullable=False),
        sa.Column("mystery_style", sa.Text(), server_default="detective", nullable=False),
        sa.Column("script_type", sa.Text(), server_default="full", nullable=False),
        sa.Column("has_accomplice", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("additional_details", sa.Text(), nullable=True),
        sa.Column("host_name", sa.Text(), nullable=True),
        sa.Column("host_email", sa.Text(), nullable=True),
        sa.Column(
            "needs_package_generation", sa.Boolean(), server_default="false", nullable=False
        ),
        sa.Column("has_complete_package", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_paid", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("display_status", sa.Text(), server_default="draft", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "player_count BETWEEN 4 AND 32",
            name="ck_conversations_player_count",
        ),
        sa.CheckConstraint(
            "script_type IN ('full', 'pointForm', 'both')",
            name="ck_conversations_script_type",
        ),
        sa.CheckConstraint(
            "mystery_style IN ('character', 'detective')",
            name="ck_conversations_mystery_style",
        ),
    )

    # ==========================================================================
    # mystery_packages table
    # ==========================================================================
    op.create_table(
        "mystery_packages",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("conversation_id", sa.UUID(), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("game_overview", sa.Text(), nullable=True),
        sa.Column("host_guide", sa.Text(), nullable=True),
        sa.Column("materials", sa.Text(), nullable=True),
        sa.Column("preparation_instructions", sa.Text(), nullable=True),
        sa.Column("timeline", sa.Text(), nullable=True),
        sa.Column("hosting_tips", sa.Text(), nullable=True),
        sa.Column("evidence_cards", postgresql.JSONB(), nullable=True),
        sa.Column("relationship_matrix", postgresql.JSONB(), nullable=True),
        sa.Column("detective_script", sa.Text(), nullable=True),
        sa.Column("generation_status", postgresql.JSONB(), nullable=True),
        sa.Column("generation_started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("generation_completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "host_access_token",
            sa.Text(),
            server_default=sa.text("encode(gen_random_bytes(24), 'hex')"),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["conversation_id"],
            ["conversations.id"],
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("host_access_token", name="uq_mystery_packages_host_access_token"),
    )
    op.create_index(
        "ix_mystery_packages_conversation_updated",
        "mystery_packages",
        ["conversation_id", "updated_at"],
    )

    # ==========================================================================
    # mystery_characters table
    # ==========================================================================
    character_text_columns = [
        "description",
        "background",
        "secret",
        "introduction",
        "rumors",
        "round2_questions",
        "round2_innocent",
        "round2_guilty",
        "round2_accomplice",
        "round3_questions",
        "round3_innocent",
        "round3_guilty",
        "round3_accomplice",
        "round4_questions",
        "round4_innocent",
        "round4_guilty",
        "round4_accomplice",
        "final_innocent",
        "final_guilty",
        "final_accomplice",
        "guest_name",
        "guest_email",
    ]
    op.create_table(
        "mystery_characters",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("package_id", sa.UUID(), nullable=False),
        sa.Column("position", sa.Integer(), server_default="0", nullable=False),
        sa.Column("character_name", sa.Text(), nullable=False),
        *[sa.Column(name, sa.Text(), nullable=True) for name in character_text_columns],
        sa.Column(
            "access_token",
            sa.Text(),
            server_default=sa.text("encode(gen_random_bytes(24), 'hex')"),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["package_id"],
            ["mystery_packages.id"],
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("access_token", name="uq_mystery_characters_access_token"),
    )
    op.create_index(
        "ix_mystery_characters_package_position",
        "mystery_characters",
        ["package_id", "position"],
    )


def downgrade() -> None:
    # Drop tables in reverse order (respecting foreign key dependencies)
    op.drop_index("ix_mystery_characters_package_position", table_name="mystery_characters")
    op.drop_table("mystery_characters")
    op.drop_index("ix_mystery_packages_conversation_updated", table_name="mystery_packages")
    op.drop_table("mystery_packages")
    op.drop_table("conversations")
