"""Conversation (mystery request) schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

SCRIPT_TYPES = Literal["full", "pointForm", "both"]
MYSTERY_STYLES = Literal["character", "detective"]


class ConversationCreate(BaseModel):
    """Party configuration submitted from the mystery form."""

    user_request: str | None = Field(default=None, max_length=4000)
    theme: str | None = Field(default=None, max_length=200)
    player_count: int = Field(default=6, ge=4, le=32)
    mystery_style: MYSTERY_STYLES = "detective"
    has_accomplice: bool = False
    script_type: SCRIPT_TYPES = "full"
    additional_details: str | None = Field(default=None, max_length=4000)
    host_name: str | None = Field(default=None, max_length=200)
    host_email: str | None = Field(default=None, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")


class ConversationOut(BaseModel):
    """Response schema for a conversation."""

    id: UUID
    title: str | None = None
    user_request: str | None = None
    theme: str | None = None
    player_count: int
    mystery_style: str
    has_accomplice: bool
    script_type: str
    additional_details: str | None = None
    host_name: str | None = None
    host_email: str | None = None
    needs_package_generation: bool
    has_complete_package: bool
    is_paid: bool
    display_status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
