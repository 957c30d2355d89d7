"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from mystery.schemas.conversation import ConversationCreate, ConversationOut
from mystery.schemas.generation import (
    PACKAGE_SECTIONS,
    GenerateRequest,
    GenerateResponse,
    GenerationOutcome,
    GenerationProgressUpdate,
    GenerationStatus,
)
from mystery.schemas.package import (
    CharacterAccessOut,
    CharacterAssignment,
    CharacterIn,
    CharacterOut,
    HostPackageOut,
    PackageContentIn,
    PackageContentOut,
)

__all__ = [
    # Conversation schemas
    "ConversationCreate",
    "ConversationOut",
    # Generation schemas
    "PACKAGE_SECTIONS",
    "GenerateRequest",
    "GenerateResponse",
    "GenerationOutcome",
    "GenerationProgressUpdate",
    "GenerationStatus",
    # Package schemas
    "CharacterAccessOut",
    "CharacterAssignment",
    "CharacterIn",
    "CharacterOut",
    "HostPackageOut",
    "PackageContentIn",
    "PackageContentOut",
]
