"""Database module for the mystery package generator.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from mystery.db.engine import create_db_engine, get_engine
from mystery.db.models import (
    Base,
    Conversation,
    DisplayStatus,
    GenerationState,
    MysteryCharacter,
    MysteryPackage,
)
from mystery.db.session import get_db, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "transaction",
    # Base
    "Base",
    # Enums
    "GenerationState",
    "DisplayStatus",
    # Models
    "Conversation",
    "MysteryPackage",
    "MysteryCharacter",
]
