"""Public access-token routes.

Unauthenticated, role-scoped reads keyed by opaque access tokens:
- /access/host/{token}: host guide, detective kit and their fields
- /access/character/{token}: one character's dossier and guide

Unknown tokens return 404 E_ACCESS_TOKEN_INVALID.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mystery.api.deps import get_db
from mystery.responses import success_response
from mystery.services import packages as packages_service

router = APIRouter(prefix="/access")


@router.get("/host/{token}")
def get_host_access(
    token: str,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Host view of a package."""
    result = packages_service.get_host_package_by_token(db, token)
    return success_response(result.model_dump(mode="json"))


@router.get("/character/{token}")
def get_character_access(
    token: str,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Guest view of one character."""
    result = packages_service.get_character_by_token(db, token)
    return success_response(result.model_dump(mode="json"))
