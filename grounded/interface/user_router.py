"""Sign-in and profile endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Depends

from grounded.core.db_client import DBClient
from grounded.core.errors import NotFoundError
from grounded.domain.user import AuthenticatedUser, User
from grounded.interface.dependencies import get_current_user, get_db
from grounded.services import user_service


logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])
router = APIRouter(prefix="/api/users", tags=["users"])


async def _sync_profile(db: DBClient, user: AuthenticatedUser) -> User:
    return await user_service.upsert_user(
        db=db,
        firebase_uid=user.uid,
        email=user.email,
        display_name=user.name or user.email,
    )


@auth_router.post("/google")
async def google_sign_in(
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    """Register or refresh the caller's profile after a Google sign-in."""
    profile = await _sync_profile(db, user)
    logger.info("google_auth_succeeded", extra={"user_id": user.uid, "email": user.email})
    return {
        "success": True,
        "message": "Authentication successful",
        "user": {**profile.model_dump(), "uid": user.uid},
    }


@router.post("")
async def create_or_update_user(
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> User:
    """Idempotently create or update the caller's profile."""
    return await _sync_profile(db, user)


@router.get("/me")
async def get_current_profile(
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> User:
    profile = await user_service.get_user_by_uid(db=db, firebase_uid=user.uid)
    if profile is None:
        raise NotFoundError("User profile not found")
    return profile
