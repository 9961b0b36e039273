"""
Profile endpoints for the authenticated user.
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from atsscanner.core.auth_dependency import get_current_user_obj
from atsscanner.db.models.user import User
from atsscanner.db.session import get_db
from atsscanner.schemas.profile import LoginHistoryResponse, ProfileResponse, UpdateProfileRequest
from atsscanner.services import profile_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profile", tags=["Profile"])


@router.get("", response_model=ProfileResponse)
def get_profile(user: User = Depends(get_current_user_obj)):
    """Account details, membership summary and scan usage."""
    return profile_service.get_profile(user)


@router.put("", response_model=ProfileResponse)
def update_profile(
    body: UpdateProfileRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    return profile_service.update_profile(db, user, body.model_dump())


@router.get("/login-history", response_model=LoginHistoryResponse)
def login_history(
    limit: int = Query(profile_service.DEFAULT_HISTORY_LIMIT, ge=1, le=100, description="Max entries"),
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    """Recent login attempts, newest first."""
    return {"entries": profile_service.get_login_history(db, user.id, limit=limit)}
