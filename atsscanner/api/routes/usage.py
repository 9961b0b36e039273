"""
Usage endpoints for resume scans.

Work for anonymous callers (metered by IP address) and authenticated users.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from atsscanner.core.auth_dependency import get_optional_user
from atsscanner.core.config import Settings, get_settings
from atsscanner.core.network import get_client_ip
from atsscanner.core.scan_guard import require_scan_allowance
from atsscanner.db.models.user import User
from atsscanner.db.session import get_db
from atsscanner.schemas.usage import ScanLimitReachedResponse, ScanPermitResponse, UsageStatusResponse
from atsscanner.services.quota_service import (
    UsageLimitResult,
    get_usage_status,
    record_anonymous_scan,
    record_registered_scan,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/resume", tags=["Usage"])


@router.get("/usage-status", response_model=UsageStatusResponse)
def usage_status(
    request: Request,
    user: Optional[User] = Depends(get_optional_user),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db)
):
    """
    Current scan allowance for the caller.

    Authenticated callers get their account and membership state; anonymous
    callers are looked up by IP address.
    """
    ip_address = get_client_ip(request)
    return get_usage_status(
        db,
        ip_address,
        user=user,
        anonymous_limit=settings.ANONYMOUS_FREE_SCAN_LIMIT
    )


@router.post(
    "/scan-permit",
    response_model=ScanPermitResponse,
    responses={status.HTTP_402_PAYMENT_REQUIRED: {"model": ScanLimitReachedResponse}},
)
def scan_permit(result: UsageLimitResult = Depends(require_scan_allowance)):
    """Ask before scanning. Returns 402 with code SCAN_LIMIT_REACHED when out of free scans."""
    return {
        "can_scan": result.can_scan,
        "remaining_scans": result.remaining_scans,
        "has_paid_membership": result.has_paid_membership,
    }


@router.post("/record-scan", status_code=status.HTTP_204_NO_CONTENT)
def record_scan(
    request: Request,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    """Count a completed scan. Called after a successful upload."""
    if user is not None:
        record_registered_scan(db, user.id)
    else:
        record_anonymous_scan(db, get_client_ip(request))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
