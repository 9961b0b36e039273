"""
Scan limit enforcement dependency.

require_scan_allowance() resolves the caller (bearer token or IP address),
runs the quota check and raises 402 with a structured payload when the free
limit is used up.
"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from atsscanner.core.auth_dependency import get_optional_user
from atsscanner.core.config import Settings, get_settings
from atsscanner.core.network import get_client_ip
from atsscanner.db.models.user import User
from atsscanner.db.session import get_db
from atsscanner.services.quota_service import (
    UsageLimitResult,
    check_anonymous_limit,
    check_registered_limit,
)

logger = logging.getLogger(__name__)

SCAN_LIMIT_REACHED = "SCAN_LIMIT_REACHED"


def require_scan_allowance(
    request: Request,
    user: Optional[User] = Depends(get_optional_user),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db)
) -> UsageLimitResult:
    """
    Dependency that allows a scan or raises 402.

    Returns:
        The UsageLimitResult of the permitted check

    Raises:
        HTTPException 402: Scan limit reached
    """
    if user is not None:
        result = check_registered_limit(db, user.id)
        registered = True
    else:
        ip_address = get_client_ip(request)
        result = check_anonymous_limit(db, ip_address, free_limit=settings.ANONYMOUS_FREE_SCAN_LIMIT)
        registered = False

    if result.can_scan:
        return result

    raise HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail={
            "detail": (
                "You have used all your free scans. Upgrade to a paid plan for unlimited scans."
                if registered else
                "You have used all your free scans. Create an account or upgrade for more."
            ),
            "code": SCAN_LIMIT_REACHED,
            "remaining_scans": 0,
            "has_registered_account": registered,
            "error": result.error_message,
        }
    )
