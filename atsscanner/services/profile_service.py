"""
Profile service: account details, subscription summary and login history.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from atsscanner.core.plan_catalog import UNLIMITED, get_plan_definition
from atsscanner.db.models.login_history import LoginHistory
from atsscanner.db.models.user import User
from atsscanner.db.models.user_profile import UserProfile

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "phone_number", "bio", "date_of_birth")
DEFAULT_HISTORY_LIMIT = 20


def record_login_attempt(
    db: Session,
    user: User,
    ip_address: str,
    user_agent: Optional[str],
    is_successful: bool,
    now: Optional[datetime] = None
) -> LoginHistory:
    entry = LoginHistory(
        user_id=user.id,
        login_time=now or datetime.utcnow(),
        ip_address=ip_address,
        user_agent=user_agent[:255] if user_agent else None,
        is_successful=is_successful,
    )
    db.add(entry)
    db.commit()

    if is_successful:
        logger.info(f"Login succeeded: user_id={user.id}, ip={ip_address}")
    else:
        logger.warning(f"Login failed: user_id={user.id}, ip={ip_address}")
    return entry


def get_login_history(db: Session, user_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> List[LoginHistory]:
    """Most recent login attempts first."""
    return db.query(LoginHistory).filter(
        LoginHistory.user_id == user_id
    ).order_by(desc(LoginHistory.login_time), desc(LoginHistory.id)).limit(limit).all()


def _subscription_summary(user: User, now: datetime) -> Optional[Dict]:
    membership = user.membership
    if membership is None:
        return None

    plan = get_plan_definition(membership.type)
    if plan.is_unlimited:
        remaining = UNLIMITED
    else:
        remaining = max(0, plan.scan_limit - user.scan_count)

    is_current = membership.is_current(now)
    return {
        "plan_name": plan.name,
        "type": membership.type,
        "price": plan.price,
        "scan_limit": plan.scan_limit,
        "scans_used": user.scan_count,
        "scans_remaining": remaining,
        "is_active": is_current,
        "start_date": membership.start_date,
        "end_date": membership.end_date,
        "stripe_subscription_id": membership.stripe_subscription_id,
        "can_cancel": is_current,
    }


def get_profile(user: User, now: Optional[datetime] = None) -> Dict:
    """
    Account details with the membership summary.

    The summary reflects read-time expiry: a lapsed membership shows
    ``is_active = False`` even before anything has written that to the row.
    """
    now = now or datetime.utcnow()
    profile = user.profile

    result = {
        "user_id": user.id,
        "username": user.username,
        "email": user.email,
        "last_updated": profile.last_updated if profile else user.created_at,
        "subscription": _subscription_summary(user, now),
        "scan_count": user.scan_count,
        "last_scan_date": user.last_scan_date,
    }
    for field in PROFILE_FIELDS:
        result[field] = getattr(profile, field) if profile else None
    return result


def update_profile(db: Session, user: User, changes: Dict, now: Optional[datetime] = None) -> Dict:
    """
    Overwrite the editable profile fields, creating the profile on first use.

    Fields missing from ``changes`` are cleared, as with a full replace.
    """
    now = now or datetime.utcnow()
    profile = user.profile
    if profile is None:
        profile = UserProfile(user_id=user.id)
        user.profile = profile
        db.add(profile)

    for field in PROFILE_FIELDS:
        setattr(profile, field, changes.get(field))
    profile.last_updated = now

    db.commit()
    db.refresh(user)
    logger.info(f"Profile updated: user_id={user.id}")
    return get_profile(user, now=now)
