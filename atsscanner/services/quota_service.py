"""
Quota service: free-tier scan limits for anonymous and registered callers.

Anonymous callers are metered per IP address with a monthly lazy reset.
Registered users are metered on their account until they hold a current paid
membership, after which scans are unlimited and not counted.

Quota checks never raise. A missing user comes back as a denial so the caller
can render an upgrade or sign-in prompt.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from atsscanner.core.plan_catalog import FREE_SCAN_LIMIT, UNLIMITED
from atsscanner.db.models.membership import MembershipType
from atsscanner.db.models.usage import UsageTracking
from atsscanner.db.models.user import User

logger = logging.getLogger(__name__)

DEFAULT_ANONYMOUS_LIMIT = 3


@dataclass
class UsageLimitResult:
    """
    Outcome of a quota check.

    ``remaining_scans`` is the count left *after* the scan about to happen,
    or -1 for unlimited.
    """
    can_scan: bool
    remaining_scans: int
    is_first_time: bool = False
    has_paid_membership: bool = False
    error_message: Optional[str] = None


def _remaining_after_scan(limit: int, used: int) -> UsageLimitResult:
    remaining = limit - used
    return UsageLimitResult(
        can_scan=remaining > 0,
        remaining_scans=max(0, remaining - 1),
    )


def get_anonymous_usage(db: Session, ip_address: str) -> Optional[UsageTracking]:
    return db.query(UsageTracking).filter(UsageTracking.ip_address == ip_address).first()


def check_anonymous_limit(
    db: Session,
    ip_address: str,
    free_limit: int = DEFAULT_ANONYMOUS_LIMIT,
    now: Optional[datetime] = None
) -> UsageLimitResult:
    """
    Check whether an anonymous caller may scan.

    If the usage record's reset date has passed (strictly), the counter is
    zeroed and the reset date moved one month forward before deciding. That
    reset is committed immediately.

    Args:
        db: Database session
        ip_address: Caller's network address
        free_limit: Scans allowed per period
        now: Current time (UTC), defaults to utcnow

    Returns:
        UsageLimitResult with can_scan, remaining_scans and is_first_time
    """
    now = now or datetime.utcnow()
    usage = get_anonymous_usage(db, ip_address)

    if usage is None:
        return UsageLimitResult(
            can_scan=True,
            remaining_scans=free_limit - 1,
            is_first_time=True
        )

    if now > usage.reset_date:
        usage.scan_count = 0
        usage.reset_date = UsageTracking.next_reset_date(now)
        db.commit()
        logger.info(f"Anonymous usage reset: ip={ip_address}, next_reset={usage.reset_date.isoformat()}")

    result = _remaining_after_scan(free_limit, usage.scan_count)
    if not result.can_scan:
        logger.warning(f"Anonymous scan limit reached: ip={ip_address}, used={usage.scan_count}/{free_limit}")
    return result


def check_registered_limit(
    db: Session,
    user_id: int,
    now: Optional[datetime] = None
) -> UsageLimitResult:
    """
    Check whether a registered user may scan.

    A current paid membership allows unlimited scans. An active membership
    whose end date has passed is switched off here (and committed) before
    falling back to the free tier.
    """
    now = now or datetime.utcnow()
    user = db.query(User).filter(User.id == user_id).first()

    if user is None:
        logger.warning(f"Quota check for unknown user_id={user_id}")
        return UsageLimitResult(
            can_scan=False,
            remaining_scans=0,
            error_message="User not found"
        )

    membership = user.membership
    if membership is not None and membership.is_active:
        if membership.is_current(now):
            return UsageLimitResult(
                can_scan=True,
                remaining_scans=UNLIMITED,
                has_paid_membership=True
            )

        membership.is_active = False
        membership.updated_at = now
        db.commit()
        logger.info(
            f"Membership expired: user_id={user_id}, membership_id={membership.id}, "
            f"end_date={membership.end_date.isoformat()}"
        )

    result = _remaining_after_scan(FREE_SCAN_LIMIT, user.scan_count)
    if not result.can_scan:
        logger.warning(f"Free scan limit reached: user_id={user_id}, used={user.scan_count}/{FREE_SCAN_LIMIT}")
    return result


def record_anonymous_scan(db: Session, ip_address: str, now: Optional[datetime] = None) -> None:
    """
    Count one scan against an IP address, creating its usage record if needed.

    The increment is a single UPDATE so concurrent scans from the same address
    are not lost. If two requests race to create the first record, the loser
    hits the unique constraint and retries as an increment.
    """
    now = now or datetime.utcnow()

    if _increment_anonymous_usage(db, ip_address, now):
        db.commit()
        logger.debug(f"Anonymous scan recorded: ip={ip_address}")
        return

    db.add(UsageTracking(
        ip_address=ip_address,
        scan_count=1,
        first_scan_date=now,
        last_scan_date=now,
        reset_date=UsageTracking.next_reset_date(now)
    ))
    try:
        db.commit()
        logger.info(f"Anonymous usage record created: ip={ip_address}")
    except IntegrityError:
        db.rollback()
        _increment_anonymous_usage(db, ip_address, now)
        db.commit()
        logger.debug(f"Anonymous scan recorded after concurrent create: ip={ip_address}")


def _increment_anonymous_usage(db: Session, ip_address: str, now: datetime) -> bool:
    updated = db.query(UsageTracking).filter(
        UsageTracking.ip_address == ip_address
    ).update(
        {
            UsageTracking.scan_count: UsageTracking.scan_count + 1,
            UsageTracking.last_scan_date: now,
        },
        synchronize_session=False
    )
    return updated > 0


def record_registered_scan(db: Session, user_id: int, now: Optional[datetime] = None) -> None:
    """
    Record a scan for a registered user.

    The scan counter only moves when the user has no current paid membership.
    The last-scan timestamp is always updated.
    """
    now = now or datetime.utcnow()
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.warning(f"Scan recorded for unknown user_id={user_id}, ignoring")
        return

    metered = user.membership is None or not user.membership.is_current(now)
    values = {User.last_scan_date: now}
    if metered:
        values[User.scan_count] = User.scan_count + 1

    db.query(User).filter(User.id == user_id).update(values, synchronize_session=False)
    db.commit()

    logger.debug(f"Registered scan recorded: user_id={user_id}, metered={metered}")


def get_usage_status(
    db: Session,
    ip_address: str,
    user: Optional[User] = None,
    anonymous_limit: int = DEFAULT_ANONYMOUS_LIMIT,
    now: Optional[datetime] = None
) -> Dict:
    """
    Usage summary for GET /resume/usage-status.

    Works for both anonymous callers (by IP) and authenticated users.
    """
    now = now or datetime.utcnow()

    if user is not None:
        result = check_registered_limit(db, user.id, now=now)
        membership = user.membership
        has_active = membership is not None and membership.is_current(now)
        return {
            "can_scan": result.can_scan,
            "remaining_scans": result.remaining_scans,
            "has_active_membership": has_active,
            "membership_type": membership.type if has_active else MembershipType.FREE,
            "scan_count": user.scan_count,
            "is_first_time": False,
            "has_registered_account": True,
        }

    result = check_anonymous_limit(db, ip_address, free_limit=anonymous_limit, now=now)
    usage = get_anonymous_usage(db, ip_address)
    return {
        "can_scan": result.can_scan,
        "remaining_scans": result.remaining_scans,
        "has_active_membership": False,
        "membership_type": MembershipType.FREE,
        "scan_count": usage.scan_count if usage else 0,
        "is_first_time": result.is_first_time,
        "has_registered_account": False,
    }
