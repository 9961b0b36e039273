"""
Unit tests for the quota service.
Tests anonymous and registered scan limits, lazy resets and scan recording.
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from atsscanner.db.models.membership import Membership, MembershipType
from atsscanner.db.models.usage import UsageTracking
from atsscanner.db.models.user import User
from atsscanner.services import quota_service
from atsscanner.services.quota_service import (
    check_anonymous_limit,
    check_registered_limit,
    get_anonymous_usage,
    get_usage_status,
    record_anonymous_scan,
    record_registered_scan,
)

IP = "10.0.0.1"


@pytest.fixture
def active_membership(db, test_user):
    """Paid membership valid for another 10 days."""
    membership = Membership(
        user_id=test_user.id,
        type=MembershipType.PREMIUM,
        is_active=True,
        start_date=datetime.utcnow() - timedelta(days=20),
        end_date=datetime.utcnow() + timedelta(days=10),
        stripe_subscription_id="sub_active",
    )
    db.add(membership)
    db.commit()
    return membership


@pytest.fixture
def expired_membership(db, test_user):
    """Membership still flagged active but ended yesterday."""
    membership = Membership(
        user_id=test_user.id,
        type=MembershipType.BASIC,
        is_active=True,
        start_date=datetime.utcnow() - timedelta(days=31),
        end_date=datetime.utcnow() - timedelta(days=1),
        stripe_subscription_id="sub_expired",
    )
    db.add(membership)
    db.commit()
    return membership


def test_first_anonymous_check_allows_scan(db):
    result = check_anonymous_limit(db, IP, free_limit=3)

    assert result.can_scan is True
    assert result.remaining_scans == 2
    assert result.is_first_time is True
    # A check alone never creates the record
    assert get_anonymous_usage(db, IP) is None


def test_first_anonymous_check_respects_custom_limit(db):
    result = check_anonymous_limit(db, "192.168.1.20", free_limit=5)
    assert result.remaining_scans == 4


def test_anonymous_scan_sequence_until_limit(db, now):
    """Fresh address, free limit 3: three scans allowed, the fourth denied."""
    expected = [(True, 2), (True, 1), (True, 0)]

    for count, (can_scan, remaining) in enumerate(expected, start=1):
        result = check_anonymous_limit(db, IP, free_limit=3, now=now)
        assert result.can_scan is can_scan
        assert result.remaining_scans == remaining

        record_anonymous_scan(db, IP, now=now)
        db.expire_all()
        assert get_anonymous_usage(db, IP).scan_count == count

    result = check_anonymous_limit(db, IP, free_limit=3, now=now)
    assert result.can_scan is False
    assert result.remaining_scans == 0
    assert result.is_first_time is False


def test_record_anonymous_scan_creates_record(db, now):
    record_anonymous_scan(db, IP, now=now)

    usage = get_anonymous_usage(db, IP)
    assert usage.scan_count == 1
    assert usage.first_scan_date == now
    assert usage.last_scan_date == now
    assert usage.reset_date == datetime(2026, 4, 15, 12, 0, 0)


def test_record_anonymous_scan_increments_without_moving_reset_date(db, now):
    record_anonymous_scan(db, IP, now=now)
    later = now + timedelta(days=3)
    record_anonymous_scan(db, IP, now=later)

    db.expire_all()
    usage = get_anonymous_usage(db, IP)
    assert usage.scan_count == 2
    assert usage.first_scan_date == now
    assert usage.last_scan_date == later
    assert usage.reset_date == datetime(2026, 4, 15, 12, 0, 0)


def test_anonymous_records_are_per_address(db, now):
    record_anonymous_scan(db, IP, now=now)
    record_anonymous_scan(db, "10.0.0.2", now=now)

    assert db.query(UsageTracking).count() == 2


def _exhausted_usage(db, reset_date):
    usage = UsageTracking(
        ip_address=IP,
        scan_count=3,
        first_scan_date=reset_date - timedelta(days=31),
        last_scan_date=reset_date - timedelta(days=1),
        reset_date=reset_date,
    )
    db.add(usage)
    db.commit()
    return usage


def test_reset_date_exactly_now_does_not_reset(db, now):
    _exhausted_usage(db, reset_date=now)

    result = check_anonymous_limit(db, IP, free_limit=3, now=now)

    assert result.can_scan is False
    db.expire_all()
    usage = get_anonymous_usage(db, IP)
    assert usage.scan_count == 3
    assert usage.reset_date == now


def test_reset_date_just_passed_resets_counter(db, now):
    _exhausted_usage(db, reset_date=now)
    just_after = now + timedelta(seconds=1)

    result = check_anonymous_limit(db, IP, free_limit=3, now=just_after)

    assert result.can_scan is True
    assert result.remaining_scans == 2
    db.expire_all()
    usage = get_anonymous_usage(db, IP)
    assert usage.scan_count == 0
    assert usage.reset_date == just_after.replace(month=4)


def test_registered_user_not_found_is_denial(db):
    result = check_registered_limit(db, 9999)

    assert result.can_scan is False
    assert result.remaining_scans == 0
    assert result.error_message == "User not found"


def test_registered_free_user_under_limit(db, test_user):
    result = check_registered_limit(db, test_user.id)

    assert result.can_scan is True
    assert result.remaining_scans == 2
    assert result.has_paid_membership is False


def test_registered_user_at_limit_is_denied(db, test_user):
    test_user.scan_count = 3
    db.commit()

    result = check_registered_limit(db, test_user.id)

    assert result.can_scan is False
    assert result.remaining_scans == 0


def test_registered_user_with_active_membership_is_unlimited(db, test_user, active_membership):
    test_user.scan_count = 50
    db.commit()

    result = check_registered_limit(db, test_user.id)

    assert result.can_scan is True
    assert result.remaining_scans == -1
    assert result.has_paid_membership is True


def test_membership_without_end_date_is_unlimited(db, test_user, active_membership):
    active_membership.end_date = None
    db.commit()

    result = check_registered_limit(db, test_user.id)
    assert result.has_paid_membership is True


def test_expired_membership_is_deactivated_on_check(db, test_user, expired_membership):
    test_user.scan_count = 1
    db.commit()

    result = check_registered_limit(db, test_user.id)

    assert result.has_paid_membership is False
    assert result.can_scan is True
    assert result.remaining_scans == 1
    db.expire_all()
    assert db.query(Membership).filter(Membership.id == expired_membership.id).first().is_active is False


def test_record_registered_scan_counts_free_user(db, test_user, now):
    record_registered_scan(db, test_user.id, now=now)

    db.expire_all()
    user = db.query(User).filter(User.id == test_user.id).first()
    assert user.scan_count == 1
    assert user.last_scan_date == now


def test_record_registered_scan_skips_count_for_paid_member(db, test_user, active_membership):
    check = check_registered_limit(db, test_user.id)
    assert check.has_paid_membership is True

    record_registered_scan(db, test_user.id)

    db.expire_all()
    user = db.query(User).filter(User.id == test_user.id).first()
    assert user.scan_count == 0
    assert user.last_scan_date is not None


def test_record_registered_scan_counts_when_membership_is_stale(db, test_user, expired_membership):
    record_registered_scan(db, test_user.id)

    db.expire_all()
    assert db.query(User).filter(User.id == test_user.id).first().scan_count == 1


def test_record_registered_scan_unknown_user_is_noop(db):
    record_registered_scan(db, 9999)
    assert db.query(User).count() == 0


def test_usage_status_anonymous(db, now):
    record_anonymous_scan(db, IP, now=now)

    status = get_usage_status(db, IP, now=now)

    assert status == {
        "can_scan": True,
        "remaining_scans": 1,
        "has_active_membership": False,
        "membership_type": MembershipType.FREE,
        "scan_count": 1,
        "is_first_time": False,
        "has_registered_account": False,
    }


def test_usage_status_paid_member(db, test_user, active_membership):
    status = get_usage_status(db, IP, user=test_user)

    assert status["can_scan"] is True
    assert status["remaining_scans"] == -1
    assert status["has_active_membership"] is True
    assert status["membership_type"] == MembershipType.PREMIUM
    assert status["has_registered_account"] is True


def test_record_anonymous_scan_concurrent_first_insert(db, now, monkeypatch):
    """Another request creates the record between our UPDATE and INSERT."""
    competitor = sessionmaker(bind=db.get_bind())
    increment = quota_service._increment_anonymous_usage
    calls = []

    def racing_increment(session, ip_address, scan_time):
        calls.append(ip_address)
        if len(calls) == 1:
            other = competitor()
            other.add(UsageTracking(
                ip_address=ip_address,
                scan_count=1,
                first_scan_date=scan_time,
                last_scan_date=scan_time,
                reset_date=UsageTracking.next_reset_date(scan_time),
            ))
            other.commit()
            other.close()
            return False
        return increment(session, ip_address, scan_time)

    monkeypatch.setattr(quota_service, "_increment_anonymous_usage", racing_increment)

    record_anonymous_scan(db, IP, now=now)

    assert len(calls) == 2
    db.expire_all()
    rows = db.query(UsageTracking).filter(UsageTracking.ip_address == IP).all()
    assert len(rows) == 1
    assert rows[0].scan_count == 2
