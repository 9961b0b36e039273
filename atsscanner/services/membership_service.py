"""
Membership service: plan purchase, activation, cancellation and status.

Lifecycle of a membership row (one per user, never deleted):

    none -> active                (subscription or one-time payment)
    active -> inactive            (expiry seen on read, user cancel, Stripe event)
    inactive -> active            (new purchase; same row, new subscription ID)

A subscription that Stripe does not report as active yet (for example
``incomplete`` while a payment is pending) is recorded inactive; the
subscription webhooks switch it on once payment clears.

User cancellation talks to Stripe first. If Stripe fails, the local row is
not touched and the error propagates to the caller.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from atsscanner.core.exceptions import ExternalServiceFailure, NotFoundError, ValidationFailure
from atsscanner.core.plan_catalog import FREE_SCAN_LIMIT, UNLIMITED
from atsscanner.db.models.membership import Membership, MembershipType
from atsscanner.db.models.membership_plan import MembershipPlan
from atsscanner.db.models.user import User
from atsscanner.services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

MEMBERSHIP_PERIOD = relativedelta(months=1)

PLAN_DESCRIPTIONS: Dict[MembershipType, str] = {
    MembershipType.FREE: "ATS Scanner Free Plan",
    MembershipType.BASIC: (
        "ATS Scanner Basic Plan - Monthly Subscription (${price}/month) - Unlimited resume scans, "
        "AI analysis, ATS optimization, and advanced analytics dashboard. Recurring billing, cancel anytime."
    ),
    MembershipType.PREMIUM: (
        "ATS Scanner Premium Plan - Monthly Subscription (${price}/month) - Everything in Basic plus "
        "priority customer support and bulk resume upload processing. Recurring billing, cancel anytime."
    ),
    MembershipType.ENTERPRISE: (
        "ATS Scanner Enterprise Plan - Monthly Subscription (${price}/month) - Unlimited resume scans "
        "and AI analysis with ATS optimization for teams. Recurring billing, cancel anytime."
    ),
}


def describe_plan(plan: MembershipPlan) -> str:
    return PLAN_DESCRIPTIONS[MembershipType(plan.type)].format(price=f"{Decimal(plan.price):.2f}")


def get_membership_plans(db: Session) -> List[MembershipPlan]:
    """Plans currently for sale, cheapest first."""
    return db.query(MembershipPlan).filter(
        MembershipPlan.is_active.is_(True)
    ).order_by(MembershipPlan.price).all()


def get_purchasable_plan(db: Session, plan_id: int, require_price_id: bool = False) -> MembershipPlan:
    """
    Load a plan that can be bought.

    Raises:
        ValidationFailure: Unknown plan, plan not for sale, or (for
            subscriptions) no Stripe price configured
    """
    plan = db.query(MembershipPlan).filter(MembershipPlan.id == plan_id).first()
    if plan is None or not plan.is_active:
        raise ValidationFailure("Invalid membership plan")
    if plan.type == MembershipType.FREE:
        raise ValidationFailure("The Free plan cannot be purchased")
    if require_price_id and not plan.stripe_price_id:
        raise ValidationFailure("Invalid membership plan or missing Stripe price ID")
    return plan


def ensure_no_current_membership(user: User, now: Optional[datetime] = None) -> None:
    if user.membership is not None and user.membership.is_current(now):
        raise ValidationFailure("User already has an active subscription")


def activate_membership(
    db: Session,
    user: User,
    plan_type: MembershipType,
    subscription_id: Optional[str] = None,
    price_id: Optional[str] = None,
    now: Optional[datetime] = None,
    is_active: bool = True
) -> Membership:
    """
    Start a membership period of one month from now.

    Creates the row on first purchase. After a cancellation the same row is
    reused and takes the new subscription ID; events for the old subscription
    no longer match it.

    With ``is_active=False`` the row is recorded but grants nothing until a
    billing event activates it.

    Raises:
        ValidationFailure: If the user already has a current membership
    """
    now = now or datetime.utcnow()
    ensure_no_current_membership(user, now)

    membership = user.membership
    if membership is None:
        membership = Membership(user_id=user.id)
        user.membership = membership
        db.add(membership)
    elif membership.stripe_subscription_id:
        logger.info(
            f"Reactivating membership: user_id={user.id}, membership_id={membership.id}, "
            f"previous_subscription_id={membership.stripe_subscription_id}"
        )

    membership.type = plan_type
    membership.is_active = is_active
    membership.start_date = now
    membership.end_date = now + MEMBERSHIP_PERIOD
    membership.stripe_subscription_id = subscription_id
    membership.stripe_price_id = price_id
    membership.last_event_at = None
    membership.updated_at = now

    db.commit()
    db.refresh(membership)

    logger.info(
        f"Membership recorded: user_id={user.id}, type={MembershipType(plan_type).name}, "
        f"subscription_id={subscription_id}, active={is_active}, end_date={membership.end_date.isoformat()}"
    )
    return membership


def subscription_idempotency_key(user: User, customer_id: str, price_id: str) -> str:
    """
    Idempotency key for one subscription purchase.

    Scoped by the membership row's last change. A retry of the same attempt
    reuses the key; a purchase after a cancellation or expiry gets a new one.
    """
    membership = user.membership
    if membership is None or membership.updated_at is None:
        attempt = "first"
    else:
        attempt = membership.updated_at.strftime("%Y%m%d%H%M%S%f")
    return f"subscription-{customer_id}-{price_id}-{attempt}"


def ensure_stripe_customer(db: Session, user: User, gateway: StripeGateway) -> str:
    """Return the user's Stripe customer ID, creating the customer if needed."""
    if user.stripe_customer_id:
        return user.stripe_customer_id

    user.stripe_customer_id = gateway.create_customer(user.email, user.username, user.id)
    db.commit()
    return user.stripe_customer_id


def start_subscription(
    db: Session,
    user: User,
    plan_id: int,
    gateway: StripeGateway,
    now: Optional[datetime] = None
) -> Dict:
    """
    Subscribe a user to a plan through Stripe and record the membership.

    The membership is active only if Stripe reports the subscription active.

    Returns:
        Dictionary with subscription_id, membership_id and status
    """
    plan = get_purchasable_plan(db, plan_id, require_price_id=True)
    ensure_no_current_membership(user, now)

    customer_id = ensure_stripe_customer(db, user, gateway)
    subscription = gateway.create_subscription(
        customer_id=customer_id,
        price_id=plan.stripe_price_id,
        metadata={
            "user_id": str(user.id),
            "plan_name": plan.name,
            "plan_type": "recurring_monthly",
            "user_email": user.email,
        },
        idempotency_key=subscription_idempotency_key(user, customer_id, plan.stripe_price_id),
        description=describe_plan(plan),
    )

    is_active = subscription["status"] == "active"
    if not is_active:
        logger.info(
            f"Subscription not active yet: user_id={user.id}, subscription_id={subscription['id']}, "
            f"status={subscription['status']}"
        )

    membership = activate_membership(
        db,
        user,
        plan.type,
        subscription_id=subscription["id"],
        price_id=plan.stripe_price_id,
        now=now,
        is_active=is_active,
    )
    return {
        "subscription_id": subscription["id"],
        "membership_id": membership.id,
        "status": subscription["status"],
    }


def create_payment_intent(db: Session, user: User, plan_id: int, gateway: StripeGateway) -> Dict:
    """Start a one-time payment for a plan."""
    plan = get_purchasable_plan(db, plan_id)
    amount_cents = int((Decimal(plan.price) * 100).to_integral_value())
    intent = gateway.create_payment_intent(user.id, amount_cents)
    return {
        "client_secret": intent["client_secret"],
        "payment_intent_id": intent["id"],
        "plan_id": plan.id,
        "amount": Decimal(plan.price),
    }


def confirm_one_time_payment(
    db: Session,
    user: User,
    plan_id: int,
    now: Optional[datetime] = None
) -> Membership:
    """
    Grant one month of access after a confirmed one-time payment.

    The user's free-tier scan count starts over.
    """
    plan = get_purchasable_plan(db, plan_id)
    ensure_no_current_membership(user, now)
    user.scan_count = 0
    return activate_membership(db, user, plan.type, now=now)


def cancel_membership(
    db: Session,
    user_id: int,
    gateway: StripeGateway,
    now: Optional[datetime] = None
) -> Membership:
    """
    Cancel a user's active membership.

    Raises:
        NotFoundError: No active membership
        ExternalServiceFailure: Stripe could not cancel; local state unchanged
    """
    now = now or datetime.utcnow()
    membership = db.query(Membership).filter(
        Membership.user_id == user_id,
        Membership.is_active.is_(True)
    ).first()

    if membership is None:
        raise NotFoundError("No active subscription found")

    if membership.stripe_subscription_id:
        if not gateway.cancel_subscription(membership.stripe_subscription_id):
            logger.error(
                f"Stripe did not cancel subscription: user_id={user_id}, "
                f"subscription_id={membership.stripe_subscription_id}"
            )
            raise ExternalServiceFailure("Failed to cancel subscription with Stripe")

    membership.is_active = False
    membership.end_date = now
    membership.updated_at = now
    db.commit()
    db.refresh(membership)

    logger.info(
        f"Membership cancelled by user: user_id={user_id}, membership_id={membership.id}, "
        f"subscription_id={membership.stripe_subscription_id}"
    )
    return membership


def get_user_membership_status(db: Session, user_id: int, now: Optional[datetime] = None) -> Dict:
    """
    Membership status report for a user.

    Raises:
        NotFoundError: Unknown user
    """
    now = now or datetime.utcnow()
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User not found")

    membership = user.membership
    status = {
        "user_id": user.id,
        "scan_count": user.scan_count,
        "last_scan_date": user.last_scan_date,
        "has_active_membership": False,
        "membership_type": MembershipType.FREE,
        "start_date": None,
        "end_date": None,
        "remaining_scans": max(0, FREE_SCAN_LIMIT - user.scan_count),
    }

    if membership is not None and membership.is_current(now):
        status.update({
            "has_active_membership": True,
            "membership_type": membership.type,
            "start_date": membership.start_date,
            "end_date": membership.end_date,
            "remaining_scans": UNLIMITED,
        })

    return status


def list_payment_methods(user: User, gateway: StripeGateway) -> List[Dict]:
    if not user.stripe_customer_id:
        return []
    return gateway.list_payment_methods(user.stripe_customer_id)
