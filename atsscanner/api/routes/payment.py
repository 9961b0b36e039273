"""
Payment and membership endpoints.

Plans are public; everything else needs a bearer token.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from atsscanner.api.dependencies import get_billing_gateway
from atsscanner.core.auth_dependency import get_current_user_obj
from atsscanner.core.exceptions import (
    ATSScannerError,
    ConfigurationMissing,
    ExternalServiceFailure,
    NotFoundError,
    ValidationFailure,
)
from atsscanner.db.models.user import User
from atsscanner.db.session import get_db
from atsscanner.schemas.billing import (
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    MembershipPlanResponse,
    MembershipStatusResponse,
    MessageResponse,
    PaymentIntentResponse,
    PaymentMethodsResponse,
    PlanRequest,
    SubscriptionResponse,
)
from atsscanner.services import membership_service
from atsscanner.services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["Payment"])


def to_http_exception(error: ATSScannerError) -> HTTPException:
    """Map a domain error onto the HTTP status the client sees."""
    if isinstance(error, ValidationFailure):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, ExternalServiceFailure):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.message)
    if isinstance(error, ConfigurationMissing):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=error.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.message)


@router.get("/membership-plans", response_model=List[MembershipPlanResponse])
def membership_plans(db: Session = Depends(get_db)):
    """Plans currently for sale, cheapest first."""
    return membership_service.get_membership_plans(db)


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
def create_payment_intent(
    body: PlanRequest,
    user: User = Depends(get_current_user_obj),
    gateway: StripeGateway = Depends(get_billing_gateway),
    db: Session = Depends(get_db)
):
    try:
        return membership_service.create_payment_intent(db, user, body.plan_id, gateway)
    except ATSScannerError as e:
        logger.warning(f"Payment intent failed: user_id={user.id}, plan_id={body.plan_id}, error={e.message}")
        raise to_http_exception(e)


@router.post("/create-subscription", response_model=SubscriptionResponse)
def create_subscription(
    body: PlanRequest,
    user: User = Depends(get_current_user_obj),
    gateway: StripeGateway = Depends(get_billing_gateway),
    db: Session = Depends(get_db)
):
    try:
        return membership_service.start_subscription(db, user, body.plan_id, gateway)
    except ATSScannerError as e:
        logger.warning(f"Subscription failed: user_id={user.id}, plan_id={body.plan_id}, error={e.message}")
        raise to_http_exception(e)


@router.post("/confirm-payment", response_model=ConfirmPaymentResponse)
def confirm_payment(
    body: ConfirmPaymentRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    """Activate one month of membership after a one-time payment."""
    try:
        membership = membership_service.confirm_one_time_payment(db, user, body.plan_id)
    except ATSScannerError as e:
        logger.warning(f"Payment confirmation failed: user_id={user.id}, plan_id={body.plan_id}, error={e.message}")
        raise to_http_exception(e)

    logger.info(f"Payment confirmed: user_id={user.id}, payment_intent_id={body.payment_intent_id}")
    return {"membership_id": membership.id, "message": "Payment confirmed and membership activated"}


@router.get("/subscription-status", response_model=MembershipStatusResponse)
def subscription_status(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db)
):
    try:
        return membership_service.get_user_membership_status(db, user.id)
    except ATSScannerError as e:
        raise to_http_exception(e)


@router.post("/cancel-subscription", response_model=MessageResponse)
def cancel_subscription(
    user: User = Depends(get_current_user_obj),
    gateway: StripeGateway = Depends(get_billing_gateway),
    db: Session = Depends(get_db)
):
    """
    Cancel the caller's membership.

    Stripe is cancelled first. If that fails the membership stays active and
    the client gets 502 so it can offer a retry.
    """
    try:
        membership_service.cancel_membership(db, user.id, gateway)
    except ATSScannerError as e:
        logger.warning(f"Cancellation failed: user_id={user.id}, error={e.message}")
        raise to_http_exception(e)

    return {"message": "Subscription cancelled successfully"}


@router.get("/payment-methods", response_model=PaymentMethodsResponse)
def payment_methods(
    user: User = Depends(get_current_user_obj),
    gateway: StripeGateway = Depends(get_billing_gateway)
):
    try:
        methods = membership_service.list_payment_methods(user, gateway)
    except ATSScannerError as e:
        raise to_http_exception(e)
    return {"payment_methods": methods}
