"""
Stripe webhook verification and event handlers.

Handlers only ever set fields to the latest value reported by Stripe, so a
duplicate delivery leaves the membership unchanged. Each applied event stamps
the membership with the event's ``created`` time; events older than the last
applied one are ignored, so late deliveries cannot undo newer state.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

import stripe
from sqlalchemy.orm import Session

from atsscanner.core.exceptions import ConfigurationMissing, SignatureInvalid, ValidationFailure
from atsscanner.db.models.membership import Membership

logger = logging.getLogger(__name__)

SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
PAYMENT_FAILED = "invoice.payment_failed"

DEFAULT_TOLERANCE_SECONDS = 300


def _from_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def _period_end(subscription: Dict) -> Optional[datetime]:
    """current_period_end from the subscription, or from its first item on newer API versions."""
    if subscription.get("current_period_end"):
        return _from_timestamp(subscription["current_period_end"])
    items = (subscription.get("items") or {}).get("data") or []
    if items and items[0].get("current_period_end"):
        return _from_timestamp(items[0]["current_period_end"])
    return None


class BillingEventReconciler:
    """
    Verifies Stripe webhook payloads and applies them to memberships.

    Args:
        webhook_secret: Stripe endpoint signing secret (whsec_...)
        tolerance: Maximum accepted signature age in seconds
    """

    def __init__(self, webhook_secret: Optional[str], tolerance: int = DEFAULT_TOLERANCE_SECONDS):
        self._webhook_secret = webhook_secret
        self._tolerance = tolerance
        self._handlers: Dict[str, Callable[[Session, Dict, datetime], Optional[Membership]]] = {
            SUBSCRIPTION_CREATED: self.handle_subscription_created,
            SUBSCRIPTION_UPDATED: self.handle_subscription_updated,
            SUBSCRIPTION_DELETED: self.handle_subscription_deleted,
            PAYMENT_SUCCEEDED: self.handle_payment_succeeded,
            PAYMENT_FAILED: self.handle_payment_failed,
        }

    def verify(self, payload: bytes, signature_header: Optional[str]) -> Dict:
        """
        Verify the Stripe-Signature header and parse the event.

        Raises:
            ConfigurationMissing: No webhook secret configured
            SignatureInvalid: Missing header or signature mismatch
            ValidationFailure: Body is not a JSON event
        """
        if not self._webhook_secret:
            logger.warning("Stripe webhook secret not configured")
            raise ConfigurationMissing("Webhook secret not configured")

        if not signature_header:
            logger.warning("Stripe webhook received without signature header")
            raise SignatureInvalid("Missing Stripe-Signature header")

        try:
            payload_text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError as e:
            raise ValidationFailure("Invalid webhook payload") from e

        try:
            stripe.WebhookSignature.verify_header(
                payload_text, signature_header, self._webhook_secret, self._tolerance
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise SignatureInvalid(f"Invalid signature: {e}") from e

        try:
            event = json.loads(payload_text)
        except ValueError as e:
            logger.warning(f"Invalid webhook payload: {e}")
            raise ValidationFailure("Invalid webhook payload") from e

        if not isinstance(event, dict) or "type" not in event:
            raise ValidationFailure("Invalid webhook payload")

        logger.info(f"Verified webhook event: {event['type']}, id={event.get('id')}")
        return event

    def apply(self, db: Session, event: Dict, now: Optional[datetime] = None) -> Optional[Membership]:
        """
        Apply a verified event. Unknown event types are logged and ignored.

        Returns:
            The membership that was changed, if any
        """
        now = now or datetime.utcnow()
        event_type = event.get("type")
        handler = self._handlers.get(event_type)

        if handler is None:
            logger.info(f"Unhandled webhook event: {event_type}")
            return None

        return handler(db, event, now)

    @staticmethod
    def _event_object(event: Dict) -> Dict:
        return (event.get("data") or {}).get("object") or {}

    @staticmethod
    def _is_stale(membership: Membership, event_at: Optional[datetime]) -> bool:
        return (
            event_at is not None
            and membership.last_event_at is not None
            and event_at < membership.last_event_at
        )

    def _set_status(
        self,
        db: Session,
        membership: Membership,
        event: Dict,
        now: datetime,
        is_active: bool,
        end_date: Optional[datetime] = None
    ) -> Optional[Membership]:
        event_at = _from_timestamp(event.get("created"))
        if self._is_stale(membership, event_at):
            logger.info(
                f"Ignoring out-of-order event {event.get('type')} id={event.get('id')} "
                f"for membership {membership.id}: event_at={event_at}, last_event_at={membership.last_event_at}"
            )
            return None

        membership.is_active = is_active
        if end_date is not None:
            membership.end_date = end_date
        if event_at is not None:
            membership.last_event_at = event_at
        membership.updated_at = now
        db.commit()
        return membership

    def handle_subscription_created(self, db: Session, event: Dict, now: datetime) -> Optional[Membership]:
        subscription = self._event_object(event)
        user_id_str = (subscription.get("metadata") or {}).get("user_id")
        if not user_id_str:
            logger.info(f"{SUBSCRIPTION_CREATED}: no user_id metadata on subscription {subscription.get('id')}")
            return None

        try:
            user_id = int(user_id_str)
        except ValueError:
            logger.warning(f"{SUBSCRIPTION_CREATED}: invalid user_id metadata {user_id_str!r}")
            return None

        membership = db.query(Membership).filter(
            Membership.user_id == user_id,
            Membership.stripe_subscription_id == subscription.get("id")
        ).first()
        if membership is None:
            logger.info(
                f"{SUBSCRIPTION_CREATED}: no membership for user_id={user_id}, "
                f"subscription_id={subscription.get('id')}"
            )
            return None

        is_active = subscription.get("status") == "active"
        updated = self._set_status(db, membership, event, now, is_active, end_date=_period_end(subscription))
        if updated is not None:
            logger.info(f"Updated membership {membership.id} for subscription created: active={is_active}")
        return updated

    def handle_subscription_updated(self, db: Session, event: Dict, now: datetime) -> Optional[Membership]:
        subscription = self._event_object(event)
        membership = self._find_by_subscription(db, subscription.get("id"), SUBSCRIPTION_UPDATED)
        if membership is None:
            return None

        is_active = subscription.get("status") == "active"
        end_date = _period_end(subscription) if is_active else None
        updated = self._set_status(db, membership, event, now, is_active, end_date=end_date)
        if updated is not None:
            logger.info(
                f"Updated membership {membership.id} for subscription updated: "
                f"status={subscription.get('status')}, active={is_active}"
            )
        return updated

    def handle_subscription_deleted(self, db: Session, event: Dict, now: datetime) -> Optional[Membership]:
        subscription = self._event_object(event)
        membership = self._find_by_subscription(db, subscription.get("id"), SUBSCRIPTION_DELETED)
        if membership is None:
            return None

        already_ended = not membership.is_active and membership.end_date is not None
        end_date = None if already_ended else now
        updated = self._set_status(db, membership, event, now, False, end_date=end_date)
        if updated is not None:
            logger.info(f"Deactivated membership {membership.id} for subscription deleted")
        return updated

    def handle_payment_succeeded(self, db: Session, event: Dict, now: datetime) -> None:
        invoice = self._event_object(event)
        logger.info(
            f"Payment succeeded for invoice {invoice.get('id')}, subscription_id={invoice.get('subscription')}"
        )

    def handle_payment_failed(self, db: Session, event: Dict, now: datetime) -> None:
        invoice = self._event_object(event)
        logger.warning(
            f"Payment failed for invoice {invoice.get('id')}, subscription_id={invoice.get('subscription')}"
        )

    @staticmethod
    def _find_by_subscription(db: Session, subscription_id: Optional[str], event_type: str) -> Optional[Membership]:
        if not subscription_id:
            logger.warning(f"{event_type}: event has no subscription ID")
            return None

        membership = db.query(Membership).filter(
            Membership.stripe_subscription_id == subscription_id
        ).first()
        if membership is None:
            logger.info(f"{event_type}: no membership for subscription_id={subscription_id}")
        return membership
