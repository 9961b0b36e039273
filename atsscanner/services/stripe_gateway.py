"""
Stripe gateway: the billing-provider operations the application consumes.

Every Stripe SDK error is wrapped in ExternalServiceFailure carrying the
provider's message. Results are returned as plain values so callers (and
test doubles) do not depend on Stripe object types.
"""
import logging
from typing import Dict, List, Optional

import stripe

from atsscanner.core.config import Settings
from atsscanner.core.exceptions import ConfigurationMissing, ExternalServiceFailure

logger = logging.getLogger(__name__)


class StripeGateway:
    """Thin wrapper over the Stripe SDK using an injected API key."""

    def __init__(self, api_key: Optional[str]):
        self._api_key = api_key

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        return cls(settings.STRIPE_SECRET_KEY)

    def _require_key(self) -> str:
        if not self._api_key:
            raise ConfigurationMissing("Stripe not configured - STRIPE_SECRET_KEY required")
        return self._api_key

    def create_customer(self, email: str, name: str, user_id: int) -> str:
        """Create a Stripe customer and return its ID."""
        api_key = self._require_key()
        try:
            customer = stripe.Customer.create(
                api_key=api_key,
                email=email,
                name=name,
                description=f"ATS Scanner customer for {email}",
                metadata={"user_id": str(user_id)},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating customer for user_id={user_id}: {e}")
            raise ExternalServiceFailure(f"Failed to create customer: {e}") from e

        logger.info(f"Created Stripe customer: customer_id={customer.id}, user_id={user_id}")
        return customer.id

    def create_payment_intent(self, user_id: int, amount_cents: int, currency: str = "usd") -> Dict:
        """
        Create a payment intent for a one-time plan purchase.

        Returns:
            Dictionary with 'id' and 'client_secret'
        """
        api_key = self._require_key()
        try:
            intent = stripe.PaymentIntent.create(
                api_key=api_key,
                amount=amount_cents,
                currency=currency,
                metadata={"user_id": str(user_id)},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent for user_id={user_id}: {e}")
            raise ExternalServiceFailure(f"Failed to create payment intent: {e}") from e

        logger.info(f"Created payment intent: payment_intent_id={intent.id}, user_id={user_id}")
        return {"id": intent.id, "client_secret": intent.client_secret}

    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: Dict[str, str],
        idempotency_key: str,
        description: Optional[str] = None
    ) -> Dict:
        """
        Create a recurring subscription.

        ``idempotency_key`` must identify one purchase attempt: a retried
        request reuses it, a new purchase must not.

        Returns:
            Dictionary with 'id' and 'status'
        """
        api_key = self._require_key()
        try:
            subscription = stripe.Subscription.create(
                api_key=api_key,
                idempotency_key=idempotency_key,
                customer=customer_id,
                items=[{"price": price_id}],
                metadata=metadata,
                description=description,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating subscription for customer_id={customer_id}: {e}")
            raise ExternalServiceFailure(f"Failed to create subscription: {e}") from e

        logger.info(
            f"Created subscription: subscription_id={subscription.id}, "
            f"customer_id={customer_id}, status={subscription.status}"
        )
        return {"id": subscription.id, "status": subscription.status}

    def cancel_subscription(self, subscription_id: str) -> bool:
        """
        Cancel a subscription immediately.

        Returns:
            True if Stripe reports the subscription as canceled
        """
        api_key = self._require_key()
        try:
            subscription = stripe.Subscription.cancel(subscription_id, api_key=api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe error canceling subscription_id={subscription_id}: {e}")
            raise ExternalServiceFailure(f"Failed to cancel subscription: {e}") from e

        logger.info(f"Canceled subscription: subscription_id={subscription_id}, status={subscription.status}")
        return subscription.status == "canceled"

    def list_payment_methods(self, customer_id: str) -> List[Dict]:
        """Card payment methods on file for a customer."""
        api_key = self._require_key()
        try:
            methods = stripe.PaymentMethod.list(api_key=api_key, customer=customer_id, type="card")
        except stripe.StripeError as e:
            logger.error(f"Stripe error listing payment methods for customer_id={customer_id}: {e}")
            raise ExternalServiceFailure(f"Failed to list payment methods: {e}") from e

        return [
            {
                "id": method.id,
                "brand": method.card.brand,
                "last4": method.card.last4,
                "exp_month": method.card.exp_month,
                "exp_year": method.card.exp_year,
            }
            for method in methods.data
        ]
