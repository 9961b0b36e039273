"""
Shared FastAPI dependencies for billing collaborators.

Both are built from injected Settings so tests can override them with
app.dependency_overrides.
"""
from fastapi import Depends

from atsscanner.core.config import Settings, get_settings
from atsscanner.services.billing_events import BillingEventReconciler
from atsscanner.services.stripe_gateway import StripeGateway


def get_billing_gateway(settings: Settings = Depends(get_settings)) -> StripeGateway:
    return StripeGateway.from_settings(settings)


def get_event_reconciler(settings: Settings = Depends(get_settings)) -> BillingEventReconciler:
    return BillingEventReconciler(settings.STRIPE_WEBHOOK_SECRET)
