"""
Integration tests for POST /webhook/stripe.
"""
import asyncio
import json
from datetime import datetime, timedelta

import pytest

from atsscanner.api.dependencies import get_event_reconciler
from atsscanner.core.config import Settings, get_settings
from atsscanner.db.models.membership import Membership, MembershipType
from atsscanner.main import app
from atsscanner.services.billing_events import BillingEventReconciler


@pytest.fixture
def membership(db, test_user):
    membership = Membership(
        user_id=test_user.id,
        type=MembershipType.BASIC,
        is_active=True,
        start_date=datetime.utcnow(),
        end_date=datetime.utcnow() + timedelta(days=30),
        stripe_subscription_id="sub_123",
    )
    db.add(membership)
    db.commit()
    return membership


def _event(event_type, obj):
    return json.dumps({
        "id": "evt_test",
        "object": "event",
        "type": event_type,
        "created": 1767225600,
        "data": {"object": obj},
    })


def _post(client, payload, signature):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return client.post("/webhook/stripe", content=payload, headers=headers)


def test_subscription_deleted_deactivates_membership(client, db, membership, sign_payload):
    payload = _event("customer.subscription.deleted", {"id": "sub_123", "status": "canceled"})

    response = _post(client, payload, sign_payload(payload))

    assert response.status_code == 200
    assert response.json() == {"status": "success"}
    db.expire_all()
    stored = db.query(Membership).first()
    assert stored.is_active is False
    assert stored.end_date is not None


def test_unknown_event_type_is_accepted(client, sign_payload):
    payload = _event("charge.refunded", {"id": "ch_1"})

    response = _post(client, payload, sign_payload(payload))

    assert response.status_code == 200


def test_bad_signature_is_400(client, db, membership, sign_payload):
    payload = _event("customer.subscription.deleted", {"id": "sub_123", "status": "canceled"})

    response = _post(client, payload, sign_payload(payload, secret="whsec_wrong"))

    assert response.status_code == 400
    assert response.json()["error"] == "webhook_rejected"
    db.expire_all()
    assert db.query(Membership).first().is_active is True


def test_missing_signature_is_400(client):
    payload = _event("customer.subscription.deleted", {"id": "sub_123"})
    assert _post(client, payload, None).status_code == 400


def test_unconfigured_secret_is_400(client, sign_payload):
    app.dependency_overrides[get_settings] = lambda: Settings(SECRET_KEY="test-secret-key")
    payload = _event("customer.subscription.updated", {"id": "sub_123", "status": "active"})

    response = _post(client, payload, sign_payload(payload))

    assert response.status_code == 400
    assert response.json()["detail"] == "Webhook secret not configured"


def test_processing_error_is_logged_and_answered(client, sign_payload):
    # data.object is not a mapping, so the handler fails after verification
    payload = _event("customer.subscription.updated", ["not", "a", "subscription"])

    response = _post(client, payload, sign_payload(payload))

    assert response.status_code == 500
    assert response.json() == {"error": "webhook_processing_failed"}


class LoopRecordingReconciler(BillingEventReconciler):
    """Records whether apply() ran on a thread with a running event loop."""

    def __init__(self, webhook_secret):
        super().__init__(webhook_secret)
        self.ran_on_event_loop = []

    def apply(self, db, event, now=None):
        try:
            asyncio.get_running_loop()
            self.ran_on_event_loop.append(True)
        except RuntimeError:
            self.ran_on_event_loop.append(False)
        return super().apply(db, event, now=now)


def test_events_are_applied_off_the_event_loop(client, db, membership, sign_payload):
    reconciler = LoopRecordingReconciler("whsec_test_secret")
    app.dependency_overrides[get_event_reconciler] = lambda: reconciler
    payload = _event("customer.subscription.deleted", {"id": "sub_123", "object": "subscription"})

    response = _post(client, payload, sign_payload(payload))

    assert response.status_code == 200
    assert reconciler.ran_on_event_loop == [False]
    db.expire_all()
    assert db.query(Membership).first().is_active is False
