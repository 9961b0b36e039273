"""
Stripe webhook endpoint.

400 when the secret is missing or the signature does not verify. Handled and
unknown event types both get 200. A failure while applying an event is logged
and answered with 500 so Stripe redelivers it; it never propagates.
"""
import logging

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from atsscanner.api.dependencies import get_event_reconciler
from atsscanner.core.exceptions import ATSScannerError
from atsscanner.db.session import get_db
from atsscanner.services.billing_events import BillingEventReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["Billing Webhook"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    reconciler: BillingEventReconciler = Depends(get_event_reconciler),
    db: Session = Depends(get_db)
):
    payload = await request.body()

    try:
        event = reconciler.verify(payload, stripe_signature)
    except ATSScannerError as e:
        logger.warning(f"Webhook rejected: {e.message}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "webhook_rejected", "detail": e.message}
        )

    logger.info(f"Processing Stripe webhook event: {event['type']}, id={event.get('id')}")

    try:
        # Sync ORM work runs off the event loop
        await run_in_threadpool(reconciler.apply, db, event)
    except Exception as e:
        db.rollback()
        logger.error(f"Webhook processing failed: type={event['type']}, id={event.get('id')}: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "webhook_processing_failed"}
        )

    return {"status": "success"}
