import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from konnectsphere.core.auth_dependency import get_db
from konnectsphere.core.service_dependency import get_billing_gateway, get_notification_service
from konnectsphere.services.billing_gateway import BillingGateway, WebhookVerificationError
from konnectsphere.services.billing_webhook_handlers import dispatch_event
from konnectsphere.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing Webhook"])


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    gateway: BillingGateway = Depends(get_billing_gateway),
    notifier: NotificationService = Depends(get_notification_service),
):
    """
    Receive Stripe events.

    Verification failures answer 400 without processing. A failing handler is
    rolled back and answered with 500 so Stripe redelivers the event.
    """
    payload = await request.body()

    try:
        event = gateway.verify_webhook(payload, stripe_signature)
    except WebhookVerificationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Webhook verification failed: {e}")

    event_type = event.get("type")
    try:
        handled = dispatch_event(event, db, gateway, notifier)
    except Exception as e:
        db.rollback()
        logger.error(f"Webhook handler failed: event_id={event.get('id')}, type={event_type}, error={e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Webhook handler failed")

    logger.info(f"Webhook processed: event_id={event.get('id')}, type={event_type}, handled={handled}")
    return {"received": True}
