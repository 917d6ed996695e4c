# app/routers/webhooks.py

import base64
import hashlib
import hmac
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request, status

from app.core import events
from app.core.config import settings
from app.core.events import OrderCancelledEvent, OrderPaidEvent, event_bus

logger = logging.getLogger(__name__)

# Mounted in main.py under /internal/webhooks
orders_router = APIRouter()


async def verify_webhook_signature(
    request: Request,
    x_commerce_signature: str | None = Header(None)
):
    """
    Checks the base64 HMAC-SHA256 of the raw body.
    Verification is skipped when no secret is configured.
    """
    if not settings.ORDER_WEBHOOK_SECRET:
        logger.warning("Order webhook secret not configured. Skipping verification.")
        return

    if not x_commerce_signature:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing webhook signature")

    raw_body = await request.body()
    expected_signature = base64.b64encode(
        hmac.new(settings.ORDER_WEBHOOK_SECRET.encode('utf-8'), raw_body, hashlib.sha256).digest()
    ).decode()

    if not hmac.compare_digest(expected_signature, x_commerce_signature):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature"
        )
    logger.debug("Webhook signature verified successfully.")


@orders_router.post(
    "/order-paid",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(verify_webhook_signature)],
)
async def order_paid_webhook(payload: OrderPaidEvent, background_tasks: BackgroundTasks):
    """
    Order payment confirmed. Points are credited in the background so the
    order service never waits on the points engine.
    """
    logger.info(f"Received order:paid for order {payload.order_id}, user {payload.user_id}")
    background_tasks.add_task(event_bus.emit, events.ORDER_PAID, payload)
    return {"status": "accepted"}


@orders_router.post(
    "/order-cancelled",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(verify_webhook_signature)],
)
async def order_cancelled_webhook(payload: OrderCancelledEvent, background_tasks: BackgroundTasks):
    """Order cancelled. Redeemed points are refunded in the background."""
    logger.info(f"Received order:cancelled for order {payload.order_id}")
    background_tasks.add_task(event_bus.emit, events.ORDER_CANCELLED, payload)
    return {"status": "accepted"}
