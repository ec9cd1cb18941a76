"""
Webhook Routes

Handles payment provider webhook events. The raw body is needed for
signature verification, so the request is read directly.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from willcraft.infrastructure.services.webhook_applier import (
    WebhookEventApplier,
    get_webhook_applier,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks/payment")
@router.post("/webhooks/stripe", include_in_schema=False)
async def payment_webhook(
    request: Request,
    applier: WebhookEventApplier = Depends(get_webhook_applier),
):
    """
    Handle payment provider webhook events.

    Events handled:
    - customer.subscription.created / updated / deleted
    - invoice.payment_succeeded / payment_failed
    - customer.created
    - checkout.session.completed

    Anything else is acknowledged and ignored.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    result = await applier.handle(payload, signature)
    return JSONResponse(content=result)
