"""
Billing API Routes

Subscription status, cancellation, hosted checkout and the customer
portal. Stripe failures surface as 502 with details kept in the logs.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from willcraft.api.dependencies import get_current_user
from willcraft.api.responses import success_response
from willcraft.domain.subscription import (
    CreateCheckoutRequest,
    PortalSessionRequest,
    User,
)
from willcraft.infrastructure.services.subscription_mirror import (
    SubscriptionMirror,
    get_subscription_mirror,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing")


@router.get("/subscription")
async def get_subscription(
    user: User = Depends(get_current_user),
    mirror: SubscriptionMirror = Depends(get_subscription_mirror),
):
    """
    Get the current user's subscription.

    Reads live from Stripe when a subscription exists, falling back to
    the mirrored copy if Stripe is unavailable.
    """
    view = await mirror.get_subscription(user)
    return success_response(data=view.model_dump(mode="json", by_alias=True))


@router.delete("/subscription")
async def cancel_subscription(
    user: User = Depends(get_current_user),
    mirror: SubscriptionMirror = Depends(get_subscription_mirror),
):
    """Cancel at the end of the current billing period."""
    view = await mirror.cancel_at_period_end(user)
    return success_response(
        message="Subscription will be canceled at the end of the current period",
        cancelAtPeriodEnd=view.cancel_at_period_end,
        currentPeriodEnd=view.current_period_end,
    )


@router.post("/checkout-session")
async def create_checkout_session(
    request: CreateCheckoutRequest,
    user: User = Depends(get_current_user),
    mirror: SubscriptionMirror = Depends(get_subscription_mirror),
):
    """Create a hosted checkout session for the given price."""
    session = await mirror.create_checkout_session(
        user,
        price_id=request.price_id,
        plan_name=request.plan_name,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
    )
    return success_response(sessionId=session.id, url=session.url)


@router.post("/portal-session")
async def create_portal_session(
    request: Optional[PortalSessionRequest] = None,
    user: User = Depends(get_current_user),
    mirror: SubscriptionMirror = Depends(get_subscription_mirror),
):
    """Create a billing portal session for self-service management."""
    return_url = request.return_url if request else None
    session = await mirror.create_portal_session(user, return_url)
    return success_response(url=session.url)
