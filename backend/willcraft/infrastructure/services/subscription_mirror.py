"""
Subscription Mirror Service

Keeps the local copy of each user's subscription in step with the
payment provider and answers entitlement questions from it.

Reads prefer live provider data and fall back to the mirrored row when
the provider is unreachable. Writes come from three paths only: direct
plan changes, webhook projections and cancel-at-period-end.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from willcraft.config.settings import Settings, get_settings
from willcraft.domain.subscription import (
    Entitlement,
    Plan,
    Subscription,
    SubscriptionFields,
    SubscriptionSource,
    SubscriptionView,
    User,
    entitlement_for,
    map_provider_status,
    subscription_view,
)
from willcraft.domain.time import utc_now
from willcraft.domain.webhook_events import SubscriptionSnapshot, read_subscription
from willcraft.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
    get_subscription_repository,
)
from willcraft.infrastructure.exceptions import (
    NotFoundError,
    UpstreamServiceError,
    ValidationError,
)
from willcraft.infrastructure.payments.stripe_service import (
    StripeService,
    get_stripe_service,
)


logger = logging.getLogger(__name__)

# Price lookup keys used by the hosted pricing table
LOOKUP_KEY_PLANS: Dict[str, Plan] = {
    "price_essential_monthly": Plan.ESSENTIAL,
    "price_essential_yearly": Plan.ESSENTIAL,
    "price_unlimited_monthly": Plan.UNLIMITED,
    "price_unlimited_yearly": Plan.UNLIMITED,
}


class SubscriptionMirror:
    """Entitlement and subscription mirror."""

    def __init__(
        self,
        subscription_repo: Optional[SubscriptionRepository] = None,
        stripe_service: Optional[StripeService] = None,
        settings: Optional[Settings] = None,
    ):
        self._subscriptions = subscription_repo or get_subscription_repository()
        self._stripe = stripe_service or get_stripe_service()
        self._settings = settings or get_settings()
        self._price_map = self._build_price_map()

    def _build_price_map(self) -> Dict[str, Plan]:
        price_map = dict(LOOKUP_KEY_PLANS)
        configured = {
            self._settings.stripe_price_id_essential: Plan.ESSENTIAL,
            self._settings.stripe_price_id_essential_yearly: Plan.ESSENTIAL,
            self._settings.stripe_price_id_unlimited: Plan.UNLIMITED,
            self._settings.stripe_price_id_unlimited_yearly: Plan.UNLIMITED,
        }
        price_map.update({price: plan for price, plan in configured.items() if price})
        return price_map

    # =========================================================================
    # Plan Resolution
    # =========================================================================

    def plan_for_price(self, price_id: Optional[str]) -> Plan:
        """
        Map a provider price id to a plan.

        Unknown ids resolve to essential. That is a misconfiguration the
        operator has to fix, so it is logged at WARNING with the id.
        """
        plan = self._price_map.get(price_id or "")
        if plan is None:
            logger.warning(
                f"Unrecognized price id {price_id!r}, defaulting to plan "
                f"{Plan.ESSENTIAL.value}. Check STRIPE_PRICE_ID_* settings."
            )
            return Plan.ESSENTIAL
        return plan

    def snapshot_fields(self, snapshot: SubscriptionSnapshot) -> SubscriptionFields:
        """Mirrored fields for a provider subscription snapshot."""
        return SubscriptionFields(
            plan=self.plan_for_price(snapshot.price_id),
            status=map_provider_status(snapshot.status),
            stripe_subscription_id=snapshot.subscription_id,
            price_id=snapshot.price_id,
            current_period_start=snapshot.current_period_start,
            current_period_end=snapshot.current_period_end,
            cancel_at_period_end=snapshot.cancel_at_period_end,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_mirrored(self, user_id: str) -> Subscription:
        subscription = await self._subscriptions.get_by_user_id(user_id)
        if subscription is None:
            raise NotFoundError("Subscription not found", operation="get", table="subscriptions")
        return subscription

    async def get_subscription(self, user: User) -> SubscriptionView:
        """
        Current subscription of a user.

        With a provider reference the live subscription is fetched; if the
        provider fails the mirrored row is served instead.
        """
        subscription = await self.get_mirrored(user.id)

        if subscription.stripe_subscription_id and self._stripe.is_configured:
            try:
                live = await self._stripe.get_subscription(subscription.stripe_subscription_id)
            except UpstreamServiceError as e:
                logger.warning(
                    f"Live subscription read failed for user {user.id}, "
                    f"serving mirrored data: {e.message}"
                )
            else:
                fields = self.snapshot_fields(read_subscription(live))
                merged = subscription.model_copy(update=fields.model_dump(exclude_none=True))
                return subscription_view(merged, SubscriptionSource.LIVE, user.role)

        return subscription_view(subscription, SubscriptionSource.MIRROR, user.role)

    async def entitlement(self, user: User) -> Entitlement:
        """Entitlement from the mirrored row; never calls the provider."""
        subscription = await self.get_mirrored(user.id)
        return entitlement_for(subscription, user.role)

    # =========================================================================
    # Writes
    # =========================================================================

    async def apply_plan_change(
        self,
        user_id: str,
        fields: SubscriptionFields,
    ) -> Optional[Subscription]:
        """Direct update of a user's subscription (checkout completion, admin)."""
        return await self._subscriptions.update_by_user_id(
            user_id, fields.model_dump(exclude_unset=True)
        )

    async def apply_webhook_projection(
        self,
        customer_id: str,
        fields: SubscriptionFields,
        event_at: Optional[datetime] = None,
        skip_stale: bool = True,
    ) -> Optional[Subscription]:
        """
        Project provider state onto the subscription linked to ``customer_id``.

        Snapshots pass ``event_at`` and are skipped when older than the last
        applied event. Terminal events pass ``skip_stale=False``: they always
        land and still advance the event clock.

        Returns:
            The updated subscription, or None when no local user is linked
            or a newer event has already been applied.
        """
        subscription, applied = await self._subscriptions.update_by_customer_id(
            customer_id,
            fields.model_dump(exclude_unset=True),
            event_at=event_at,
            skip_stale=skip_stale,
        )

        if subscription is None:
            logger.info(f"No local subscription linked to customer {customer_id}")
            return None
        if not applied:
            logger.info(
                f"Skipped out-of-order event for customer {customer_id} "
                f"(event at {event_at}, last applied {subscription.last_event_at})"
            )
            return None
        return subscription

    async def cancel_at_period_end(self, user: User) -> SubscriptionView:
        """
        Schedule cancellation at the end of the current period.

        Raises:
            ValidationError: If the user has no provider subscription
        """
        subscription = await self.get_mirrored(user.id)
        if not subscription.stripe_subscription_id:
            raise ValidationError("No active subscription found")

        live = await self._stripe.cancel_at_period_end(subscription.stripe_subscription_id)
        snapshot = read_subscription(live)

        fields = SubscriptionFields(
            cancel_at_period_end=True,
            canceled_at=snapshot.canceled_at or utc_now(),
        )
        if snapshot.current_period_end:
            fields.current_period_end = snapshot.current_period_end

        updated = await self.apply_plan_change(user.id, fields)
        logger.info(f"Subscription of user {user.id} set to cancel at period end")
        return subscription_view(updated or subscription, SubscriptionSource.MIRROR, user.role)

    # =========================================================================
    # Checkout / Portal
    # =========================================================================

    async def ensure_customer(self, user: User) -> str:
        """Provider customer id of a user, created and bound on first use."""
        subscription = await self.get_mirrored(user.id)
        if subscription.stripe_customer_id:
            return subscription.stripe_customer_id

        customer = await self._stripe.create_customer(user.id, user.email, user.full_name)
        await self.apply_plan_change(
            user.id, SubscriptionFields(stripe_customer_id=customer.id)
        )
        return customer.id

    async def create_checkout_session(
        self,
        user: User,
        price_id: Optional[str],
        plan_name: Optional[str] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ):
        if not price_id:
            raise ValidationError(
                "Price ID is required",
                fields={"priceId": ["This field is required"]},
            )

        customer_id = await self.ensure_customer(user)
        frontend = self._settings.frontend_url.rstrip("/")

        return await self._stripe.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            user_id=user.id,
            plan_name=plan_name or self.plan_for_price(price_id).value,
            success_url=success_url or f"{frontend}/dashboard?success=true&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=cancel_url or f"{frontend}/pricing?canceled=true",
        )

    async def create_portal_session(self, user: User, return_url: Optional[str] = None):
        subscription = await self.get_mirrored(user.id)
        if not subscription.stripe_customer_id:
            raise ValidationError("No billing account found")

        frontend = self._settings.frontend_url.rstrip("/")
        return await self._stripe.create_portal_session(
            subscription.stripe_customer_id,
            return_url or f"{frontend}/dashboard/billing",
        )


_mirror_instance: Optional[SubscriptionMirror] = None


def get_subscription_mirror() -> SubscriptionMirror:
    """Get or create subscription mirror singleton."""
    global _mirror_instance

    if _mirror_instance is None:
        _mirror_instance = SubscriptionMirror()

    return _mirror_instance
