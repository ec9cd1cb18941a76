"""
Webhook Event Applier

Verifies provider webhook deliveries and projects them onto the
subscription mirror.

Each event id is claimed in the processed-event ledger before it is
applied, so a redelivered event is acknowledged without a second
mutation. When applying fails the claim is released and the provider's
retry gets processed normally.
"""

import logging
from typing import Any, Dict, Optional

from willcraft.domain.subscription import (
    Plan,
    SubscriptionFields,
    SubscriptionStatus,
)
from willcraft.domain.webhook_events import (
    CheckoutCompleted,
    CustomerCreated,
    InvoiceFailed,
    InvoicePaid,
    SubscriptionChanged,
    SubscriptionDeleted,
    UnhandledEvent,
    WebhookEvent,
    parse_event,
)
from willcraft.infrastructure.db.repositories.user_repository import (
    UserRepository,
    get_user_repository,
)
from willcraft.infrastructure.db.repositories.webhook_event_repository import (
    WebhookEventRepository,
    get_webhook_event_repository,
)
from willcraft.infrastructure.exceptions import (
    ServiceUnavailableError,
    SignatureVerificationError,
)
from willcraft.infrastructure.payments.stripe_service import (
    StripeService,
    get_stripe_service,
)
from willcraft.infrastructure.services.subscription_mirror import (
    SubscriptionMirror,
    get_subscription_mirror,
)


logger = logging.getLogger(__name__)


class WebhookEventApplier:
    """Applies verified payment provider events."""

    def __init__(
        self,
        stripe_service: Optional[StripeService] = None,
        mirror: Optional[SubscriptionMirror] = None,
        event_repo: Optional[WebhookEventRepository] = None,
        user_repo: Optional[UserRepository] = None,
    ):
        self._stripe = stripe_service or get_stripe_service()
        self._mirror = mirror or get_subscription_mirror()
        self._events = event_repo or get_webhook_event_repository()
        self._users = user_repo or get_user_repository()

    async def handle(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify, deduplicate and apply one delivery.

        Raises:
            ServiceUnavailableError: verification is not configured
            SignatureVerificationError: missing or invalid signature
        """
        if not self._stripe.webhooks_configured:
            raise ServiceUnavailableError(
                "Webhook verification is not configured",
                missing_keys=["STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET"],
            )

        if not signature:
            raise SignatureVerificationError("Missing Stripe signature")

        try:
            raw = self._stripe.verify_webhook_signature(payload, signature)
        except SignatureVerificationError as e:
            logger.warning(f"Webhook verification failed: {e.message}")
            raise

        event = parse_event(raw)
        logger.info(f"Received webhook {event.event_type} ({event.event_id})")

        claimed = await self._events.claim(event.event_id, event.event_type)
        if not claimed:
            logger.info(f"Event {event.event_id} already processed, skipping")
            return {"received": True, "duplicate": True}

        try:
            await self.apply(event)
        except Exception:
            logger.error(f"Failed to apply webhook {event.event_id}, releasing claim")
            await self._events.release(event.event_id)
            raise

        return {"received": True}

    async def apply(self, event: WebhookEvent) -> None:
        """Dispatch a parsed event to its projection."""
        if isinstance(event, SubscriptionChanged):
            await self._on_subscription_changed(event)
        elif isinstance(event, SubscriptionDeleted):
            await self._on_subscription_deleted(event)
        elif isinstance(event, InvoicePaid):
            await self._on_invoice_paid(event)
        elif isinstance(event, InvoiceFailed):
            await self._on_invoice_failed(event)
        elif isinstance(event, CustomerCreated):
            await self._on_customer_created(event)
        elif isinstance(event, CheckoutCompleted):
            await self._on_checkout_completed(event)
        elif isinstance(event, UnhandledEvent):
            logger.info(f"Ignoring webhook {event.event_type}: {event.reason}")

    # =========================================================================
    # Event Handlers
    # =========================================================================

    async def _on_subscription_changed(self, event: SubscriptionChanged) -> None:
        fields = self._mirror.snapshot_fields(event.snapshot)
        updated = await self._mirror.apply_webhook_projection(
            event.snapshot.customer_id, fields, event_at=event.created
        )
        if updated:
            logger.info(
                f"Subscription {event.snapshot.subscription_id} mirrored: "
                f"plan={updated.plan.value}, status={updated.status.value}"
            )

    async def _on_subscription_deleted(self, event: SubscriptionDeleted) -> None:
        updated = await self._mirror.apply_webhook_projection(
            event.customer_id,
            SubscriptionFields(
                status=SubscriptionStatus.CANCELLED,
                canceled_at=event.canceled_at,
            ),
            event_at=event.created,
            skip_stale=False,
        )
        if updated:
            logger.info(f"Subscription of customer {event.customer_id} cancelled")

    async def _on_invoice_paid(self, event: InvoicePaid) -> None:
        updated = await self._mirror.apply_webhook_projection(
            event.customer_id,
            SubscriptionFields(
                status=SubscriptionStatus.ACTIVE,
                last_payment_date=event.paid_at,
            ),
        )
        if updated:
            logger.info(f"Payment succeeded for customer {event.customer_id}")

    async def _on_invoice_failed(self, event: InvoiceFailed) -> None:
        updated = await self._mirror.apply_webhook_projection(
            event.customer_id,
            SubscriptionFields(
                status=SubscriptionStatus.PAST_DUE,
                last_failed_payment=event.failed_at,
            ),
        )
        if updated:
            logger.warning(f"Payment failed for customer {event.customer_id}")

    async def _on_customer_created(self, event: CustomerCreated) -> None:
        if not event.email:
            logger.info(f"Customer {event.customer_id} has no email, not linked")
            return

        user = await self._users.get_by_email(event.email)
        if user is None:
            logger.info(f"No local user for customer {event.customer_id}")
            return

        await self._mirror.apply_plan_change(
            user.id, SubscriptionFields(stripe_customer_id=event.customer_id)
        )
        logger.info(f"Linked customer {event.customer_id} to user {user.id}")

    async def _on_checkout_completed(self, event: CheckoutCompleted) -> None:
        if not event.user_id:
            logger.info(f"Checkout {event.event_id} carries no user id")
            return

        fields = SubscriptionFields()
        if event.customer_id:
            fields.stripe_customer_id = event.customer_id
        if event.subscription_id:
            fields.stripe_subscription_id = event.subscription_id
        if event.plan_name in (Plan.ESSENTIAL.value, Plan.UNLIMITED.value):
            fields.plan = Plan(event.plan_name)

        updated = await self._mirror.apply_plan_change(event.user_id, fields)
        if updated is None:
            logger.info(f"No local user {event.user_id} for checkout {event.event_id}")
            return
        logger.info(f"Checkout completed for user {event.user_id}")


_applier_instance: Optional[WebhookEventApplier] = None


def get_webhook_applier() -> WebhookEventApplier:
    """Get or create webhook applier singleton."""
    global _applier_instance

    if _applier_instance is None:
        _applier_instance = WebhookEventApplier()

    return _applier_instance
