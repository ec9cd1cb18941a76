"""
Stripe Payment Service

Infrastructure service for Stripe: customers, hosted checkout, the
billing portal, subscription reads and cancellation, and webhook
signature verification.

The SDK is synchronous, so every call runs in a worker thread and is
bounded by STRIPE_TIMEOUT_SECONDS. Reads are retried with exponential
backoff on rate limits and connection failures.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

import stripe
from stripe import StripeError

from willcraft.config.settings import Settings, get_settings
from willcraft.infrastructure.exceptions import (
    ServiceUnavailableError,
    SignatureVerificationError,
    UpstreamServiceError,
)


logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    stripe.RateLimitError,
    stripe.APIConnectionError,
    asyncio.TimeoutError,
)


class StripeServiceError(UpstreamServiceError):
    """Stripe call failed or timed out."""

    def __init__(self, message: str, operation: Optional[str] = None, original_error: Optional[Exception] = None):
        super().__init__(message, service="stripe", operation=operation, original_error=original_error)


class StripeService:
    """
    Stripe payment processing service.

    All methods are stateless; checkout and customer creation are not
    retried since they are not idempotent.
    """

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize Stripe with API key from settings."""
        settings = settings or get_settings()
        self._settings = settings
        self._api_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret
        self._timeout = settings.stripe_timeout_seconds

        if self._api_key:
            stripe.api_key = self._api_key
            stripe.max_network_retries = 0

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    @property
    def webhooks_configured(self) -> bool:
        return bool(self._api_key and self._webhook_secret)

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise ServiceUnavailableError(
                "Payment provider is not configured",
                missing_keys=["STRIPE_SECRET_KEY"],
            )

    async def _call(self, operation: Callable, *args, **kwargs) -> Any:
        """Run a blocking SDK call in a thread with the configured timeout."""
        return await asyncio.wait_for(
            asyncio.to_thread(operation, *args, **kwargs),
            timeout=self._timeout,
        )

    async def _retry_with_backoff(
        self,
        operation: Callable,
        operation_name: str,
        *args,
        **kwargs
    ) -> Any:
        """Execute a read with exponential backoff on transient failures."""
        max_retries = self._settings.max_retries

        for attempt in range(max_retries):
            try:
                return await self._call(operation, *args, **kwargs)
            except TRANSIENT_ERRORS as e:
                if attempt + 1 >= max_retries:
                    raise
                delay = min(
                    self._settings.retry_base_delay * (2 ** attempt),
                    self._settings.retry_max_delay,
                )
                logger.warning(
                    f"{operation_name} transient error ({type(e).__name__}). "
                    f"Attempt {attempt + 1}/{max_retries}. Retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

    # =========================================================================
    # Customer Management
    # =========================================================================

    async def create_customer(
        self,
        user_id: str,
        email: Optional[str],
        name: Optional[str] = None,
    ) -> stripe.Customer:
        """
        Create a new Stripe customer.

        Args:
            user_id: Internal user ID (stored in metadata)
            email: Customer email for receipts
            name: Optional customer name

        Returns:
            stripe.Customer object
        """
        self._require_configured()
        try:
            customer = await self._call(
                stripe.Customer.create,
                email=email,
                name=name,
                metadata={"userId": user_id},
            )
            logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
            return customer

        except (StripeError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to create Stripe customer for user {user_id}: {e}")
            raise StripeServiceError("Failed to create billing customer", "create_customer", e)

    # =========================================================================
    # Checkout Session
    # =========================================================================

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        user_id: str,
        plan_name: str,
        success_url: str,
        cancel_url: str,
    ) -> stripe.checkout.Session:
        """
        Create a hosted Checkout Session for a subscription.

        Returns:
            stripe.checkout.Session with checkout URL
        """
        self._require_configured()
        try:
            session = await self._call(
                stripe.checkout.Session.create,
                customer=customer_id,
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                allow_promotion_codes=True,
                billing_address_collection="required",
                metadata={"userId": user_id, "planName": plan_name},
                subscription_data={
                    "metadata": {"userId": user_id, "planName": plan_name},
                },
            )

            logger.info(
                f"Created checkout session {session.id} for user {user_id}, "
                f"price={price_id}"
            )
            return session

        except (StripeError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to create checkout session for user {user_id}: {e}")
            raise StripeServiceError("Failed to create checkout session", "create_checkout_session", e)

    # =========================================================================
    # Customer Portal
    # =========================================================================

    async def create_portal_session(
        self,
        customer_id: str,
        return_url: str,
    ) -> stripe.billing_portal.Session:
        """Create a Billing Portal session for self-service management."""
        self._require_configured()
        try:
            session = await self._call(
                stripe.billing_portal.Session.create,
                customer=customer_id,
                return_url=return_url,
            )

            logger.info(f"Created portal session for customer {customer_id}")
            return session

        except (StripeError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to create portal session for customer {customer_id}: {e}")
            raise StripeServiceError("Failed to create billing portal session", "create_portal_session", e)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """
        Retrieve a subscription by ID as plain JSON data.

        Raises:
            StripeServiceError: after retries are exhausted
        """
        self._require_configured()
        try:
            subscription = await self._retry_with_backoff(
                stripe.Subscription.retrieve,
                "Subscription retrieval",
                subscription_id,
            )
            return subscription.to_dict()
        except (StripeError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to retrieve subscription {subscription_id}: {e}")
            raise StripeServiceError("Failed to retrieve subscription", "get_subscription", e)

    async def cancel_at_period_end(self, subscription_id: str) -> Dict[str, Any]:
        """Schedule a subscription to end when the current period ends."""
        self._require_configured()
        try:
            subscription = await self._call(
                stripe.Subscription.modify,
                subscription_id,
                cancel_at_period_end=True,
            )

            logger.info(f"Scheduled cancellation of subscription {subscription_id}")
            return subscription.to_dict()

        except (StripeError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to cancel subscription {subscription_id}: {e}")
            raise StripeServiceError("Failed to cancel subscription", "cancel_subscription", e)

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
    ) -> Dict[str, Any]:
        """
        Verify webhook signature and return the decoded event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Returns:
            The event as plain JSON data

        Raises:
            SignatureVerificationError: If the payload or signature is invalid
        """
        if not self.webhooks_configured:
            raise ServiceUnavailableError(
                "Webhook verification is not configured",
                missing_keys=["STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET"],
            )

        try:
            stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except ValueError as e:
            raise SignatureVerificationError("Invalid payload", original_error=e)
        except stripe.SignatureVerificationError as e:
            raise SignatureVerificationError("Invalid signature", original_error=e)

        return json.loads(payload)


# =============================================================================
# Singleton Instance (Dependency Injection Ready)
# =============================================================================

_stripe_service_instance: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """Get or create Stripe service singleton."""
    global _stripe_service_instance

    if _stripe_service_instance is None:
        _stripe_service_instance = StripeService()

    return _stripe_service_instance
