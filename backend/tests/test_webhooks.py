"""
Integration Tests for Webhooks (Stripe)

Verifies:
- Signature verification failure (400)
- Successful event processing onto the subscription mirror
- Idempotency (redelivered events are not applied twice)
"""

import json

import pytest

from willcraft.infrastructure.exceptions import SignatureVerificationError

from tests.factories import (
    UNLIMITED_PRICE,
    USER_ID,
    stripe_event,
    stripe_subscription,
)


SIGNED = {"stripe-signature": "t=1,v1=test"}


@pytest.fixture
async def linked_user(user, subscription_repo):
    """Default user bound to Stripe customer cus_123."""
    await subscription_repo.update_by_user_id(USER_ID, {"stripe_customer_id": "cus_123"})
    return user


def _deliver(mock_stripe_service, event: dict) -> bytes:
    mock_stripe_service.verify_webhook_signature.return_value = event
    return json.dumps(event).encode()


class TestStripeWebhooks:

    async def test_webhook_missing_signature(self, api):
        """Webhook without signature header should fail 400."""
        response = await api.post("/api/webhooks/payment", json={"id": "evt_123"})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing Stripe signature"

    async def test_webhook_invalid_signature(self, api, mock_stripe_service):
        mock_stripe_service.verify_webhook_signature.side_effect = (
            SignatureVerificationError("Invalid signature")
        )

        response = await api.post(
            "/api/webhooks/payment",
            content=b'{"id": "evt_123"}',
            headers={"stripe-signature": "invalid_sig"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid signature"

    async def test_webhook_not_configured(self, api, mock_stripe_service):
        mock_stripe_service.webhooks_configured = False

        response = await api.post("/api/webhooks/payment", content=b"{}", headers=SIGNED)

        assert response.status_code == 503
        assert response.json()["code"] == "ServiceUnavailableError"
        mock_stripe_service.verify_webhook_signature.assert_not_called()

    async def test_subscription_updated_projects_onto_mirror(
        self, api, mock_stripe_service, linked_user, subscription_repo
    ):
        event = stripe_event(
            "customer.subscription.updated",
            stripe_subscription(price_id=UNLIMITED_PRICE),
        )
        body = _deliver(mock_stripe_service, event)

        response = await api.post("/api/webhooks/payment", content=body, headers=SIGNED)

        assert response.status_code == 200
        assert response.json() == {"received": True}

        subscription = await subscription_repo.get_by_user_id(USER_ID)
        assert subscription.plan.value == "unlimited"
        assert subscription.status.value == "active"
        assert subscription.stripe_subscription_id == "sub_123"
        assert subscription.price_id == UNLIMITED_PRICE
        mock_stripe_service.verify_webhook_signature.assert_called_once_with(
            body, SIGNED["stripe-signature"]
        )

    async def test_legacy_stripe_path(self, api, mock_stripe_service, linked_user):
        body = _deliver(
            mock_stripe_service,
            stripe_event("customer.subscription.created", stripe_subscription()),
        )

        response = await api.post("/api/webhooks/stripe", content=body, headers=SIGNED)

        assert response.status_code == 200
        assert response.json()["received"] is True

    async def test_duplicate_delivery_applied_once(
        self, api, mock_stripe_service, linked_user, subscription_repo
    ):
        event = stripe_event(
            "invoice.payment_failed",
            {"id": "in_1", "customer": "cus_123"},
            event_id="evt_failed",
        )
        body = _deliver(mock_stripe_service, event)

        first = await api.post("/api/webhooks/payment", content=body, headers=SIGNED)
        assert first.json() == {"received": True}

        # The user recovers in between; a redelivery must not undo that.
        await subscription_repo.update_by_user_id(USER_ID, {"status": "active"})

        second = await api.post("/api/webhooks/payment", content=body, headers=SIGNED)
        assert second.status_code == 200
        assert second.json() == {"received": True, "duplicate": True}

        subscription = await subscription_repo.get_by_user_id(USER_ID)
        assert subscription.status.value == "active"

    async def test_checkout_completed_binds_customer(
        self, api, mock_stripe_service, user, subscription_repo
    ):
        event = stripe_event(
            "checkout.session.completed",
            {
                "id": "cs_123",
                "customer": "cus_new",
                "subscription": "sub_new",
                "metadata": {"userId": USER_ID, "planName": "unlimited"},
            },
        )
        body = _deliver(mock_stripe_service, event)

        response = await api.post("/api/webhooks/payment", content=body, headers=SIGNED)

        assert response.status_code == 200
        subscription = await subscription_repo.get_by_user_id(USER_ID)
        assert subscription.stripe_customer_id == "cus_new"
        assert subscription.stripe_subscription_id == "sub_new"
        assert subscription.plan.value == "unlimited"

    async def test_unknown_customer_is_acknowledged(
        self, api, mock_stripe_service, linked_user, subscription_repo
    ):
        body = _deliver(
            mock_stripe_service,
            stripe_event("invoice.payment_succeeded", {"id": "in_2", "customer": "cus_unknown"}),
        )

        response = await api.post("/api/webhooks/payment", content=body, headers=SIGNED)

        assert response.status_code == 200
        subscription = await subscription_repo.get_by_user_id(USER_ID)
        assert subscription.status.value == "inactive"

    async def test_unhandled_event_type_is_acknowledged(self, api, mock_stripe_service):
        body = _deliver(
            mock_stripe_service,
            stripe_event("charge.refunded", {"id": "ch_1"}),
        )

        response = await api.post("/api/webhooks/payment", content=body, headers=SIGNED)

        assert response.status_code == 200
        assert response.json() == {"received": True}

    async def test_malformed_event_rejected(self, api, mock_stripe_service):
        mock_stripe_service.verify_webhook_signature.return_value = {"data": {}}

        response = await api.post("/api/webhooks/payment", content=b"{}", headers=SIGNED)

        assert response.status_code == 400
        assert response.json()["error"] == "Malformed webhook event"
