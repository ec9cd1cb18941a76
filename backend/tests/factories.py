"""Shared test data builders."""

TEST_JWT_SECRET = "willcraft-test-secret-0123456789abcdef"
TEST_ISSUER = "https://auth.willcraft.test"

USER_ID = "00000000-0000-0000-0000-000000000001"
OTHER_USER_ID = "00000000-0000-0000-0000-000000000002"

ESSENTIAL_PRICE = "price_test_essential"
UNLIMITED_PRICE = "price_test_unlimited"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def stripe_subscription(
    subscription_id: str = "sub_123",
    customer_id: str = "cus_123",
    status: str = "active",
    price_id: str = ESSENTIAL_PRICE,
    period_start: int = 1_790_000_000,
    period_end: int = 1_900_000_000,
    cancel_at_period_end: bool = False,
) -> dict:
    """Provider subscription object as delivered in events and API reads."""
    return {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer_id,
        "status": status,
        "current_period_start": period_start,
        "current_period_end": period_end,
        "cancel_at_period_end": cancel_at_period_end,
        "canceled_at": None,
        "items": {"data": [{"price": {"id": price_id}}]},
    }


def stripe_event(
    event_type: str,
    obj: dict,
    event_id: str = "evt_1",
    created: int = 1_800_000_000,
) -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created,
        "data": {"object": obj},
    }
