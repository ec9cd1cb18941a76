"""
Webhook Event Models

Provider events are parsed into a closed set of typed variants before
any business logic sees them. Anything outside that set becomes an
``UnhandledEvent`` which is acknowledged and ignored.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel

from willcraft.domain.time import from_timestamp, utc_now
from willcraft.infrastructure.exceptions import ValidationError


class WebhookEventType(str, Enum):
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    CUSTOMER_CREATED = "customer.created"
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"


class _Event(BaseModel):
    event_id: str
    event_type: str
    created: datetime


class SubscriptionSnapshot(BaseModel):
    """Subscription fields as reported by the provider."""
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None
    status: Optional[str] = None
    price_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None


class SubscriptionChanged(_Event):
    kind: Literal["subscription_changed"] = "subscription_changed"
    snapshot: SubscriptionSnapshot


class SubscriptionDeleted(_Event):
    kind: Literal["subscription_deleted"] = "subscription_deleted"
    customer_id: str
    subscription_id: Optional[str] = None
    canceled_at: datetime


class InvoicePaid(_Event):
    kind: Literal["invoice_paid"] = "invoice_paid"
    customer_id: str
    paid_at: datetime


class InvoiceFailed(_Event):
    kind: Literal["invoice_failed"] = "invoice_failed"
    customer_id: str
    failed_at: datetime


class CustomerCreated(_Event):
    kind: Literal["customer_created"] = "customer_created"
    customer_id: str
    email: Optional[str] = None


class CheckoutCompleted(_Event):
    kind: Literal["checkout_completed"] = "checkout_completed"
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    user_id: Optional[str] = None
    plan_name: Optional[str] = None


class UnhandledEvent(_Event):
    kind: Literal["unhandled"] = "unhandled"
    reason: str = "unsupported event type"


WebhookEvent = Union[
    SubscriptionChanged,
    SubscriptionDeleted,
    InvoicePaid,
    InvoiceFailed,
    CustomerCreated,
    CheckoutCompleted,
    UnhandledEvent,
]


# =============================================================================
# Parsing
# =============================================================================

def _id_of(value: Any) -> Optional[str]:
    """Expandable references arrive as an id string or an object with an id."""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return value.get("id")
    return None


def read_subscription(obj: Mapping) -> SubscriptionSnapshot:
    """
    Read a provider subscription object.

    Newer API versions report the billing period on the subscription
    items rather than on the subscription itself.
    """
    items = (obj.get("items") or {}).get("data") or []
    first_item = items[0] if items else {}
    price = first_item.get("price") or {}

    period_start = obj.get("current_period_start") or first_item.get("current_period_start")
    period_end = obj.get("current_period_end") or first_item.get("current_period_end")

    return SubscriptionSnapshot(
        subscription_id=obj.get("id"),
        customer_id=_id_of(obj.get("customer")),
        status=obj.get("status"),
        price_id=price.get("id"),
        current_period_start=from_timestamp(period_start),
        current_period_end=from_timestamp(period_end),
        cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
        canceled_at=from_timestamp(obj.get("canceled_at")),
    )


def parse_event(payload: Mapping) -> WebhookEvent:
    """
    Parse a verified provider event into its typed variant.

    Raises:
        ValidationError: If the envelope has no id or type
    """
    event_id = payload.get("id")
    event_type = payload.get("type")
    if not event_id or not event_type:
        raise ValidationError(
            "Malformed webhook event",
            fields={"event": ["id and type are required"]},
        )

    created = from_timestamp(payload.get("created")) or utc_now()
    obj: Dict[str, Any] = (payload.get("data") or {}).get("object") or {}
    base = {"event_id": event_id, "event_type": event_type, "created": created}

    if event_type in (
        WebhookEventType.SUBSCRIPTION_CREATED.value,
        WebhookEventType.SUBSCRIPTION_UPDATED.value,
    ):
        snapshot = read_subscription(obj)
        if not snapshot.customer_id:
            return UnhandledEvent(**base, reason="subscription without customer")
        return SubscriptionChanged(**base, snapshot=snapshot)

    if event_type == WebhookEventType.SUBSCRIPTION_DELETED.value:
        customer_id = _id_of(obj.get("customer"))
        if not customer_id:
            return UnhandledEvent(**base, reason="subscription without customer")
        return SubscriptionDeleted(
            **base,
            customer_id=customer_id,
            subscription_id=obj.get("id"),
            canceled_at=from_timestamp(obj.get("canceled_at")) or created,
        )

    if event_type in (
        WebhookEventType.INVOICE_PAYMENT_SUCCEEDED.value,
        WebhookEventType.INVOICE_PAYMENT_FAILED.value,
    ):
        customer_id = _id_of(obj.get("customer"))
        if not customer_id:
            return UnhandledEvent(**base, reason="invoice without customer")
        if event_type == WebhookEventType.INVOICE_PAYMENT_FAILED.value:
            return InvoiceFailed(**base, customer_id=customer_id, failed_at=created)
        transitions = obj.get("status_transitions") or {}
        paid_at = from_timestamp(transitions.get("paid_at")) or created
        return InvoicePaid(**base, customer_id=customer_id, paid_at=paid_at)

    if event_type == WebhookEventType.CUSTOMER_CREATED.value:
        if not obj.get("id"):
            return UnhandledEvent(**base, reason="customer without id")
        return CustomerCreated(**base, customer_id=obj.get("id"), email=obj.get("email"))

    if event_type == WebhookEventType.CHECKOUT_SESSION_COMPLETED.value:
        metadata = obj.get("metadata") or {}
        return CheckoutCompleted(
            **base,
            customer_id=_id_of(obj.get("customer")),
            subscription_id=_id_of(obj.get("subscription")),
            user_id=metadata.get("userId") or obj.get("client_reference_id"),
            plan_name=metadata.get("planName"),
        )

    return UnhandledEvent(**base)
