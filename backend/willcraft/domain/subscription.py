"""
Subscription Domain Models

Enums, the mirrored subscription entity, entitlement rules and the
request/response DTOs of the billing endpoints.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from willcraft.domain.time import utc_now


class Plan(str, Enum):
    """Purchasable plans."""
    ESSENTIAL = "essential"
    UNLIMITED = "unlimited"
    NONE = "none"


class SubscriptionStatus(str, Enum):
    """Mirrored subscription lifecycle status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Feature(str, Enum):
    """Entitlement feature flags."""
    BASIC_WILL = "basic_will"
    UNLIMITED_UPDATES = "unlimited_updates"
    ADVANCED_FEATURES = "advanced_features"


class SubscriptionSource(str, Enum):
    """Where a subscription view was read from."""
    LIVE = "live"
    MIRROR = "mirror"


# Provider subscription status -> mirrored status
PROVIDER_STATUS_MAP: Dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.EXPIRED,
    "incomplete": SubscriptionStatus.INACTIVE,
    "paused": SubscriptionStatus.INACTIVE,
}


def map_provider_status(status: Optional[str]) -> SubscriptionStatus:
    """Map a provider subscription status, unknown values become inactive."""
    return PROVIDER_STATUS_MAP.get(status or "", SubscriptionStatus.INACTIVE)


# =============================================================================
# Domain Entities
# =============================================================================

class Subscription(BaseModel):
    """Mirrored subscription of one user."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    user_id: str
    plan: Plan = Plan.ESSENTIAL
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    price_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    last_failed_payment: Optional[datetime] = None
    last_event_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SubscriptionFields(BaseModel):
    """
    Partial update of mirrored subscription fields.

    Only fields explicitly set are written; use ``model_dump(exclude_unset=True)``.
    """
    plan: Optional[Plan] = None
    status: Optional[SubscriptionStatus] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    price_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None
    canceled_at: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    last_failed_payment: Optional[datetime] = None
    last_event_at: Optional[datetime] = None


class User(BaseModel):
    """Local account record keyed by the auth provider's subject id."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole = UserRole.USER
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> Optional[str]:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) or None


# =============================================================================
# Request/Response DTOs
# =============================================================================

class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Entitlement(_CamelModel):
    """What the caller may do under their current plan."""
    is_active: bool = Field(alias="isActive")
    features: List[Feature]
    can_edit_completed: bool = Field(alias="canEditCompleted")
    can_export: bool = Field(alias="canExport")


class SubscriptionView(_CamelModel):
    """Response DTO for the billing subscription endpoint."""
    plan: Plan
    status: SubscriptionStatus
    source: SubscriptionSource
    stripe_customer_id: Optional[str] = Field(default=None, alias="stripeCustomerId")
    stripe_subscription_id: Optional[str] = Field(default=None, alias="stripeSubscriptionId")
    price_id: Optional[str] = Field(default=None, alias="priceId")
    current_period_start: Optional[datetime] = Field(default=None, alias="currentPeriodStart")
    current_period_end: Optional[datetime] = Field(default=None, alias="currentPeriodEnd")
    cancel_at_period_end: bool = Field(default=False, alias="cancelAtPeriodEnd")
    canceled_at: Optional[datetime] = Field(default=None, alias="canceledAt")
    last_payment_date: Optional[datetime] = Field(default=None, alias="lastPaymentDate")
    entitlement: Entitlement


class CreateCheckoutRequest(_CamelModel):
    """Request DTO for creating a checkout session."""
    price_id: Optional[str] = Field(default=None, alias="priceId")
    plan_name: Optional[str] = Field(default=None, alias="planName")
    success_url: Optional[str] = Field(default=None, alias="successUrl")
    cancel_url: Optional[str] = Field(default=None, alias="cancelUrl")


class PortalSessionRequest(_CamelModel):
    """Request DTO for creating a billing portal session."""
    return_url: Optional[str] = Field(default=None, alias="returnUrl")


class ProfileUpdateRequest(_CamelModel):
    """Request DTO for updating the account profile."""
    first_name: Optional[str] = Field(default=None, alias="firstName", max_length=100)
    last_name: Optional[str] = Field(default=None, alias="lastName", max_length=100)
    phone: Optional[str] = Field(default=None, max_length=40)


class AccountView(_CamelModel):
    """Response DTO for the account endpoint."""
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    phone: Optional[str] = None
    role: UserRole
    plan: Plan
    status: SubscriptionStatus
    entitlement: Entitlement
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


# =============================================================================
# Entitlement Rules (Business Logic)
# =============================================================================

def is_subscription_active(
    subscription: Subscription,
    now: Optional[datetime] = None,
) -> bool:
    """Active status and a billing period that has not run out."""
    if subscription.status != SubscriptionStatus.ACTIVE:
        return False
    if subscription.current_period_end is None:
        return True
    return subscription.current_period_end > (now or utc_now())


def entitlement_for(
    subscription: Subscription,
    role: UserRole = UserRole.USER,
    now: Optional[datetime] = None,
) -> Entitlement:
    """Derive feature flags from the mirrored subscription and user role."""
    active = is_subscription_active(subscription, now)

    if role == UserRole.ADMIN:
        features = list(Feature)
    else:
        features = [Feature.BASIC_WILL]
        if active:
            features.append(Feature.ADVANCED_FEATURES)
            if subscription.plan == Plan.UNLIMITED:
                features.append(Feature.UNLIMITED_UPDATES)

    return Entitlement(
        is_active=active,
        features=features,
        can_edit_completed=Feature.UNLIMITED_UPDATES in features,
        can_export=Feature.ADVANCED_FEATURES in features,
    )


def subscription_view(
    subscription: Subscription,
    source: SubscriptionSource,
    role: UserRole = UserRole.USER,
) -> SubscriptionView:
    """Build the response view of a subscription."""
    return SubscriptionView(
        plan=subscription.plan,
        status=subscription.status,
        source=source,
        stripe_customer_id=subscription.stripe_customer_id,
        stripe_subscription_id=subscription.stripe_subscription_id,
        price_id=subscription.price_id,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        cancel_at_period_end=subscription.cancel_at_period_end,
        canceled_at=subscription.canceled_at,
        last_payment_date=subscription.last_payment_date,
        entitlement=entitlement_for(subscription, role),
    )
