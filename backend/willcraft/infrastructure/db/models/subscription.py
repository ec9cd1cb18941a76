"""
Subscription Database Model

SQLModel table mirroring the payment provider's subscription state.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Column, ForeignKey, Uuid
from sqlmodel import Field

from willcraft.infrastructure.db.models.base import BaseModel


class SubscriptionModel(BaseModel, table=True):
    """
    Subscription table, one row per user.

    Maps to the 'subscriptions' table.
    """

    __tablename__ = "subscriptions"

    user_id: UUID = Field(
        sa_column=Column(
            Uuid,
            ForeignKey("users.id", ondelete="CASCADE"),
            unique=True,
            index=True,
            nullable=False,
        )
    )

    # Stripe IDs
    stripe_customer_id: Optional[str] = Field(default=None, unique=True, index=True)
    stripe_subscription_id: Optional[str] = Field(default=None, unique=True, index=True)
    price_id: Optional[str] = Field(default=None)

    plan: str = Field(default="essential")
    status: str = Field(default="inactive")

    # Billing period dates
    current_period_start: Optional[datetime] = Field(default=None)
    current_period_end: Optional[datetime] = Field(default=None)
    cancel_at_period_end: bool = Field(default=False)
    canceled_at: Optional[datetime] = Field(default=None)

    # Payment history
    last_payment_date: Optional[datetime] = Field(default=None)
    last_failed_payment: Optional[datetime] = Field(default=None)

    # Provider timestamp of the last applied snapshot event
    last_event_at: Optional[datetime] = Field(default=None)
