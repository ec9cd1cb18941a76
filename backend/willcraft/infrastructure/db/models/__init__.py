"""
SQLModel ORM Models for Willcraft

Import models here to register them with SQLModel.metadata for Alembic
and for ``create_all`` in tests.
"""

from willcraft.infrastructure.db.models.base import (
    BaseModel,
    TimestampMixin,
    UUIDMixin,
)
from willcraft.infrastructure.db.models.user import UserModel
from willcraft.infrastructure.db.models.subscription import SubscriptionModel
from willcraft.infrastructure.db.models.will import WillModel
from willcraft.infrastructure.db.models.processed_webhook_event import ProcessedWebhookEvent


__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    # Tables
    "UserModel",
    "SubscriptionModel",
    "WillModel",
    "ProcessedWebhookEvent",
]
