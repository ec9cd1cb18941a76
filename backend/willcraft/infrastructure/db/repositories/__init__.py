"""
Repository Layer for Willcraft

Exports all repository classes for dependency injection.
"""

from willcraft.infrastructure.db.repositories.base_repository import BaseRepository
from willcraft.infrastructure.db.repositories.user_repository import (
    UserRepository,
    get_user_repository,
)
from willcraft.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
    get_subscription_repository,
)
from willcraft.infrastructure.db.repositories.will_repository import (
    WillRepository,
    get_will_repository,
)
from willcraft.infrastructure.db.repositories.webhook_event_repository import (
    WebhookEventRepository,
    get_webhook_event_repository,
)


__all__ = [
    "BaseRepository",
    "UserRepository",
    "SubscriptionRepository",
    "WillRepository",
    "WebhookEventRepository",
    "get_user_repository",
    "get_subscription_repository",
    "get_will_repository",
    "get_webhook_event_repository",
]
