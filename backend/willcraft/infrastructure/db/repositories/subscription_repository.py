"""
Subscription Repository

Data access layer for the mirrored subscription rows.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import case, or_, select, update

from willcraft.domain.subscription import (
    Plan,
    Subscription,
    SubscriptionStatus,
)
from willcraft.domain.time import utc_now
from willcraft.infrastructure.db.models.subscription import SubscriptionModel
from willcraft.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    as_uuid,
)


logger = logging.getLogger(__name__)


class SubscriptionRepository(BaseRepository):
    """
    Repository for subscription data access.

    Every write names its target row by user id or Stripe customer id and
    runs as a single UPDATE statement.
    """

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]:
        """
        Get subscription by user ID.

        Args:
            user_id: Internal user ID

        Returns:
            Subscription domain model or None
        """
        user_uuid = as_uuid(user_id)
        if user_uuid is None:
            return None

        async with self._session() as session:
            statement = select(SubscriptionModel).where(
                SubscriptionModel.user_id == user_uuid
            )
            result = await session.execute(statement)
            model = result.scalar_one_or_none()

            if model:
                return self._to_domain(model)

            return None

    async def get_by_stripe_customer_id(
        self,
        stripe_customer_id: str,
    ) -> Optional[Subscription]:
        """Get subscription by Stripe customer ID."""
        async with self._session() as session:
            statement = select(SubscriptionModel).where(
                SubscriptionModel.stripe_customer_id == stripe_customer_id
            )
            result = await session.execute(statement)
            model = result.scalar_one_or_none()

            if model:
                return self._to_domain(model)

            return None

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def update_by_user_id(
        self,
        user_id: str,
        fields: Dict[str, Any],
    ) -> Optional[Subscription]:
        """
        Update mirrored fields of a user's subscription.

        Returns:
            Updated subscription, or None when the user has none
        """
        user_uuid = as_uuid(user_id)
        if user_uuid is None:
            return None

        async with self._session() as session:
            result = await session.execute(
                update(SubscriptionModel)
                .where(SubscriptionModel.user_id == user_uuid)
                .values(**self._values(fields))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None

        logger.info(f"Updated subscription for user {user_id}: {sorted(fields)}")
        return await self.get_by_user_id(user_id)

    async def update_by_customer_id(
        self,
        stripe_customer_id: str,
        fields: Dict[str, Any],
        event_at: Optional[datetime] = None,
        skip_stale: bool = True,
    ) -> Tuple[Optional[Subscription], bool]:
        """
        Update the subscription linked to a Stripe customer.

        With ``event_at`` the write only lands when no newer event has
        been applied to the row. With ``skip_stale=False`` the write always
        lands and ``last_event_at`` only moves forward.

        Returns:
            (subscription or None when no row is linked, whether the write applied)
        """
        statement = update(SubscriptionModel).where(
            SubscriptionModel.stripe_customer_id == stripe_customer_id
        )
        values = dict(fields)

        if event_at is not None:
            not_newer = or_(
                SubscriptionModel.last_event_at.is_(None),
                SubscriptionModel.last_event_at <= event_at,
            )
            if skip_stale:
                statement = statement.where(not_newer)
                values["last_event_at"] = event_at
            else:
                values["last_event_at"] = case(
                    (not_newer, event_at),
                    else_=SubscriptionModel.last_event_at,
                )

        async with self._session() as session:
            result = await session.execute(
                statement
                .values(**self._values(values))
                .execution_options(synchronize_session=False)
            )
            applied = result.rowcount > 0

        subscription = await self.get_by_stripe_customer_id(stripe_customer_id)
        return subscription, applied

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    @staticmethod
    def _values(fields: Dict[str, Any]) -> Dict[str, Any]:
        values = {}
        for name, value in fields.items():
            if isinstance(value, (Plan, SubscriptionStatus)):
                value = value.value
            values[name] = value
        values["updated_at"] = utc_now()
        return values

    @staticmethod
    def _to_domain(model: SubscriptionModel) -> Subscription:
        """Convert database model to domain entity."""
        return Subscription(
            id=str(model.id),
            user_id=str(model.user_id),
            plan=Plan(model.plan),
            status=SubscriptionStatus(model.status),
            stripe_customer_id=model.stripe_customer_id,
            stripe_subscription_id=model.stripe_subscription_id,
            price_id=model.price_id,
            current_period_start=model.current_period_start,
            current_period_end=model.current_period_end,
            cancel_at_period_end=model.cancel_at_period_end or False,
            canceled_at=model.canceled_at,
            last_payment_date=model.last_payment_date,
            last_failed_payment=model.last_failed_payment,
            last_event_at=model.last_event_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


# =============================================================================
# Singleton Instance
# =============================================================================

_subscription_repo_instance: Optional[SubscriptionRepository] = None


def get_subscription_repository() -> SubscriptionRepository:
    """Get or create subscription repository singleton."""
    global _subscription_repo_instance

    if _subscription_repo_instance is None:
        _subscription_repo_instance = SubscriptionRepository()

    return _subscription_repo_instance
