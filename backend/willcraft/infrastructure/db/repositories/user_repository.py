"""
User Repository

Local account rows plus lazy provisioning of the default subscription.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from willcraft.domain.subscription import Plan, SubscriptionStatus, User, UserRole
from willcraft.domain.time import utc_now
from willcraft.infrastructure.db.models.subscription import SubscriptionModel
from willcraft.infrastructure.db.models.user import UserModel
from willcraft.infrastructure.db.models.will import WillModel
from willcraft.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    as_uuid,
)
from willcraft.infrastructure.exceptions import ConflictError, DatabaseError


logger = logging.getLogger(__name__)


class UserRepository(BaseRepository):
    """Repository for user accounts."""

    async def get(self, user_id: str) -> Optional[User]:
        user_uuid = as_uuid(user_id)
        if user_uuid is None:
            return None

        async with self._session() as session:
            model = await session.get(UserModel, user_uuid)
            return self._to_domain(model) if model else None

    async def get_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup; emails are stored lower-cased."""
        async with self._session() as session:
            result = await session.execute(
                select(UserModel).where(UserModel.email == email.strip().lower())
            )
            model = result.scalar_one_or_none()
            return self._to_domain(model) if model else None

    async def ensure(self, user_id: str, email: Optional[str] = None) -> User:
        """
        Get the user, creating it with a default subscription on first access.

        Two first requests racing each other both attempt the insert; the
        loser falls back to reading the winner's row.

        Raises:
            ConflictError: If the email already belongs to another account
        """
        user_uuid = as_uuid(user_id)
        if user_uuid is None:
            raise ValueError(f"Invalid user id: {user_id}")

        existing = await self.get(user_id)
        if existing:
            return existing

        now = utc_now()
        normalized_email = email.strip().lower() if email else None

        try:
            async with self._session() as session:
                session.add(UserModel(
                    id=user_uuid,
                    email=normalized_email,
                    role=UserRole.USER.value,
                    last_login_at=now,
                    created_at=now,
                    updated_at=now,
                ))
                await session.flush()
                session.add(SubscriptionModel(
                    user_id=user_uuid,
                    plan=Plan.ESSENTIAL.value,
                    status=SubscriptionStatus.INACTIVE.value,
                    created_at=now,
                    updated_at=now,
                ))
        except DatabaseError as e:
            if not isinstance(e.original_error, IntegrityError):
                raise
            existing = await self.get(user_id)
            if existing is None:
                logger.warning(f"Email of user {user_id} is already linked to another account")
                raise ConflictError(
                    "Email is already linked to another account",
                    operation="create",
                    table="users",
                    original_error=e.original_error,
                )
            logger.info(f"User {user_id} was provisioned concurrently")
            return existing

        logger.info(f"Provisioned user {user_id}")
        return await self.get(user_id)

    async def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Optional[User]:
        user_uuid = as_uuid(user_id)
        if user_uuid is None:
            return None

        if fields:
            async with self._session() as session:
                result = await session.execute(
                    update(UserModel)
                    .where(UserModel.id == user_uuid)
                    .values(**fields, updated_at=utc_now())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    return None

        return await self.get(user_id)

    async def delete(self, user_id: str) -> bool:
        """Delete the account together with its wills and subscription."""
        user_uuid = as_uuid(user_id)
        if user_uuid is None:
            return False

        async with self._session() as session:
            await session.execute(delete(WillModel).where(WillModel.owner_id == user_uuid))
            await session.execute(
                delete(SubscriptionModel).where(SubscriptionModel.user_id == user_uuid)
            )
            result = await session.execute(delete(UserModel).where(UserModel.id == user_uuid))
            deleted = result.rowcount > 0

        if deleted:
            logger.info(f"Deleted account {user_id}")
        return deleted

    @staticmethod
    def _to_domain(model: UserModel) -> User:
        return User(
            id=str(model.id),
            email=model.email,
            first_name=model.first_name,
            last_name=model.last_name,
            phone=model.phone,
            role=UserRole(model.role),
            last_login_at=model.last_login_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


_user_repo_instance: Optional[UserRepository] = None


def get_user_repository() -> UserRepository:
    """Get or create user repository singleton."""
    global _user_repo_instance

    if _user_repo_instance is None:
        _user_repo_instance = UserRepository()

    return _user_repo_instance
