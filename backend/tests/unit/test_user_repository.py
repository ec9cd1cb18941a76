"""
Unit tests for UserRepository and the transaction wrapper it shares with
the other repositories.
"""

import pytest
from sqlalchemy.exc import OperationalError

from willcraft.domain.subscription import Plan, SubscriptionStatus
from willcraft.infrastructure.db.database import create_engine_for_url, create_session_factory
from willcraft.infrastructure.db.repositories import UserRepository
from willcraft.infrastructure.exceptions import ConflictError, DatabaseError

from tests.factories import OTHER_USER_ID, USER_ID


@pytest.fixture
async def schemaless_repo(tmp_path):
    """Repository on a database whose tables were never created."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    yield UserRepository(create_session_factory(engine))
    await engine.dispose()


class TestProvisioning:

    async def test_ensure_creates_default_subscription(self, user_repo, subscription_repo):
        user = await user_repo.ensure(USER_ID, " Testator@Example.com ")

        assert user.email == "testator@example.com"
        subscription = await subscription_repo.get_by_user_id(USER_ID)
        assert subscription.plan == Plan.ESSENTIAL
        assert subscription.status == SubscriptionStatus.INACTIVE

    async def test_ensure_is_idempotent(self, user_repo):
        first = await user_repo.ensure(USER_ID, "testator@example.com")
        second = await user_repo.ensure(USER_ID, "testator@example.com")

        assert first.id == second.id

    async def test_email_owned_by_another_account(self, user_repo):
        await user_repo.ensure(USER_ID, "testator@example.com")

        with pytest.raises(ConflictError) as exc_info:
            await user_repo.ensure(OTHER_USER_ID, "TESTATOR@example.com")

        assert exc_info.value.status_code == 409
        assert exc_info.value.details == {"operation": "create", "table": "users"}
        assert await user_repo.get(OTHER_USER_ID) is None


class TestStorageFailures:

    async def test_sql_errors_become_database_error(self, schemaless_repo):
        with pytest.raises(DatabaseError) as exc_info:
            await schemaless_repo.get(USER_ID)

        assert exc_info.value.status_code == 500
        assert isinstance(exc_info.value.original_error, OperationalError)
