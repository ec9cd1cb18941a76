"""
Base Repository for Willcraft

Repositories open their own short transactions from a session factory.
The factory defaults to the application's database manager and can be
replaced (tests bind repositories to a SQLite engine).
"""

from typing import AsyncContextManager, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from willcraft.infrastructure.db.database import get_db_manager, session_scope


def as_uuid(value: Union[str, UUID]) -> Optional[UUID]:
    """Parse an identifier, returning None when it is not a UUID."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class BaseRepository:
    """Shared session handling for the concrete repositories."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            return get_db_manager().session_factory
        return self._session_factory

    def _session(self) -> AsyncContextManager[AsyncSession]:
        """Open one transaction; committed on exit, rolled back on error."""
        return session_scope(self.session_factory)
