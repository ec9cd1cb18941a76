"""
Will Repository

Owner-scoped persistence of will records. Every query filters on the
owner, so a will belonging to someone else behaves exactly like a
missing one.

Updates use optimistic concurrency on the ``version`` column: read the
record, compute the new state, then write it back only if the version
is unchanged. A lost race re-reads and recomputes, up to a bounded
number of attempts.
"""

import asyncio
import logging
import random
from typing import Callable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from willcraft.config.settings import settings
from willcraft.domain.time import utc_now
from willcraft.domain.will import (
    Progress,
    Will,
    WillStatus,
    WillSummary,
    empty_sections,
    normalize_jurisdiction,
)
from willcraft.infrastructure.db.models.will import WillModel
from willcraft.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    as_uuid,
)
from willcraft.infrastructure.exceptions import ConflictError


logger = logging.getLogger(__name__)

# Upper bound of the jittered pause between compare-and-swap attempts
CAS_BACKOFF_SECONDS = 0.02

WillMutation = Callable[[Will], Will]


class WillRepository(BaseRepository):
    """Repository for will records."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        max_attempts: Optional[int] = None,
    ):
        super().__init__(session_factory)
        self._max_attempts = max_attempts or settings.section_update_max_attempts

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get(self, will_id: str, owner_id: str) -> Optional[Will]:
        """
        Get a will owned by ``owner_id``.

        Returns:
            Will, or None when it is missing, foreign or the id is malformed
        """
        will_uuid, owner_uuid = as_uuid(will_id), as_uuid(owner_id)
        if will_uuid is None or owner_uuid is None:
            return None

        async with self._session() as session:
            model = await self._select_owned(session, will_uuid, owner_uuid)
            return self._to_domain(model) if model else None

    async def list(self, owner_id: str, limit: int = 50) -> List[WillSummary]:
        """Most recently updated wills of an owner, at most ``limit``."""
        owner_uuid = as_uuid(owner_id)
        if owner_uuid is None:
            return []

        async with self._session() as session:
            result = await session.execute(
                select(WillModel)
                .where(WillModel.owner_id == owner_uuid)
                .order_by(WillModel.updated_at.desc(), WillModel.created_at.desc())
                .limit(limit)
            )
            return [self._to_summary(model) for model in result.scalars().all()]

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def create(self, owner_id: str, state_compliance: Optional[str]) -> Will:
        """
        Create an empty draft will.

        Raises:
            ValidationError: If the jurisdiction is missing or unknown
        """
        jurisdiction = normalize_jurisdiction(state_compliance)
        owner_uuid = as_uuid(owner_id)
        if owner_uuid is None:
            raise ValueError(f"Invalid owner id: {owner_id}")

        now = utc_now()
        model = WillModel(
            owner_id=owner_uuid,
            status=WillStatus.DRAFT.value,
            state_compliance=jurisdiction,
            sections=empty_sections(),
            progress=Progress().model_dump(by_alias=True),
            documents={},
            photos=[],
            version=1,
            created_at=now,
            updated_at=now,
        )

        async with self._session() as session:
            session.add(model)

        logger.info(f"Created will {model.id} for owner {owner_id} ({jurisdiction})")
        return self._to_domain(model)

    async def update(
        self,
        will_id: str,
        owner_id: str,
        mutate: WillMutation,
    ) -> Optional[Will]:
        """
        Apply ``mutate`` to the stored will with compare-and-swap.

        ``mutate`` receives the freshly read will and returns the new
        state. It may run more than once and must not have side effects;
        exceptions it raises propagate without writing anything.

        Returns:
            The stored result, or None when the will is not visible

        Raises:
            ConflictError: When every attempt lost to a concurrent writer
        """
        will_uuid, owner_uuid = as_uuid(will_id), as_uuid(owner_id)
        if will_uuid is None or owner_uuid is None:
            return None

        for attempt in range(1, self._max_attempts + 1):
            async with self._session() as session:
                model = await self._select_owned(session, will_uuid, owner_uuid)
                if model is None:
                    return None
                current = self._to_domain(model)

            updated = mutate(current)
            now = utc_now()
            next_version = current.version + 1

            async with self._session() as session:
                result = await session.execute(
                    update(WillModel)
                    .where(
                        WillModel.id == will_uuid,
                        WillModel.owner_id == owner_uuid,
                        WillModel.version == current.version,
                    )
                    .values(
                        status=updated.status.value,
                        sections=updated.sections,
                        progress=updated.progress.model_dump(by_alias=True),
                        documents=updated.documents,
                        photos=updated.photos,
                        executed_at=updated.executed_at,
                        version=next_version,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )

            if result.rowcount == 1:
                return updated.model_copy(update={
                    "version": next_version,
                    "updated_at": now,
                })

            logger.warning(
                f"Version conflict on will {will_id} "
                f"(attempt {attempt}/{self._max_attempts})"
            )
            await asyncio.sleep(random.uniform(0, CAS_BACKOFF_SECONDS * attempt))

        raise ConflictError(
            "Will was modified concurrently, please retry",
            operation="update",
            table="wills",
        )

    async def delete(self, will_id: str, owner_id: str) -> bool:
        """Delete a will. Returns False when it is not visible to the owner."""
        will_uuid, owner_uuid = as_uuid(will_id), as_uuid(owner_id)
        if will_uuid is None or owner_uuid is None:
            return False

        async with self._session() as session:
            result = await session.execute(
                delete(WillModel).where(
                    WillModel.id == will_uuid,
                    WillModel.owner_id == owner_uuid,
                )
            )
            deleted = result.rowcount > 0

        if deleted:
            logger.info(f"Deleted will {will_id}")
        return deleted

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    async def _select_owned(session: AsyncSession, will_uuid, owner_uuid) -> Optional[WillModel]:
        result = await session.execute(
            select(WillModel).where(
                WillModel.id == will_uuid,
                WillModel.owner_id == owner_uuid,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _to_domain(model: WillModel) -> Will:
        """Convert database model to domain entity."""
        sections = empty_sections()
        sections.update(model.sections or {})

        return Will(
            id=str(model.id),
            owner_id=str(model.owner_id),
            status=WillStatus(model.status),
            state_compliance=model.state_compliance,
            sections=sections,
            progress=Progress.model_validate(model.progress or {}),
            documents=model.documents or {},
            photos=model.photos or [],
            version=model.version,
            executed_at=model.executed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _to_summary(model: WillModel) -> WillSummary:
        progress = Progress.model_validate(model.progress or {})
        return WillSummary(
            id=str(model.id),
            status=WillStatus(model.status),
            state_compliance=model.state_compliance,
            progress=progress,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


_will_repo_instance: Optional[WillRepository] = None


def get_will_repository() -> WillRepository:
    """Get or create will repository singleton."""
    global _will_repo_instance

    if _will_repo_instance is None:
        _will_repo_instance = WillRepository()

    return _will_repo_instance
