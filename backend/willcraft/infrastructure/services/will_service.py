"""
Will Service

Orchestrates the will store, the section update engine and the
entitlement gate for the API layer.
"""

import asyncio
import logging
from typing import Any, List, Optional, Tuple

from willcraft.config.settings import Settings, get_settings
from willcraft.domain.subscription import Entitlement, Feature, User
from willcraft.domain.will import (
    SectionKey,
    Will,
    WillPatch,
    WillStatus,
    WillSummary,
    apply_patch,
    apply_section,
    parse_section_key,
    section_updates,
)
from willcraft.infrastructure.cache import TTLCache, get_will_list_cache
from willcraft.infrastructure.db.repositories.will_repository import (
    WillRepository,
    get_will_repository,
)
from willcraft.infrastructure.documents.will_pdf import (
    WillPdfRenderer,
    get_will_pdf_renderer,
)
from willcraft.infrastructure.exceptions import EntitlementError, NotFoundError
from willcraft.infrastructure.services.subscription_mirror import (
    SubscriptionMirror,
    get_subscription_mirror,
)


logger = logging.getLogger(__name__)


def _require_editable(will: Will, entitlement: Entitlement) -> None:
    """Completed and executed wills may only be edited with unlimited updates."""
    if will.status != WillStatus.DRAFT and not entitlement.can_edit_completed:
        raise EntitlementError(
            f"Editing a {will.status.value} will requires the Unlimited plan",
            feature=Feature.UNLIMITED_UPDATES.value,
        )


class WillService:
    """Will use cases, scoped to the calling user."""

    def __init__(
        self,
        will_repo: Optional[WillRepository] = None,
        mirror: Optional[SubscriptionMirror] = None,
        list_cache: Optional[TTLCache] = None,
        settings: Optional[Settings] = None,
        renderer: Optional[WillPdfRenderer] = None,
    ):
        self._wills = will_repo or get_will_repository()
        self._mirror = mirror or get_subscription_mirror()
        self._list_cache = list_cache if list_cache is not None else get_will_list_cache()
        self._settings = settings or get_settings()
        self._renderer = renderer or get_will_pdf_renderer()

    async def create(self, user: User, state_compliance: Optional[str]) -> Will:
        will = await self._wills.create(user.id, state_compliance)
        self._list_cache.evict(user.id)
        return will

    async def list(self, user: User) -> List[WillSummary]:
        """
        The user's wills, most recently updated first.

        Results are cached per user; edits may take up to the cache TTL
        to show up here.
        """
        cached = self._list_cache.get(user.id)
        if cached is not None:
            return cached

        wills = await self._wills.list(user.id, limit=self._settings.will_list_limit)
        self._list_cache.set(user.id, wills)
        return wills

    async def get(self, user: User, will_id: str) -> Will:
        will = await self._wills.get(will_id, user.id)
        if will is None:
            raise NotFoundError("Will not found", operation="get", table="wills")
        return will

    async def apply_section(
        self,
        user: User,
        will_id: str,
        section: Any,
        data: Any,
    ) -> Will:
        """
        Save one interview section and advance progress.

        Validation happens before any read; the merge itself runs inside
        the repository's compare-and-swap loop so concurrent section
        saves never drop each other's completed sections.

        Raises:
            ValidationError: unknown section or invalid payload
            NotFoundError: will missing or not owned by the user
            EntitlementError: will is no longer a draft and plan forbids edits
            ConflictError: concurrent writers kept winning
        """
        key: SectionKey = parse_section_key(section)
        updates = section_updates(key, data)
        entitlement = await self._mirror.entitlement(user)

        def mutate(current: Will) -> Will:
            _require_editable(current, entitlement)
            return apply_section(current, key, updates)

        will = await self._wills.update(will_id, user.id, mutate)
        if will is None:
            raise NotFoundError("Will not found", operation="update", table="wills")

        logger.info(
            f"Applied section {key.value} to will {will.id}: "
            f"{will.progress.percent_complete}% complete, status {will.status.value}"
        )
        return will

    async def update(self, user: User, will_id: str, patch: WillPatch) -> Will:
        """Whole-record update through the same gate and write path."""
        entitlement = await self._mirror.entitlement(user)

        def mutate(current: Will) -> Will:
            _require_editable(current, entitlement)
            return apply_patch(current, patch)

        will = await self._wills.update(will_id, user.id, mutate)
        if will is None:
            raise NotFoundError("Will not found", operation="update", table="wills")

        logger.info(f"Updated will {will.id} (version {will.version})")
        return will

    async def export_pdf(self, user: User, will_id: str) -> Tuple[Will, bytes]:
        """
        Render the user's will as a PDF.

        Raises:
            NotFoundError: will missing or not owned by the user
            EntitlementError: no active subscription
        """
        will = await self.get(user, will_id)
        entitlement = await self._mirror.entitlement(user)
        if not entitlement.can_export:
            raise EntitlementError(
                "Exporting a will requires an active subscription",
                feature=Feature.ADVANCED_FEATURES.value,
            )

        content = await asyncio.to_thread(self._renderer.render, will)
        logger.info(f"Exported will {will.id} for user {user.id}")
        return will, content

    async def delete(self, user: User, will_id: str) -> None:
        deleted = await self._wills.delete(will_id, user.id)
        if not deleted:
            raise NotFoundError("Will not found", operation="delete", table="wills")
        self._list_cache.evict(user.id)


_will_service_instance: Optional[WillService] = None


def get_will_service() -> WillService:
    """Get or create will service singleton."""
    global _will_service_instance

    if _will_service_instance is None:
        _will_service_instance = WillService()

    return _will_service_instance
