"""
Webhook Event Repository

Ledger of provider event ids, used to apply each event at most once.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, bindparam, text

from willcraft.domain.time import utc_now
from willcraft.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class WebhookEventRepository(BaseRepository):
    """Claim-then-apply bookkeeping for webhook deliveries."""

    async def claim(self, event_id: str, event_type: str) -> bool:
        """
        Record an event id as being processed.

        Returns:
            True if this call claimed the id, False if it was already claimed
        """
        async with self._session() as session:
            result = await session.execute(
                text(
                    "INSERT INTO processed_webhook_events (event_id, event_type, processed_at) "
                    "VALUES (:eid, :etype, :at) ON CONFLICT (event_id) DO NOTHING"
                ).bindparams(bindparam("at", type_=DateTime)),
                {"eid": event_id, "etype": event_type, "at": utc_now()},
            )
            return result.rowcount == 1

    async def release(self, event_id: str) -> None:
        """Drop a claim so a redelivery of the event is processed again."""
        async with self._session() as session:
            await session.execute(
                text("DELETE FROM processed_webhook_events WHERE event_id = :eid"),
                {"eid": event_id},
            )

    async def is_processed(self, event_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                text("SELECT 1 FROM processed_webhook_events WHERE event_id = :eid"),
                {"eid": event_id},
            )
            return result.scalar_one_or_none() is not None

    async def prune(self, older_than: datetime) -> int:
        """Delete ledger rows processed before ``older_than``."""
        async with self._session() as session:
            result = await session.execute(
                text(
                    "DELETE FROM processed_webhook_events WHERE processed_at < :cutoff"
                ).bindparams(bindparam("cutoff", type_=DateTime)),
                {"cutoff": older_than},
            )
            removed = result.rowcount

        logger.info(f"Pruned {removed} processed webhook events older than {older_than}")
        return removed


_webhook_event_repo_instance: Optional[WebhookEventRepository] = None


def get_webhook_event_repository() -> WebhookEventRepository:
    """Get or create webhook event repository singleton."""
    global _webhook_event_repo_instance

    if _webhook_event_repo_instance is None:
        _webhook_event_repo_instance = WebhookEventRepository()

    return _webhook_event_repo_instance
