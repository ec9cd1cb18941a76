"""
Delete processed webhook event ids older than the retention window.

The ledger only has to outlive the provider's redelivery window, so
old rows can be dropped. Run periodically, e.g. from cron:

    python scripts/prune_webhook_events.py
"""

import asyncio
import logging
import os
import sys
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from willcraft.config.settings import settings
from willcraft.domain.time import utc_now
from willcraft.infrastructure.db.database import close_db
from willcraft.infrastructure.db.repositories import get_webhook_event_repository


logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def main() -> None:
    cutoff = utc_now() - timedelta(days=settings.webhook_event_retention_days)
    try:
        removed = await get_webhook_event_repository().prune(cutoff)
        logger.info(f"Removed {removed} webhook ledger rows")
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
