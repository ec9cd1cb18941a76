"""
Processed Webhook Event Model

Ledger of provider event ids that have been claimed for processing.
"""

from datetime import datetime

from sqlmodel import Field, SQLModel

from willcraft.domain.time import utc_now


class ProcessedWebhookEvent(SQLModel, table=True):
    """Maps to the 'processed_webhook_events' table."""

    __tablename__ = "processed_webhook_events"

    event_id: str = Field(primary_key=True, max_length=255)
    event_type: str = Field(max_length=100)
    processed_at: datetime = Field(default_factory=utc_now, nullable=False)
