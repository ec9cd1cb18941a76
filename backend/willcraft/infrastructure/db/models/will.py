"""
Will Database Model

Sections, progress, documents and photos are stored as JSON documents.
``version`` is the optimistic concurrency token.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import JSON, Column, ForeignKey, Index, Uuid
from sqlmodel import Field

from willcraft.infrastructure.db.models.base import BaseModel


class WillModel(BaseModel, table=True):
    """Maps to the 'wills' table."""

    __tablename__ = "wills"
    __table_args__ = (
        Index("ix_wills_owner_updated", "owner_id", "updated_at"),
    )

    owner_id: UUID = Field(
        sa_column=Column(
            Uuid,
            ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        )
    )
    status: str = Field(default="draft", max_length=20)
    state_compliance: str = Field(max_length=2)

    sections: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    progress: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    documents: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    photos: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    version: int = Field(default=1, nullable=False)
    executed_at: Optional[datetime] = Field(default=None)
