"""
User Database Model

Local account rows. The primary key is the auth provider's subject id.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field

from willcraft.infrastructure.db.models.base import BaseModel


class UserModel(BaseModel, table=True):
    """Maps to the 'users' table."""

    __tablename__ = "users"

    email: Optional[str] = Field(default=None, unique=True, index=True, max_length=320)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=40)
    role: str = Field(default="user", max_length=20)
    last_login_at: Optional[datetime] = Field(default=None)
