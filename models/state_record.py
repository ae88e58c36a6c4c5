"""SQLModel table holding serialized state snapshots."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class StateRecord(SQLModel, table=True):
    """One JSON document per storage key (local tier and remote server alike)."""

    __tablename__ = "app_state"

    key: str = Field(primary_key=True)
    state: str = Field(default="{}")
    updated_at: Optional[datetime] = Field(default_factory=utc_now)


__all__ = ["StateRecord"]
