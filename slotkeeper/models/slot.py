from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


class Slot(SQLModel, table=True):
    """
    A capacity-bounded unit a participant can claim.

    Shared fields: station_id, capacity_needed.
    Schedule mode uses start_time/end_time ([start, end) semantics).
    Potluck mode uses title + servings_min/servings_max and item_order.
    Which set applies is decided by the owning event's signup_mode.
    """

    __tablename__ = "slots"

    id: Optional[int] = Field(default=None, primary_key=True)
    station_id: int = Field(foreign_key="stations.id", index=True)

    capacity_needed: int = Field(default=1)

    # schedule
    start_time: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime(timezone=False))
    end_time: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime(timezone=False))

    # potluck
    title: Optional[str] = Field(default=None)
    servings_min: Optional[int] = Field(default=None)
    servings_max: Optional[int] = Field(default=None)
    item_order: int = Field(default=0)
