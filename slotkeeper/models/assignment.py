from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ScheduleAssignment(SQLModel, table=True):
    """
    Binding of a Participant to a schedule-mode Slot (time block).
    """

    __tablename__ = "schedule_assignments"
    __table_args__ = (
        UniqueConstraint("participant_id", "slot_id", name="uq_schedule_assignments_unique"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    participant_id: int = Field(foreign_key="participants.id", index=True)
    slot_id: int = Field(foreign_key="slots.id", index=True)

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=False))


class PotluckAssignment(SQLModel, table=True):
    """
    Binding of a Participant to a potluck item, with the dish they bring.
    """

    __tablename__ = "potluck_assignments"
    __table_args__ = (
        UniqueConstraint("participant_id", "slot_id", name="uq_potluck_assignments_unique"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    participant_id: int = Field(foreign_key="participants.id", index=True)
    slot_id: int = Field(foreign_key="slots.id", index=True)

    dish_name: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=False))
