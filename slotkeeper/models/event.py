from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SignupMode(str, Enum):
    """
    How volunteers claim an event's slots.

    - SCHEDULE: time blocks with start/end; per-participant overlap is checked
    - POTLUCK: items with a serving range; each claim carries a dish name
    """

    SCHEDULE = "schedule"
    POTLUCK = "potluck"


class PublishState(str, Enum):
    """
    Visibility of an event.

    - DRAFT: admin only, no signups
    - PRIVATE: reachable by direct link, not listed
    - PUBLISHED: listed publicly
    """

    DRAFT = "draft"
    PRIVATE = "private"
    PUBLISHED = "published"


class Event(SQLModel, table=True):
    __tablename__ = "events"

    id: Optional[int] = Field(default=None, primary_key=True)

    name: str
    description: Optional[str] = Field(default=None)

    # Wall-clock event window (naive, event-local)
    date_start: datetime = Field(index=True, sa_type=DateTime(timezone=False))
    date_end: datetime = Field(index=True, sa_type=DateTime(timezone=False))

    signup_mode: SignupMode = Field(default=SignupMode.SCHEDULE, index=True)
    publish_state: PublishState = Field(default=PublishState.DRAFT, index=True)

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=False))

    def accepts_signups(self) -> bool:
        return self.publish_state in (PublishState.PRIVATE, PublishState.PUBLISHED)
