from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from ..models.event import SignupMode


@dataclass(frozen=True)
class AssignmentRow:
    """
    One (participant, slot) binding, current or desired.
    dish_name only carries meaning in potluck mode.
    """
    participant_id: int
    slot_id: int
    dish_name: Optional[str] = None

    @property
    def key(self) -> Tuple[int, int]:
        return (self.participant_id, self.slot_id)


@dataclass(frozen=True)
class SlotInfo:
    """
    What the allocation rules need to know about a slot: owning event,
    capacity, mode, and the [start, end) interval for schedule mode.
    """
    slot_id: int
    station_id: int
    station_name: str
    event_id: int
    mode: SignupMode
    capacity: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    title: Optional[str] = None


@dataclass(frozen=True)
class Contact:
    name: str
    email: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class EventSummary:
    event_id: int
    name: str
    date_start: datetime
    date_end: datetime
    signup_mode: SignupMode
    publish_state: str


@dataclass(frozen=True)
class SlotView:
    """
    Read model for rendering: a slot with its live occupancy.
    """
    slot_id: int
    station_id: int
    station_name: str
    station_order: int
    mode: SignupMode
    capacity: int
    reserved_count: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    title: Optional[str] = None
    servings_min: Optional[int] = None
    servings_max: Optional[int] = None

    @property
    def is_full(self) -> bool:
        return self.reserved_count >= self.capacity


@dataclass(frozen=True)
class AssignmentView:
    participant_id: int
    participant_name: str
    slot_id: int
    station_name: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    title: Optional[str] = None
    dish_name: Optional[str] = None


@dataclass(frozen=True)
class ParticipantView:
    participant_id: int
    name: str


@dataclass(frozen=True)
class RegistrationView:
    registration_id: int
    event_id: int
    registrant_name: str
    registrant_email: str
    registrant_phone: Optional[str]
    email_opt_in: bool
    manage_token_expires_at: Optional[datetime] = None
    participants: Tuple[ParticipantView, ...] = field(default_factory=tuple)
