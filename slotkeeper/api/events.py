from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr

from ..models.event import PublishState, SignupMode
from ..services.allocation import AllocationService
from ..services.views import EventSummary, SlotView
from .deps import get_allocation

router = APIRouter(prefix="/events", tags=["events"])


# -----------------------------
# Schemas
# -----------------------------

class EventOut(BaseModel):
    event_id: int
    name: str
    date_start: datetime
    date_end: datetime
    signup_mode: SignupMode
    publish_state: PublishState


class SlotOut(BaseModel):
    slot_id: int
    station_id: int
    station_name: str
    station_order: int
    mode: SignupMode
    capacity: int
    reserved_count: int
    is_full: bool
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    title: Optional[str] = None
    servings_min: Optional[int] = None
    servings_max: Optional[int] = None


class ReminderIn(BaseModel):
    email: EmailStr


def event_out(summary: EventSummary) -> EventOut:
    return EventOut(**asdict(summary))


def slot_out(view: SlotView) -> SlotOut:
    return SlotOut(**asdict(view), is_full=view.is_full)


# -----------------------------
# Routes
# -----------------------------

@router.get("/", response_model=List[EventOut])
def list_events(svc: AllocationService = Depends(get_allocation)) -> List[EventOut]:
    return [event_out(e) for e in svc.list_public_events()]


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: int, svc: AllocationService = Depends(get_allocation)) -> EventOut:
    return event_out(svc.get_event(event_id, public=True))


@router.get("/{event_id}/slots", response_model=List[SlotOut])
def list_slots(event_id: int, svc: AllocationService = Depends(get_allocation)) -> List[SlotOut]:
    return [slot_out(v) for v in svc.list_event_slots(event_id, public=True)]


@router.post("/{event_id}/reminder", status_code=202)
def send_reminder(event_id: int, payload: ReminderIn, svc: AllocationService = Depends(get_allocation)) -> Dict[str, Any]:
    # same answer whether or not a signup exists
    svc.send_manage_reminder(event_id, str(payload.email))
    return {"ok": True, "detail": "If that email has a signup for this event, a manage link is on its way."}
