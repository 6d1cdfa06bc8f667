from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, EmailStr, Field as PydField

from ..models.event import PublishState, SignupMode
from ..services.allocation import AllocationService
from ..services.views import Contact
from .deps import get_allocation, require_admin
from .events import EventOut, SlotOut, event_out, slot_out
from .manage import RegistrationOut, registration_out
from .signup import AssignmentOut, assignment_out

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# -----------------------------
# Schemas
# -----------------------------

class EventCreate(BaseModel):
    name: str = PydField(..., min_length=1)
    description: Optional[str] = None
    date_start: datetime
    date_end: datetime
    signup_mode: SignupMode = SignupMode.SCHEDULE
    publish_state: PublishState = PublishState.DRAFT


class PublishIn(BaseModel):
    state: PublishState


class StationCreate(BaseModel):
    name: str = PydField(..., min_length=1)
    description_overview: Optional[str] = None
    description_tasks: Optional[str] = None
    station_order: Optional[int] = None


class StationOrderIn(BaseModel):
    station_ids: List[int]


class SlotCreate(BaseModel):
    capacity_needed: int = PydField(default=1, ge=1)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    title: Optional[str] = None
    servings_min: Optional[int] = PydField(default=None, ge=0)
    servings_max: Optional[int] = PydField(default=None, ge=0)
    item_order: int = 0


class EventUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    date_start: Optional[datetime] = None
    date_end: Optional[datetime] = None


class StationUpdate(BaseModel):
    name: str = PydField(..., min_length=1)
    description_overview: Optional[str] = None
    description_tasks: Optional[str] = None


class SlotUpdate(BaseModel):
    capacity_needed: Optional[int] = PydField(default=None, ge=1)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    title: Optional[str] = None
    servings_min: Optional[int] = PydField(default=None, ge=0)
    servings_max: Optional[int] = PydField(default=None, ge=0)
    item_order: Optional[int] = None


class MoveIn(BaseModel):
    target_slot_id: int


class AdminAssignIn(BaseModel):
    name: str = PydField(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    participant_name: Optional[str] = None
    dish_name: Optional[str] = None


class AdminAssignOut(BaseModel):
    registration_id: int
    participant_id: int
    assignments: List[AssignmentOut]


class MergeIn(BaseModel):
    email: EmailStr
    preferred_registration_id: Optional[int] = None


class RosterEntryOut(BaseModel):
    registration: RegistrationOut
    assignments: List[AssignmentOut]


# -----------------------------
# Catalog
# -----------------------------

@router.post("/events", response_model=EventOut, status_code=201)
def create_event(payload: EventCreate, svc: AllocationService = Depends(get_allocation)) -> EventOut:
    summary = svc.create_event(
        payload.name,
        payload.date_start,
        payload.date_end,
        description=payload.description,
        signup_mode=payload.signup_mode,
        publish_state=payload.publish_state,
    )
    return event_out(summary)


@router.post("/events/{event_id}/publish", response_model=EventOut)
def publish(event_id: int, payload: PublishIn, svc: AllocationService = Depends(get_allocation)) -> EventOut:
    return event_out(svc.set_publish_state(event_id, payload.state))


@router.get("/events/{event_id}/slots", response_model=List[SlotOut])
def list_slots(event_id: int, svc: AllocationService = Depends(get_allocation)) -> List[SlotOut]:
    return [slot_out(v) for v in svc.list_event_slots(event_id)]


@router.post("/events/{event_id}/stations", status_code=201)
def create_station(event_id: int, payload: StationCreate, svc: AllocationService = Depends(get_allocation)) -> Dict[str, Any]:
    station_id = svc.create_station(
        event_id,
        payload.name,
        description_overview=payload.description_overview,
        description_tasks=payload.description_tasks,
        station_order=payload.station_order,
    )
    return {"id": station_id}


@router.put("/events/{event_id}/stations/order")
def reorder_stations(event_id: int, payload: StationOrderIn, svc: AllocationService = Depends(get_allocation)) -> Dict[str, Any]:
    svc.reorder_stations(event_id, payload.station_ids)
    return {"ok": True}


@router.post("/stations/{station_id}/slots", status_code=201)
def create_slot(station_id: int, payload: SlotCreate, svc: AllocationService = Depends(get_allocation)) -> Dict[str, Any]:
    slot_id = svc.create_slot(station_id, **payload.model_dump())
    return {"id": slot_id}


@router.patch("/events/{event_id}", response_model=EventOut)
def update_event(event_id: int, payload: EventUpdate, svc: AllocationService = Depends(get_allocation)) -> EventOut:
    return event_out(svc.update_event(event_id, **payload.model_dump()))


@router.delete("/events/{event_id}", status_code=204)
def delete_event(event_id: int, svc: AllocationService = Depends(get_allocation)) -> Response:
    svc.delete_event(event_id)
    return Response(status_code=204)


@router.put("/stations/{station_id}")
def update_station(station_id: int, payload: StationUpdate, svc: AllocationService = Depends(get_allocation)) -> Dict[str, Any]:
    svc.update_station(
        station_id,
        payload.name,
        description_overview=payload.description_overview,
        description_tasks=payload.description_tasks,
    )
    return {"ok": True}


@router.delete("/stations/{station_id}")
def delete_station(station_id: int, svc: AllocationService = Depends(get_allocation)) -> Dict[str, Any]:
    return {"ok": True, "released": svc.delete_station(station_id)}


@router.patch("/slots/{slot_id}")
def update_slot(slot_id: int, payload: SlotUpdate, svc: AllocationService = Depends(get_allocation)) -> Dict[str, Any]:
    svc.update_slot(slot_id, **payload.model_dump(exclude_none=True))
    return {"ok": True}


@router.delete("/slots/{slot_id}")
def delete_slot(slot_id: int, svc: AllocationService = Depends(get_allocation)) -> Dict[str, Any]:
    return {"ok": True, "released": svc.delete_slot(slot_id)}


# -----------------------------
# Registrations
# -----------------------------

@router.get("/events/{event_id}/roster", response_model=List[RosterEntryOut])
def roster(event_id: int, svc: AllocationService = Depends(get_allocation)) -> List[RosterEntryOut]:
    return [
        RosterEntryOut(
            registration=registration_out(entry.registration),
            assignments=[assignment_out(a) for a in entry.assignments],
        )
        for entry in svc.list_roster(event_id)
    ]


@router.post("/slots/{slot_id}/assignments", response_model=AdminAssignOut, status_code=201)
def add_assignment(slot_id: int, payload: AdminAssignIn, svc: AllocationService = Depends(get_allocation)) -> AdminAssignOut:
    result = svc.admin_add_assignment(
        slot_id,
        Contact(name=payload.name, email=str(payload.email), phone=payload.phone),
        participant_name=payload.participant_name,
        dish_name=payload.dish_name,
    )
    return AdminAssignOut(
        registration_id=result.registration_id,
        participant_id=result.participant_id,
        assignments=[assignment_out(a) for a in result.assignments],
    )


@router.post("/slots/{slot_id}/assignments/{participant_id}/move", response_model=AdminAssignOut)
def move_assignment(
    slot_id: int, participant_id: int, payload: MoveIn, svc: AllocationService = Depends(get_allocation)
) -> AdminAssignOut:
    result = svc.admin_move_assignment(slot_id, participant_id, payload.target_slot_id)
    return AdminAssignOut(
        registration_id=result.registration_id,
        participant_id=result.participant_id,
        assignments=[assignment_out(a) for a in result.assignments],
    )


@router.delete("/slots/{slot_id}/assignments/{participant_id}", status_code=204)
def release_assignment(slot_id: int, participant_id: int, svc: AllocationService = Depends(get_allocation)) -> Response:
    svc.admin_release_assignment(slot_id, participant_id)
    return Response(status_code=204)


@router.post("/events/{event_id}/merge")
def merge_duplicates(event_id: int, payload: MergeIn, svc: AllocationService = Depends(get_allocation)) -> Dict[str, Any]:
    survivor = svc.merge_duplicates(event_id, str(payload.email), payload.preferred_registration_id)
    return {"ok": True, "registration_id": survivor}


@router.delete("/registrations/{registration_id}", status_code=204)
def delete_registration(registration_id: int, svc: AllocationService = Depends(get_allocation)) -> Response:
    svc.delete_registration(registration_id)
    return Response(status_code=204)


@router.post("/events/{event_id}/cleanup")
def cleanup(event_id: int, svc: AllocationService = Depends(get_allocation)) -> Dict[str, Any]:
    return {"ok": True, "deleted": svc.cleanup_empty_registrations(event_id)}
