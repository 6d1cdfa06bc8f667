from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field as PydField

from ..services.allocation import AllocationService
from ..services.views import ParticipantView, RegistrationView
from .deps import get_allocation
from .events import EventOut, SlotOut, event_out, slot_out
from .signup import AssignmentOut, SelectionIn, assignment_out

router = APIRouter(prefix="/manage", tags=["manage"])


# -----------------------------
# Schemas
# -----------------------------

class ParticipantOut(BaseModel):
    participant_id: int
    name: str


class RegistrationOut(BaseModel):
    registration_id: int
    event_id: int
    registrant_name: str
    registrant_email: str
    registrant_phone: Optional[str] = None
    email_opt_in: bool
    manage_token_expires_at: Optional[datetime] = None
    participants: List[ParticipantOut] = PydField(default_factory=list)


class ManageOut(BaseModel):
    event: EventOut
    registration: RegistrationOut
    assignments: List[AssignmentOut]
    slots: List[SlotOut]


class UpdateIn(BaseModel):
    """Full desired set. An empty set cancels the signup."""
    schedule: List[SelectionIn] = PydField(default_factory=list)
    potluck: List[SelectionIn] = PydField(default_factory=list)


class UpdateOut(BaseModel):
    deleted: bool
    registration: Optional[RegistrationOut] = None
    assignments: List[AssignmentOut] = PydField(default_factory=list)


class ParticipantIn(BaseModel):
    name: str = PydField(..., min_length=1)


class MergeParticipantIn(BaseModel):
    into_participant_id: int


class EmailPreferenceIn(BaseModel):
    opt_in: bool
    reason: Optional[str] = None


def registration_out(view: RegistrationView) -> RegistrationOut:
    return RegistrationOut(**asdict(view))


def participant_out(view: ParticipantView) -> ParticipantOut:
    return ParticipantOut(participant_id=view.participant_id, name=view.name)


# -----------------------------
# Routes
# -----------------------------

@router.get("/{token}", response_model=ManageOut)
def get_context(token: str, svc: AllocationService = Depends(get_allocation)) -> ManageOut:
    ctx = svc.get_manage_context(token)
    return ManageOut(
        event=event_out(ctx.event),
        registration=registration_out(ctx.registration),
        assignments=[assignment_out(a) for a in ctx.assignments],
        slots=[slot_out(s) for s in ctx.slots],
    )


@router.put("/{token}", response_model=UpdateOut)
def update(token: str, payload: UpdateIn, svc: AllocationService = Depends(get_allocation)) -> UpdateOut:
    result = svc.update_registration(
        token,
        schedule_assignments=[s.to_selection() for s in payload.schedule],
        potluck_assignments=[s.to_selection() for s in payload.potluck],
    )
    if result.deleted:
        return UpdateOut(deleted=True)
    return UpdateOut(
        deleted=False,
        registration=registration_out(result.registration),
        assignments=[assignment_out(a) for a in result.assignments],
    )


@router.put("/{token}/email-preference", response_model=RegistrationOut)
def email_preference(
    token: str, payload: EmailPreferenceIn, svc: AllocationService = Depends(get_allocation)
) -> RegistrationOut:
    return registration_out(svc.set_email_preference(token, payload.opt_in, payload.reason))


# ---- participants ----

@router.post("/{token}/participants", response_model=ParticipantOut, status_code=201)
def add_participant(token: str, payload: ParticipantIn, svc: AllocationService = Depends(get_allocation)) -> ParticipantOut:
    return participant_out(svc.add_participant(token, payload.name))


@router.patch("/{token}/participants/{participant_id}", response_model=ParticipantOut)
def rename_participant(
    token: str, participant_id: int, payload: ParticipantIn, svc: AllocationService = Depends(get_allocation)
) -> ParticipantOut:
    return participant_out(svc.rename_participant(token, participant_id, payload.name))


@router.post("/{token}/participants/{participant_id}/merge", response_model=ParticipantOut)
def merge_participant(
    token: str, participant_id: int, payload: MergeParticipantIn, svc: AllocationService = Depends(get_allocation)
) -> ParticipantOut:
    return participant_out(svc.merge_participants(token, participant_id, payload.into_participant_id))


@router.delete("/{token}/participants/{participant_id}")
def remove_participant(
    token: str,
    participant_id: int,
    drop_assignments: bool = False,
    svc: AllocationService = Depends(get_allocation),
) -> Dict[str, Any]:
    deleted = svc.remove_participant(token, participant_id, drop_assignments=drop_assignments)
    return {"ok": True, "registration_deleted": deleted}
