from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, EmailStr, Field as PydField

from ..services.allocation import AllocationService, Selection
from ..services.views import AssignmentView, Contact
from .deps import get_allocation

router = APIRouter(prefix="/signup", tags=["signup"])


# -----------------------------
# Schemas (shared with /manage)
# -----------------------------

class SelectionIn(BaseModel):
    slot_id: int
    participant_index: Optional[int] = PydField(default=None, ge=0)
    participant_id: Optional[int] = None
    dish_name: Optional[str] = None

    def to_selection(self) -> Selection:
        return Selection(
            slot_id=self.slot_id,
            participant_index=self.participant_index,
            participant_id=self.participant_id,
            dish_name=self.dish_name,
        )


class AssignmentOut(BaseModel):
    participant_id: int
    participant_name: str
    slot_id: int
    station_name: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    title: Optional[str] = None
    dish_name: Optional[str] = None


class SignupIn(BaseModel):
    name: str = PydField(..., min_length=1)
    email: EmailStr
    phone: str = PydField(..., min_length=1)

    # defaults to [name] when empty
    participants: List[str] = PydField(default_factory=list)

    schedule: List[SelectionIn] = PydField(default_factory=list)
    potluck: List[SelectionIn] = PydField(default_factory=list)


class SignupOut(BaseModel):
    registration_id: int
    already_existed: bool
    detail: str
    # only returned for a brand-new registration; existing ones get it by email
    manage_url: Optional[str] = None
    assignments: List[AssignmentOut] = PydField(default_factory=list)


def assignment_out(view: AssignmentView) -> AssignmentOut:
    return AssignmentOut(**asdict(view))


@router.post("/{event_id}", response_model=SignupOut, status_code=201)
def submit(
    event_id: int,
    payload: SignupIn,
    response: Response,
    svc: AllocationService = Depends(get_allocation),
) -> SignupOut:
    result = svc.submit_registration(
        event_id,
        Contact(name=payload.name, email=str(payload.email), phone=payload.phone),
        participants=payload.participants,
        schedule_assignments=[s.to_selection() for s in payload.schedule],
        potluck_assignments=[s.to_selection() for s in payload.potluck],
    )

    if result.already_existed:
        response.status_code = 200
        return SignupOut(
            registration_id=result.registration_id,
            already_existed=True,
            detail="You are already signed up for this event. We sent your manage link again.",
        )

    return SignupOut(
        registration_id=result.registration_id,
        already_existed=False,
        detail="Thanks for signing up!",
        manage_url=result.manage_url,
        assignments=[assignment_out(a) for a in result.assignments],
    )
