from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from ..models.assignment import PotluckAssignment, ScheduleAssignment
from ..models.event import Event
from ..models.participant import Participant, name_key
from ..models.registration import Registration
from ..models.slot import Slot
from ..models.station import Station
from .conflict_checker import AssignmentDelta
from .errors import ConflictError, ValidationError
from .modes import ModeStrategy
from .views import AssignmentRow, SlotInfo

logger = logging.getLogger(__name__)

_ASSIGNMENT_MODELS = (ScheduleAssignment, PotluckAssignment)


@dataclass(frozen=True)
class DeltaResult:
    added: int
    removed: int
    updated: int


class CapacityStore:
    """
    Slot/assignment persistence primitives.

    Every method works inside the caller's session (one transaction per
    logical request, see database.session_scope). Nothing here commits.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    # -------------------------
    # Slots + occupancy
    # -------------------------

    def blocks_info(self, slot_ids: Iterable[int], *, lock: bool = False) -> Dict[int, SlotInfo]:
        """
        SlotInfo for each existing slot id (unknown ids are simply absent).

        lock=True takes row locks on the slots (FOR UPDATE) on engines that
        support it; SQLite is already serialized by BEGIN IMMEDIATE.
        """
        ids = sorted({int(i) for i in slot_ids})
        if not ids:
            return {}

        q = (
            select(Slot, Station, Event)
            .join(Station, Station.id == Slot.station_id)
            .join(Event, Event.id == Station.event_id)
            .where(col(Slot.id).in_(ids))
        )
        if lock:
            q = q.with_for_update(of=Slot)

        out: Dict[int, SlotInfo] = {}
        for slot, station, event in self.session.exec(q).all():
            out[slot.id] = SlotInfo(
                slot_id=slot.id,
                station_id=station.id,
                station_name=station.name,
                event_id=event.id,
                mode=event.signup_mode,
                capacity=int(slot.capacity_needed),
                start_time=slot.start_time,
                end_time=slot.end_time,
                title=slot.title,
            )
        return out

    def occupancy(self, slot_ids: Iterable[int]) -> Dict[int, int]:
        """
        Distinct participants holding each slot, across both assignment tables.
        """
        ids = sorted({int(i) for i in slot_ids})
        counts: Counter = Counter()
        if not ids:
            return {}

        for model in _ASSIGNMENT_MODELS:
            q = (
                select(model.slot_id, func.count(func.distinct(model.participant_id)))
                .where(col(model.slot_id).in_(ids))
                .group_by(model.slot_id)
            )
            for slot_id, cnt in self.session.exec(q).all():
                counts[int(slot_id)] += int(cnt or 0)
        return dict(counts)

    def reserved_count(self, slot_id: int) -> int:
        return self.occupancy([slot_id]).get(int(slot_id), 0)

    # -------------------------
    # Registrations + participants
    # -------------------------

    def registrations_by_email(self, event_id: int, email: str) -> List[Registration]:
        """
        All registrations for (event, lower(email)), oldest first.
        """
        q = (
            select(Registration)
            .where(
                Registration.event_id == event_id,
                func.lower(Registration.registrant_email) == (email or "").strip().lower(),
            )
            .order_by(col(Registration.created_at).asc(), col(Registration.id).asc())
        )
        return list(self.session.exec(q).all())

    def participants(self, registration_id: int) -> List[Participant]:
        q = (
            select(Participant)
            .where(Participant.registration_id == registration_id)
            .order_by(col(Participant.id).asc())
        )
        return list(self.session.exec(q).all())

    def add_participant(self, registration_id: int, name: str) -> Participant:
        cleaned = " ".join((name or "").split())
        if not cleaned:
            raise ValidationError("Participant names cannot be blank.")

        participant = Participant(
            registration_id=registration_id,
            participant_name=cleaned,
            name_key=name_key(cleaned),
        )
        self.session.add(participant)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Participant names must be unique.") from exc
        return participant

    def find_or_create_participant(self, registration_id: int, name: str) -> Participant:
        key = name_key(name)
        existing = self.session.exec(
            select(Participant).where(
                Participant.registration_id == registration_id,
                Participant.name_key == key,
            )
        ).first()
        if existing:
            return existing
        return self.add_participant(registration_id, name)

    def empty_registration_ids(self, event_id: Optional[int] = None) -> List[int]:
        """
        Registrations with zero participants (and therefore zero assignments).
        """
        has_participant = select(Participant.id).where(Participant.registration_id == Registration.id).exists()
        q = select(Registration.id).where(~has_participant)
        if event_id is not None:
            q = q.where(Registration.event_id == event_id)
        return [int(rid) for rid in self.session.exec(q).all()]

    def delete_registration_cascade(self, registration_id: int) -> bool:
        """
        Delete a registration with its participants and their assignments.
        Children go first so foreign keys hold at every flush.
        """
        reg = self.session.get(Registration, registration_id)
        if reg is None:
            return False

        participant_ids = [p.id for p in self.participants(registration_id)]
        if participant_ids:
            for model in _ASSIGNMENT_MODELS:
                for row in self.session.exec(select(model).where(col(model.participant_id).in_(participant_ids))).all():
                    self.session.delete(row)
            self.session.flush()

            for p in self.session.exec(select(Participant).where(col(Participant.id).in_(participant_ids))).all():
                self.session.delete(p)
            self.session.flush()

        self.session.delete(reg)
        self.session.flush()
        logger.debug("Deleted registration %s with %d participant(s)", registration_id, len(participant_ids))
        return True

    # -------------------------
    # Assignments
    # -------------------------

    def current_rows(self, participant_ids: Iterable[int]) -> List[AssignmentRow]:
        ids = sorted({int(i) for i in participant_ids})
        if not ids:
            return []

        rows: List[AssignmentRow] = []
        for row in self.session.exec(
            select(ScheduleAssignment).where(col(ScheduleAssignment.participant_id).in_(ids))
        ).all():
            rows.append(AssignmentRow(row.participant_id, row.slot_id))
        for row in self.session.exec(
            select(PotluckAssignment).where(col(PotluckAssignment.participant_id).in_(ids))
        ).all():
            rows.append(AssignmentRow(row.participant_id, row.slot_id, row.dish_name))
        return rows

    def assignment_count(self, registration_id: int) -> int:
        return len(self.current_rows(p.id for p in self.participants(registration_id)))

    def holders(self, slot_id: int) -> List[int]:
        """Participant ids holding the slot, across both assignment tables."""
        out: List[int] = []
        for model in _ASSIGNMENT_MODELS:
            out.extend(int(pid) for pid in self.session.exec(select(model.participant_id).where(model.slot_id == slot_id)).all())
        return sorted(set(out))

    def delete_slot_assignments(self, slot_ids: Iterable[int]) -> int:
        """Release every claim on the given slots. Returns how many rows went."""
        ids = sorted({int(i) for i in slot_ids})
        if not ids:
            return 0
        removed = 0
        for model in _ASSIGNMENT_MODELS:
            for row in self.session.exec(select(model).where(col(model.slot_id).in_(ids))).all():
                self.session.delete(row)
                removed += 1
        self.session.flush()
        return removed

    def _find(self, model, participant_id: int, slot_id: int):
        return self.session.exec(
            select(model).where(model.participant_id == participant_id, model.slot_id == slot_id)
        ).first()

    def apply_assignment_delta(self, strategy: ModeStrategy, delta: AssignmentDelta) -> DeltaResult:
        """
        Apply removes, then adds, then dish updates. Flushes but never commits.

        Removes look in both tables so rows written under another mode are
        cleaned up too. A uniqueness violation surfaces as ConflictError and
        aborts the caller's transaction.
        """
        removed = 0
        for r in delta.removes:
            for model in _ASSIGNMENT_MODELS:
                row = self._find(model, r.participant_id, r.slot_id)
                if row is not None:
                    self.session.delete(row)
                    removed += 1
        self.session.flush()

        model = strategy.assignment_model
        for r in delta.adds:
            if model is PotluckAssignment:
                self.session.add(PotluckAssignment(participant_id=r.participant_id, slot_id=r.slot_id, dish_name=r.dish_name))
            else:
                self.session.add(ScheduleAssignment(participant_id=r.participant_id, slot_id=r.slot_id))
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise ConflictError("That assignment already exists.") from exc

        updated = 0
        for r in delta.dish_updates:
            row = self._find(PotluckAssignment, r.participant_id, r.slot_id)
            if row is not None:
                row.dish_name = r.dish_name
                self.session.add(row)
                updated += 1
        self.session.flush()

        return DeltaResult(added=len(delta.adds), removed=removed, updated=updated)
