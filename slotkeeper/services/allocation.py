from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from ..config import Settings, settings as default_settings
from ..database import session_scope
from ..models.event import Event, SignupMode
from ..models.participant import Participant, name_key
from ..models.registration import Registration
from ..models.slot import Slot
from ..models.station import Station
from . import catalog
from .capacity_store import CapacityStore
from .errors import AllocationError, ConflictError, ExpiredError, NotFoundError, ValidationError
from .merge import delete_empty_registrations, merge_duplicate_registrations
from .notifier import Notifier, build_notifier
from .reconciler import RegistrationReconciler
from .tokens import ManageTokenService, utcnow
from .views import (
    AssignmentRow,
    AssignmentView,
    Contact,
    EventSummary,
    ParticipantView,
    RegistrationView,
    SlotView,
)

logger = logging.getLogger(__name__)


# -------------------------
# Inputs / results
# -------------------------

@dataclass(frozen=True)
class Selection:
    """
    One requested claim.

    - signup: participant_index points into the submitted participant names
      (defaults to the first one)
    - update: participant_id names an existing participant (may be omitted
      when the registration has exactly one)
    """
    slot_id: int
    participant_index: Optional[int] = None
    participant_id: Optional[int] = None
    dish_name: Optional[str] = None


@dataclass(frozen=True)
class SubmitResult:
    registration_id: int
    token: str
    already_existed: bool
    manage_url: str
    assignments: Tuple[AssignmentView, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class UpdateResult:
    registration: Optional[RegistrationView]
    assignments: Tuple[AssignmentView, ...] = field(default_factory=tuple)
    deleted: bool = False


@dataclass(frozen=True)
class AdminAddResult:
    registration_id: int
    participant_id: int
    assignments: Tuple[AssignmentView, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ManageContext:
    event: EventSummary
    registration: RegistrationView
    assignments: Tuple[AssignmentView, ...]
    slots: Tuple[SlotView, ...]


@dataclass(frozen=True)
class RosterEntry:
    registration: RegistrationView
    assignments: Tuple[AssignmentView, ...]


@dataclass(frozen=True)
class _Outbound:
    """Everything a notification needs, captured before the session closes."""
    contact: Contact
    event: EventSummary
    assignments: Tuple[AssignmentView, ...]
    manage_url: str
    is_update: bool
    opted_in: bool


# -------------------------
# Input cleaning
# -------------------------

def _clean_text(value: Optional[str]) -> str:
    return " ".join((value or "").split())


def clean_email(raw: Optional[str]) -> str:
    raw = (raw or "").strip()
    if not raw:
        raise ValidationError("Email is required.")
    try:
        return validate_email(raw, check_deliverability=False).normalized.lower()
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email address: {exc}") from None


def clean_contact(contact: Contact, *, require_phone: bool = True) -> Contact:
    name = _clean_text(contact.name)
    phone = _clean_text(contact.phone)
    if not name or not (contact.email or "").strip() or (require_phone and not phone):
        raise ValidationError(
            "Name, email, and phone are required." if require_phone else "Name and email are required."
        )
    return Contact(name=name, email=clean_email(contact.email), phone=phone or None)


def clean_participant_names(names: Sequence[str], fallback: str) -> List[str]:
    cleaned = [_clean_text(n) for n in (names or [])]
    if any(not n for n in cleaned):
        raise ValidationError("Participant names cannot be blank.")
    if not cleaned:
        cleaned = [fallback]

    keys = [name_key(n) for n in cleaned]
    if len(set(keys)) != len(keys):
        raise ValidationError("Participant names must be unique.")
    return cleaned


def _selections_for_mode(
    mode: SignupMode,
    schedule_assignments: Sequence[Selection],
    potluck_assignments: Sequence[Selection],
) -> List[Selection]:
    if mode == SignupMode.POTLUCK:
        chosen, other = potluck_assignments, schedule_assignments
    else:
        chosen, other = schedule_assignments, potluck_assignments
    if other:
        raise ValidationError(f"This event only accepts {mode.value} selections.")
    return list(chosen or [])


class AllocationService:
    """
    Public allocation operations. Each call is one unit of work against
    the injected engine; notifications go out only after commit.
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        notifier: Optional[Notifier] = None,
        cfg: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = cfg or default_settings
        self.engine = engine
        self.notifier = notifier or build_notifier(self.settings)
        self.clock = clock

    # -------------------------
    # Plumbing
    # -------------------------

    def _scope(self):
        return session_scope(self.engine)

    def _tokens(self, session: Session) -> ManageTokenService:
        return ManageTokenService(
            session,
            ttl_days=self.settings.manage_token_ttl_days,
            pepper=self.settings.manage_token_pepper,
            clock=self.clock,
        )

    def _housekeeping(self, session: Session, event_id: Optional[int] = None) -> None:
        self._tokens(session).prune_expired()
        if event_id is not None:
            delete_empty_registrations(session, event_id)

    def _merge_best_effort(self, session: Session, event_id: int, email: str) -> Optional[int]:
        """
        Merge duplicates inside a savepoint. On failure the savepoint is rolled
        back, the oldest registration is used, and the caller carries on.
        """
        try:
            with session.begin_nested():
                return merge_duplicate_registrations(session, event_id, email)
        except (AllocationError, SQLAlchemyError):
            logger.warning("Duplicate merge failed for event %s; continuing without it", event_id, exc_info=True)
        regs = CapacityStore(session).registrations_by_email(event_id, email)
        return regs[0].id if regs else None

    def _resolve(self, session: Session, token: str) -> Registration:
        reg = self._tokens(session).resolve(token)
        if reg is None:
            raise ExpiredError("This manage link is invalid or has expired. Request a new one.")
        return reg

    def _deliver(self, out: Optional[_Outbound]) -> None:
        if out is None:
            return
        if not out.opted_in:
            logger.info("Skipping notification for event %s: registrant opted out of email", out.event.event_id)
            return
        try:
            self.notifier.notify(out.contact, out.event, out.assignments, out.manage_url, out.is_update)
        except Exception:
            logger.exception("Notification failed for event %s", out.event.event_id)

    def _outbound(
        self, session: Session, reg: Registration, token: str, *, is_update: bool
    ) -> _Outbound:
        return _Outbound(
            contact=Contact(reg.registrant_name, reg.registrant_email, reg.registrant_phone),
            event=catalog.event_summary(session, reg.event_id),
            assignments=_assignment_views(session, reg.id),
            manage_url=self.settings.manage_url(token),
            is_update=is_update,
            opted_in=bool(reg.email_opt_in),
        )

    # -------------------------
    # Read side
    # -------------------------

    def get_event(self, event_id: int, *, public: bool = False) -> EventSummary:
        with self._scope() as session:
            event = _visible_event(session, event_id, public)
            return catalog.event_summary(session, event.id)

    def list_public_events(self) -> List[EventSummary]:
        with self._scope() as session:
            return catalog.list_public_events(session, self.clock())

    def list_event_slots(self, event_id: int, *, public: bool = False) -> List[SlotView]:
        """Stations in manual order, each with its slots and live occupancy."""
        with self._scope() as session:
            _visible_event(session, event_id, public)
            return list(_slot_views(session, event_id))

    # -------------------------
    # Signup
    # -------------------------

    def submit_registration(
        self,
        event_id: int,
        contact: Contact,
        participants: Sequence[str] = (),
        schedule_assignments: Sequence[Selection] = (),
        potluck_assignments: Sequence[Selection] = (),
    ) -> SubmitResult:
        """
        New or returning signup.

        Duplicates for the contact are merged first. A registration that
        already holds assignments is never written to: its token is rotated
        and the manage link re-sent instead (already_existed=True). One with
        no assignments is reused rather than duplicated.
        """
        contact = clean_contact(contact)
        names = clean_participant_names(participants, contact.name)

        with self._scope() as session:
            self._housekeeping(session, event_id)
            event = _visible_event(session, event_id, public=True)
            mode = SignupMode(event.signup_mode)

            selections = _selections_for_mode(mode, schedule_assignments, potluck_assignments)
            if not selections:
                raise ValidationError("Please select at least one slot.")
            for sel in selections:
                idx = 0 if sel.participant_index is None else sel.participant_index
                if idx < 0 or idx >= len(names):
                    raise ValidationError("Selection refers to an unknown participant.")

            store = CapacityStore(session)
            tokens = self._tokens(session)

            survivor_id = self._merge_best_effort(session, event_id, contact.email)
            existing = session.get(Registration, survivor_id) if survivor_id else None

            if existing is not None and store.assignment_count(existing.id) > 0:
                token = tokens.issue(existing)
                out = self._outbound(session, existing, token, is_update=False)
                result = SubmitResult(
                    registration_id=existing.id,
                    token=token,
                    already_existed=True,
                    manage_url=out.manage_url,
                    assignments=out.assignments,
                )
                logger.info("Signup for event %s matched registration %s; manage link re-sent", event_id, existing.id)
            else:
                if existing is None:
                    reg = Registration(
                        event_id=event_id,
                        registrant_name=contact.name,
                        registrant_email=contact.email,
                        registrant_phone=contact.phone,
                    )
                    session.add(reg)
                    session.flush()
                    logger.info("Created registration %s for event %s", reg.id, event_id)
                else:
                    reg = existing
                    reg.registrant_name = contact.name
                    reg.registrant_phone = contact.phone
                    session.add(reg)
                    logger.info("Folded signup into empty registration %s for event %s", reg.id, event_id)

                people = [store.find_or_create_participant(reg.id, n) for n in names]
                desired = [
                    AssignmentRow(
                        people[0 if sel.participant_index is None else sel.participant_index].id,
                        int(sel.slot_id),
                        sel.dish_name,
                    )
                    for sel in selections
                ]
                RegistrationReconciler(store).reconcile(reg.id, desired, event_id=event_id)

                token = tokens.issue(reg)
                out = self._outbound(session, reg, token, is_update=False)
                result = SubmitResult(
                    registration_id=reg.id,
                    token=token,
                    already_existed=False,
                    manage_url=out.manage_url,
                    assignments=out.assignments,
                )

        self._deliver(out)
        return result

    def admin_add_assignment(
        self,
        slot_id: int,
        contact: Contact,
        participant_name: Optional[str] = None,
        dish_name: Optional[str] = None,
    ) -> AdminAddResult:
        """
        Staff-side claim on behalf of a volunteer. Skips the publish-state
        gate; capacity, overlap and dish rules still apply.
        """
        contact = clean_contact(contact, require_phone=False)
        person = _clean_text(participant_name) or contact.name

        with self._scope() as session:
            store = CapacityStore(session)
            info = store.blocks_info([slot_id]).get(int(slot_id))
            if info is None:
                raise NotFoundError(f"Slot {slot_id} not found.")
            event_id = info.event_id

            self._housekeeping(session)
            survivor_id = self._merge_best_effort(session, event_id, contact.email)
            reg = session.get(Registration, survivor_id) if survivor_id else None
            if reg is None:
                reg = Registration(
                    event_id=event_id,
                    registrant_name=contact.name,
                    registrant_email=contact.email,
                    registrant_phone=contact.phone,
                )
                session.add(reg)
                session.flush()
                logger.info("Admin created registration %s for event %s", reg.id, event_id)

            participant = store.find_or_create_participant(reg.id, person)
            current = store.current_rows(p.id for p in store.participants(reg.id))
            if any(r.participant_id == participant.id and r.slot_id == int(slot_id) for r in current):
                raise ConflictError("Volunteer is already registered for this time block.")
            desired = current + [AssignmentRow(participant.id, int(slot_id), dish_name)]
            RegistrationReconciler(store).reconcile(reg.id, desired, event_id=event_id)

            return AdminAddResult(
                registration_id=reg.id,
                participant_id=participant.id,
                assignments=_assignment_views(session, reg.id),
            )

    def _held_by(self, session: Session, participant_id: int, slot_id: int):
        participant = session.get(Participant, participant_id)
        if participant is None:
            raise NotFoundError("Participant not found.")
        store = CapacityStore(session)
        current = store.current_rows(p.id for p in store.participants(participant.registration_id))
        key = (int(participant_id), int(slot_id))
        if not any(r.key == key for r in current):
            raise NotFoundError("Reservation not found.")
        return participant.registration_id, current, key

    def admin_release_assignment(self, slot_id: int, participant_id: int) -> None:
        """Release one claim. The registration stays, even with nothing left."""
        with self._scope() as session:
            reg_id, current, key = self._held_by(session, participant_id, slot_id)
            desired = [r for r in current if r.key != key]
            RegistrationReconciler(CapacityStore(session)).reconcile(reg_id, desired)
            logger.info("Admin released slot %s for participant %s", slot_id, participant_id)

    def admin_move_assignment(self, slot_id: int, participant_id: int, target_slot_id: int) -> AdminAddResult:
        """
        Move one claim to another slot of the same event. The target is
        checked for capacity and overlap like any other add; the dish name
        travels with the claim.
        """
        with self._scope() as session:
            reg_id, current, key = self._held_by(session, participant_id, slot_id)
            target = int(target_slot_id)
            if target != key[1]:
                if any(r.key == (key[0], target) for r in current):
                    raise ConflictError("Volunteer already assigned to the selected time block.")
                desired = [AssignmentRow(r.participant_id, target, r.dish_name) if r.key == key else r for r in current]
                RegistrationReconciler(CapacityStore(session)).reconcile(reg_id, desired)
                logger.info("Admin moved participant %s from slot %s to %s", participant_id, slot_id, target)

            return AdminAddResult(
                registration_id=reg_id,
                participant_id=key[0],
                assignments=_assignment_views(session, reg_id),
            )

    # -------------------------
    # Manage link
    # -------------------------

    def update_registration(
        self,
        token: str,
        schedule_assignments: Sequence[Selection] = (),
        potluck_assignments: Sequence[Selection] = (),
    ) -> UpdateResult:
        """
        Replace the registration's assignment set with the one given.
        An empty set deletes the registration and kills the link.
        """
        out: Optional[_Outbound] = None

        with self._scope() as session:
            self._housekeeping(session)
            reg = self._resolve(session, token)
            event = catalog.get_event(session, reg.event_id)
            selections = _selections_for_mode(SignupMode(event.signup_mode), schedule_assignments, potluck_assignments)

            store = CapacityStore(session)
            people = store.participants(reg.id)
            desired: List[AssignmentRow] = []
            for sel in selections:
                pid = sel.participant_id
                if pid is None:
                    if len(people) != 1:
                        raise ValidationError("Each selection must name a participant.")
                    pid = people[0].id
                desired.append(AssignmentRow(int(pid), int(sel.slot_id), sel.dish_name))

            reg_id = reg.id
            result = RegistrationReconciler(store).reconcile(
                reg_id, desired, event_id=reg.event_id, delete_if_empty=True
            )
            if result.deleted:
                return UpdateResult(registration=None, deleted=True)

            self._tokens(session).refresh(reg, token)
            view = _registration_view(session, reg)
            assignments = _assignment_views(session, reg.id)
            if result.changed:
                out = self._outbound(session, reg, token, is_update=True)

        self._deliver(out)
        return UpdateResult(registration=view, assignments=assignments)

    def resolve_manage_token(self, token: str) -> Optional[RegistrationView]:
        with self._scope() as session:
            reg = self._tokens(session).resolve(token)
            return _registration_view(session, reg) if reg is not None else None

    def get_manage_context(self, token: str) -> ManageContext:
        with self._scope() as session:
            reg = self._resolve(session, token)
            return ManageContext(
                event=catalog.event_summary(session, reg.event_id),
                registration=_registration_view(session, reg),
                assignments=_assignment_views(session, reg.id),
                slots=_slot_views(session, reg.event_id),
            )

    def send_manage_reminder(self, event_id: int, email: str) -> None:
        """
        Lost-link flow: merge, rotate the token, re-send. Unknown contacts
        and events return quietly so callers cannot tell who signed up.
        """
        try:
            email = clean_email(email)
        except ValidationError:
            logger.info("Manage reminder requested with an invalid email for event %s", event_id)
            return

        out: Optional[_Outbound] = None
        with self._scope() as session:
            if session.get(Event, event_id) is None:
                return
            self._housekeeping(session, event_id)
            survivor_id = self._merge_best_effort(session, event_id, email)
            reg = session.get(Registration, survivor_id) if survivor_id else None
            if reg is None:
                logger.info("Manage reminder for event %s: no registration found", event_id)
                return
            token = self._tokens(session).issue(reg)
            out = self._outbound(session, reg, token, is_update=False)

        self._deliver(out)

    def set_email_preference(self, token: str, opt_in: bool, reason: Optional[str] = None) -> RegistrationView:
        with self._scope() as session:
            reg = self._resolve(session, token)
            reg.set_email_preference(opt_in, reason)
            session.add(reg)
            session.flush()
            return _registration_view(session, reg)

    # -------------------------
    # Participants (via manage link)
    # -------------------------

    def add_participant(self, token: str, name: str) -> ParticipantView:
        with self._scope() as session:
            reg = self._resolve(session, token)
            p = CapacityStore(session).add_participant(reg.id, name)
            return ParticipantView(p.id, p.participant_name)

    def rename_participant(self, token: str, participant_id: int, new_name: str) -> ParticipantView:
        with self._scope() as session:
            reg = self._resolve(session, token)
            store = CapacityStore(session)
            people = {p.id: p for p in store.participants(reg.id)}
            target = people.get(int(participant_id))
            if target is None:
                raise NotFoundError("Participant not found.")

            cleaned = _clean_text(new_name)
            if not cleaned:
                raise ValidationError("Participant names cannot be blank.")
            key = name_key(cleaned)
            if any(p.name_key == key for pid, p in people.items() if pid != target.id):
                raise ConflictError("Another participant already uses that name.")

            target.rename(cleaned)
            session.add(target)
            session.flush()
            return ParticipantView(target.id, target.participant_name)

    def merge_participants(self, token: str, source_id: int, target_id: int) -> ParticipantView:
        """
        Move source's assignments onto target (shared slots collapse into one
        row), then drop source.
        """
        if int(source_id) == int(target_id):
            raise ValidationError("Choose two different participants to merge.")

        with self._scope() as session:
            reg = self._resolve(session, token)
            store = CapacityStore(session)
            people = {p.id: p for p in store.participants(reg.id)}
            source = people.get(int(source_id))
            target = people.get(int(target_id))
            if source is None or target is None:
                raise NotFoundError("Participant not found.")

            desired: Dict[Tuple[int, int], AssignmentRow] = {}
            for row in store.current_rows(people):
                pid = target.id if row.participant_id == source.id else row.participant_id
                key = (pid, row.slot_id)
                if key not in desired or row.participant_id == target.id:
                    desired[key] = AssignmentRow(pid, row.slot_id, row.dish_name)

            RegistrationReconciler(store).reconcile(reg.id, desired.values(), event_id=reg.event_id)
            session.delete(source)
            session.flush()
            logger.info("Merged participant %s into %s (registration %s)", source_id, target_id, reg.id)
            return ParticipantView(target.id, target.participant_name)

    def remove_participant(self, token: str, participant_id: int, *, drop_assignments: bool = False) -> bool:
        """
        Remove one participant. Returns True when that emptied the
        registration, which is then deleted along with its link.
        """
        with self._scope() as session:
            reg = self._resolve(session, token)
            store = CapacityStore(session)
            people = {p.id: p for p in store.participants(reg.id)}
            target = people.get(int(participant_id))
            if target is None:
                raise NotFoundError("Participant not found.")

            current = store.current_rows(people)
            held = [r for r in current if r.participant_id == target.id]
            if held and not drop_assignments:
                raise ValidationError("This participant still holds assignments. Release them first.")

            reg_id = reg.id
            if held:
                keep = [r for r in current if r.participant_id != target.id]
                RegistrationReconciler(store).reconcile(reg_id, keep, event_id=reg.event_id)

            session.delete(target)
            session.flush()

            if len(people) == 1:
                store.delete_registration_cascade(reg_id)
                logger.info("Registration %s lost its last participant and was deleted", reg_id)
                return True
            return False

    # -------------------------
    # Admin
    # -------------------------

    def merge_duplicates(
        self, event_id: int, email: str, preferred_registration_id: Optional[int] = None
    ) -> Optional[int]:
        """On-demand merge. Unlike the signup path, conflicts are raised."""
        email = clean_email(email)
        with self._scope() as session:
            catalog.get_event(session, event_id)
            return merge_duplicate_registrations(session, event_id, email, preferred_registration_id)

    def list_roster(self, event_id: int) -> List[RosterEntry]:
        with self._scope() as session:
            catalog.get_event(session, event_id)
            regs = session.exec(
                select(Registration)
                .where(Registration.event_id == event_id)
                .order_by(col(Registration.registrant_name).asc(), col(Registration.id).asc())
            ).all()
            return [
                RosterEntry(_registration_view(session, r), _assignment_views(session, r.id))
                for r in regs
            ]

    def delete_registration(self, registration_id: int) -> None:
        with self._scope() as session:
            if not CapacityStore(session).delete_registration_cascade(registration_id):
                raise NotFoundError("Registration not found.")
            logger.info("Admin deleted registration %s", registration_id)

    def cleanup_empty_registrations(self, event_id: Optional[int] = None) -> int:
        with self._scope() as session:
            return delete_empty_registrations(session, event_id)

    # ---- catalog ----

    def create_event(self, name: str, date_start: datetime, date_end: datetime, **kwargs) -> EventSummary:
        with self._scope() as session:
            event = catalog.create_event(session, name, date_start, date_end, **kwargs)
            return catalog.event_summary(session, event.id)

    def set_publish_state(self, event_id: int, state) -> EventSummary:
        with self._scope() as session:
            event = catalog.set_publish_state(session, event_id, state)
            return catalog.event_summary(session, event.id)

    def create_station(self, event_id: int, name: str, **kwargs) -> int:
        with self._scope() as session:
            return catalog.create_station(session, event_id, name, **kwargs).id

    def reorder_stations(self, event_id: int, station_ids: Sequence[int]) -> None:
        with self._scope() as session:
            catalog.get_event(session, event_id)
            catalog.reorder_stations(session, event_id, station_ids)

    def create_slot(self, station_id: int, **kwargs) -> int:
        with self._scope() as session:
            return catalog.create_slot(session, station_id, **kwargs).id

    def update_event(self, event_id: int, **changes) -> EventSummary:
        with self._scope() as session:
            event = catalog.update_event(session, event_id, **changes)
            return catalog.event_summary(session, event.id)

    def update_station(self, station_id: int, name: str, **kwargs) -> None:
        with self._scope() as session:
            catalog.update_station(session, station_id, name, **kwargs)

    def update_slot(self, slot_id: int, **changes) -> None:
        with self._scope() as session:
            catalog.update_slot(session, slot_id, **changes)

    def delete_event(self, event_id: int) -> None:
        with self._scope() as session:
            catalog.delete_event(session, event_id)

    def delete_station(self, station_id: int) -> int:
        with self._scope() as session:
            return catalog.delete_station(session, station_id)

    def delete_slot(self, slot_id: int) -> int:
        with self._scope() as session:
            return catalog.delete_slot(session, slot_id)


# -------------------------
# Read-model helpers
# -------------------------

def _visible_event(session: Session, event_id: int, public: bool) -> Event:
    event = catalog.get_event(session, event_id)
    if public and not event.accepts_signups():
        raise NotFoundError("Event not found.")
    return event


def _registration_view(session: Session, reg: Registration) -> RegistrationView:
    people = CapacityStore(session).participants(reg.id)
    return RegistrationView(
        registration_id=reg.id,
        event_id=reg.event_id,
        registrant_name=reg.registrant_name,
        registrant_email=reg.registrant_email,
        registrant_phone=reg.registrant_phone,
        email_opt_in=bool(reg.email_opt_in),
        manage_token_expires_at=reg.manage_token_expires_at,
        participants=tuple(ParticipantView(p.id, p.participant_name) for p in people),
    )


def _assignment_views(session: Session, registration_id: int) -> Tuple[AssignmentView, ...]:
    store = CapacityStore(session)
    names = {p.id: p.participant_name for p in store.participants(registration_id)}
    rows = store.current_rows(names)
    slots = store.blocks_info(r.slot_id for r in rows)

    views = []
    for r in rows:
        info = slots.get(r.slot_id)
        if info is None:
            continue
        views.append(
            AssignmentView(
                participant_id=r.participant_id,
                participant_name=names.get(r.participant_id, ""),
                slot_id=r.slot_id,
                station_name=info.station_name,
                start_time=info.start_time,
                end_time=info.end_time,
                title=info.title,
                dish_name=r.dish_name,
            )
        )
    views.sort(key=lambda v: (v.start_time or datetime.min, v.station_name, v.slot_id, v.participant_name))
    return tuple(views)


def _slot_views(session: Session, event_id: int) -> Tuple[SlotView, ...]:
    event = catalog.get_event(session, event_id)
    mode = SignupMode(event.signup_mode)

    stations = session.exec(
        select(Station)
        .where(Station.event_id == event_id)
        .order_by(col(Station.station_order).asc(), col(Station.id).asc())
    ).all()
    if not stations:
        return ()

    slots = session.exec(
        select(Slot).where(col(Slot.station_id).in_([s.id for s in stations]))
    ).all()
    occupancy = CapacityStore(session).occupancy(s.id for s in slots)

    by_station: Dict[int, List[Slot]] = {}
    for slot in slots:
        by_station.setdefault(slot.station_id, []).append(slot)

    if mode == SignupMode.POTLUCK:
        def order(s: Slot):
            return (s.item_order, s.id)
    else:
        def order(s: Slot):
            return (s.start_time or datetime.min, s.id)

    out: List[SlotView] = []
    for station in stations:
        for slot in sorted(by_station.get(station.id, []), key=order):
            out.append(
                SlotView(
                    slot_id=slot.id,
                    station_id=station.id,
                    station_name=station.name,
                    station_order=station.station_order,
                    mode=mode,
                    capacity=int(slot.capacity_needed),
                    reserved_count=occupancy.get(slot.id, 0),
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    title=slot.title,
                    servings_min=slot.servings_min,
                    servings_max=slot.servings_max,
                )
            )
    return tuple(out)
