from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence

from sqlmodel import Session, col, select

from ..models.event import Event, PublishState, SignupMode
from ..models.registration import Registration
from ..models.slot import Slot
from ..models.station import Station
from .capacity_store import CapacityStore
from .conflict_checker import check_overlap
from .errors import NotFoundError, ValidationError
from .views import EventSummary

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _summary(event: Event) -> EventSummary:
    return EventSummary(
        event_id=event.id,
        name=event.name,
        date_start=event.date_start,
        date_end=event.date_end,
        signup_mode=SignupMode(event.signup_mode),
        publish_state=PublishState(event.publish_state).value,
    )


def get_event(session: Session, event_id: int) -> Event:
    event = session.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found.")
    return event


def event_summary(session: Session, event_id: int) -> EventSummary:
    return _summary(get_event(session, event_id))


# -------------------------
# Events
# -------------------------

def create_event(
    session: Session,
    name: str,
    date_start: datetime,
    date_end: datetime,
    *,
    description: Optional[str] = None,
    signup_mode: SignupMode = SignupMode.SCHEDULE,
    publish_state: PublishState = PublishState.DRAFT,
) -> Event:
    name = _clean(name)
    if not name or date_start is None or date_end is None:
        raise ValidationError("Event name, start, and end are required.")
    if date_start >= date_end:
        raise ValidationError("Event end must be after start.")

    event = Event(
        name=name,
        description=_clean(description) or None,
        date_start=date_start,
        date_end=date_end,
        signup_mode=SignupMode(signup_mode),
        publish_state=PublishState(publish_state),
    )
    session.add(event)
    session.flush()
    logger.info("Created event %s (%s, %s)", event.id, event.signup_mode.value, event.publish_state.value)
    return event


def set_publish_state(session: Session, event_id: int, state: PublishState) -> Event:
    event = get_event(session, event_id)
    event.publish_state = PublishState(state)
    session.add(event)
    session.flush()
    return event


def list_public_events(session: Session, now: datetime) -> List[EventSummary]:
    """
    Published events that have not ended yet, soonest first.
    now must be naive, in the same wall-clock frame as the event dates.
    """
    q = (
        select(Event)
        .where(Event.publish_state == PublishState.PUBLISHED, Event.date_end > now)
        .order_by(col(Event.date_start).asc(), col(Event.id).asc())
    )
    return [_summary(e) for e in session.exec(q).all()]


# -------------------------
# Stations + slots
# -------------------------

def create_station(
    session: Session,
    event_id: int,
    name: str,
    *,
    description_overview: Optional[str] = None,
    description_tasks: Optional[str] = None,
    station_order: Optional[int] = None,
) -> Station:
    get_event(session, event_id)
    name = _clean(name)
    if not name:
        raise ValidationError("Station requires a name.")

    if station_order is None:
        existing = session.exec(select(Station.station_order).where(Station.event_id == event_id)).all()
        station_order = (max(existing) + 1) if existing else 0

    station = Station(
        event_id=event_id,
        name=name,
        description_overview=_clean(description_overview) or None,
        description_tasks=_clean(description_tasks) or None,
        station_order=int(station_order),
    )
    session.add(station)
    session.flush()
    return station


def reorder_stations(session: Session, event_id: int, station_ids: Sequence[int]) -> None:
    """Apply a manual order: station_ids[i] gets station_order i."""
    stations = {s.id: s for s in session.exec(select(Station).where(Station.event_id == event_id)).all()}
    for idx, sid in enumerate(station_ids):
        station = stations.get(int(sid))
        if station is None:
            raise ValidationError("Invalid station payload.")
        station.station_order = idx
        session.add(station)
    session.flush()


def _check_slot_fields(
    mode: SignupMode,
    capacity_needed: Optional[int],
    start_time: Optional[datetime],
    end_time: Optional[datetime],
    title: Optional[str],
    servings_min: Optional[int],
    servings_max: Optional[int],
) -> None:
    if capacity_needed is None or int(capacity_needed) < 1:
        raise ValidationError("Capacity must be a positive number.")

    if mode == SignupMode.SCHEDULE:
        if start_time is None or end_time is None:
            raise ValidationError("All time block fields are required.")
        if start_time >= end_time:
            raise ValidationError("End time must be after start time.")
    else:
        if not _clean(title):
            raise ValidationError("Potluck items need a title.")
        if servings_min is not None and servings_max is not None and servings_min > servings_max:
            raise ValidationError("Minimum servings cannot exceed maximum servings.")


def create_slot(
    session: Session,
    station_id: int,
    *,
    capacity_needed: int = 1,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    title: Optional[str] = None,
    servings_min: Optional[int] = None,
    servings_max: Optional[int] = None,
    item_order: int = 0,
) -> Slot:
    station = session.get(Station, station_id)
    if station is None:
        raise NotFoundError("Station not found.")
    event = get_event(session, station.event_id)

    _check_slot_fields(
        SignupMode(event.signup_mode), capacity_needed, start_time, end_time, title, servings_min, servings_max
    )

    slot = Slot(
        station_id=station_id,
        capacity_needed=int(capacity_needed),
        start_time=start_time,
        end_time=end_time,
        title=_clean(title) or None,
        servings_min=servings_min,
        servings_max=servings_max,
        item_order=int(item_order or 0),
    )
    session.add(slot)
    session.flush()
    return slot


# -------------------------
# Edits
# -------------------------

def update_event(
    session: Session,
    event_id: int,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    date_start: Optional[datetime] = None,
    date_end: Optional[datetime] = None,
) -> Event:
    """Partial update: None leaves a field as it is, "" clears the description."""
    event = get_event(session, event_id)
    if name is not None:
        if not _clean(name):
            raise ValidationError("Event name, start, and end are required.")
        event.name = _clean(name)
    if description is not None:
        event.description = _clean(description) or None
    start = date_start if date_start is not None else event.date_start
    end = date_end if date_end is not None else event.date_end
    if start >= end:
        raise ValidationError("Event end must be after start.")
    event.date_start, event.date_end = start, end

    session.add(event)
    session.flush()
    return event


def update_station(
    session: Session,
    station_id: int,
    name: str,
    *,
    description_overview: Optional[str] = None,
    description_tasks: Optional[str] = None,
) -> Station:
    station = session.get(Station, station_id)
    if station is None:
        raise NotFoundError("Station not found.")
    if not _clean(name):
        raise ValidationError("Station name is required.")

    station.name = _clean(name)
    station.description_overview = _clean(description_overview) or None
    station.description_tasks = _clean(description_tasks) or None
    session.add(station)
    session.flush()
    return station


_SLOT_FIELDS = {"capacity_needed", "start_time", "end_time", "title", "servings_min", "servings_max", "item_order"}


def update_slot(session: Session, slot_id: int, **changes: Any) -> Slot:
    """
    Partial update of a slot. Merged values go through the same checks as
    creation. A time change that would leave a current holder with
    overlapping slots is refused; lowering capacity below occupancy is
    allowed (existing claims stay, new ones are refused).
    """
    slot = session.get(Slot, slot_id)
    if slot is None:
        raise NotFoundError("Slot not found.")
    station = session.get(Station, slot.station_id)
    event = get_event(session, station.event_id)
    mode = SignupMode(event.signup_mode)

    unknown = set(changes) - _SLOT_FIELDS
    if unknown:
        raise ValidationError(f"Unknown slot field(s): {', '.join(sorted(unknown))}.")
    merged = {f: getattr(slot, f) for f in _SLOT_FIELDS}
    merged.update({k: v for k, v in changes.items() if v is not None})

    _check_slot_fields(
        mode,
        merged["capacity_needed"],
        merged["start_time"],
        merged["end_time"],
        merged["title"],
        merged["servings_min"],
        merged["servings_max"],
    )

    times_moved = (merged["start_time"], merged["end_time"]) != (slot.start_time, slot.end_time)
    for f, value in merged.items():
        setattr(slot, f, value)
    slot.capacity_needed = int(slot.capacity_needed)
    slot.title = _clean(slot.title) or None
    session.add(slot)
    session.flush()

    if times_moved and mode == SignupMode.SCHEDULE:
        store = CapacityStore(session)
        rows = store.current_rows(store.holders(slot.id))
        check_overlap(store.blocks_info(r.slot_id for r in rows), rows)
    return slot


# -------------------------
# Deletes
# -------------------------

def delete_slot(session: Session, slot_id: int) -> int:
    """Delete a slot and release its claims. Returns how many claims went."""
    slot = session.get(Slot, slot_id)
    if slot is None:
        raise NotFoundError("Slot not found.")
    released = CapacityStore(session).delete_slot_assignments([slot.id])
    session.delete(slot)
    session.flush()
    logger.info("Deleted slot %s (%d claim(s) released)", slot_id, released)
    return released


def delete_station(session: Session, station_id: int) -> int:
    station = session.get(Station, station_id)
    if station is None:
        raise NotFoundError("Station not found.")
    slots = session.exec(select(Slot).where(Slot.station_id == station.id)).all()
    released = CapacityStore(session).delete_slot_assignments(s.id for s in slots)
    for slot in slots:
        session.delete(slot)
    session.flush()
    session.delete(station)
    session.flush()
    logger.info("Deleted station %s with %d slot(s), %d claim(s) released", station_id, len(slots), released)
    return released


def delete_event(session: Session, event_id: int) -> None:
    """Delete an event with its registrations, stations and slots."""
    event = get_event(session, event_id)
    store = CapacityStore(session)

    reg_ids = session.exec(select(Registration.id).where(Registration.event_id == event.id)).all()
    for rid in reg_ids:
        store.delete_registration_cascade(rid)

    station_ids = session.exec(select(Station.id).where(Station.event_id == event.id)).all()
    for sid in station_ids:
        delete_station(session, sid)

    session.delete(event)
    session.flush()
    logger.info("Deleted event %s (%d registration(s))", event_id, len(reg_ids))
