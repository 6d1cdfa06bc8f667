from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlmodel import Session, col, select

from slotkeeper.database import init_db, session_scope
from slotkeeper.models.event import Event, PublishState, SignupMode
from slotkeeper.models.slot import Slot
from slotkeeper.models.station import Station
from slotkeeper.services import catalog

DEMO_EVENT_NAME = "Community Food Drive (demo)"

# station name -> list of (start offset hours, length hours, capacity)
DEMO_SHIFTS: Dict[str, List[tuple]] = {
    "Check-in": [(0, 2, 2), (2, 2, 2)],
    "Sorting": [(0, 1, 4), (1, 1, 4), (2, 2, 3)],
    "Loading dock": [(1, 3, 2)],
}


def _next_saturday_9am(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now()
    days = (5 - now.weekday()) % 7 or 7
    return (now + timedelta(days=days)).replace(hour=9, minute=0, second=0, microsecond=0)


def find_demo_event(session: Session) -> Optional[Event]:
    return session.exec(select(Event).where(Event.name == DEMO_EVENT_NAME)).first()


def seed_demo_event(session: Session, start: Optional[datetime] = None) -> Event:
    """
    Create (once) a published schedule-mode event with a few stations.
    Re-running returns the existing event untouched.
    """
    existing = find_demo_event(session)
    if existing:
        return existing

    start = start or _next_saturday_9am()
    event = catalog.create_event(
        session,
        DEMO_EVENT_NAME,
        start,
        start + timedelta(hours=5),
        description="Sort and hand out donations. Pick any shifts that fit.",
        signup_mode=SignupMode.SCHEDULE,
        publish_state=PublishState.PUBLISHED,
    )

    for order, (name, shifts) in enumerate(DEMO_SHIFTS.items()):
        station = catalog.create_station(session, event.id, name, station_order=order)
        for offset, length, capacity in shifts:
            catalog.create_slot(
                session,
                station.id,
                capacity_needed=capacity,
                start_time=start + timedelta(hours=offset),
                end_time=start + timedelta(hours=offset + length),
            )
    return event


def main() -> None:
    # Ensure tables exist (local dev)
    init_db()

    with session_scope() as session:
        event = seed_demo_event(session)
        stations = session.exec(select(Station).where(Station.event_id == event.id)).all()
        slots = session.exec(
            select(Slot).where(col(Slot.station_id).in_([s.id for s in stations]))
        ).all()
        event_id = event.id

    print(f"Demo event {event_id}: {len(stations)} stations, {len(slots)} slots")


if __name__ == "__main__":
    main()
