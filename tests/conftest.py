from __future__ import annotations

import os

# in-memory DB for the module-level engine too; must be set before importing slotkeeper
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["NOTIFY_WEBHOOK_URL"] = ""
os.environ["ADMIN_API_KEY"] = ""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import pytest

from slotkeeper.database import build_engine, init_db
from slotkeeper.models.event import PublishState, SignupMode
from slotkeeper.services.allocation import AllocationService
from slotkeeper.services.views import Contact

EVENT_DAY = datetime(2030, 6, 1)


def at(hour: int, minute: int = 0) -> datetime:
    return EVENT_DAY.replace(hour=hour, minute=minute)


def contact(name: str = "Ann Lee", email: str = "ann@neighbors.org", phone: str = "555-0100") -> Contact:
    return Contact(name=name, email=email, phone=phone)


class FakeClock:
    """Naive UTC clock the tests can move forward."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: List[Dict] = []

    def notify(self, contact, event, assignments, manage_url, is_update) -> None:
        self.calls.append(
            {
                "contact": contact,
                "event": event,
                "assignments": list(assignments),
                "manage_url": manage_url,
                "is_update": is_update,
            }
        )


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2030, 1, 1, 12, 0))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def svc(engine, notifier, clock) -> AllocationService:
    return AllocationService(engine=engine, notifier=notifier, clock=clock)


@pytest.fixture
def make_event(svc):
    def _make(
        mode: SignupMode = SignupMode.SCHEDULE,
        state: PublishState = PublishState.PUBLISHED,
        name: str = "Food Drive",
    ) -> int:
        return svc.create_event(name, at(8), at(18), signup_mode=mode, publish_state=state).event_id

    return _make


@pytest.fixture
def make_slot(svc):
    stations: Dict[Tuple[int, str], int] = {}

    def _make(
        event_id: int,
        *,
        station: str = "Check-in",
        capacity: int = 1,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        title: Optional[str] = None,
    ) -> int:
        key = (event_id, station)
        if key not in stations:
            stations[key] = svc.create_station(event_id, station)
        return svc.create_slot(
            stations[key],
            capacity_needed=capacity,
            start_time=start,
            end_time=end,
            title=title,
        )

    return _make
