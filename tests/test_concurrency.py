from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import RecordingNotifier, at, contact
from slotkeeper.database import build_engine, init_db
from slotkeeper.models.event import PublishState
from slotkeeper.services.allocation import AllocationService, Selection
from slotkeeper.services.errors import ConflictError


@pytest.fixture
def file_svc(tmp_path, clock):
    eng = build_engine(f"sqlite:///{tmp_path / 'slots.db'}")
    init_db(eng)
    yield AllocationService(engine=eng, notifier=RecordingNotifier(), clock=clock)
    eng.dispose()


def test_concurrent_signups_never_overfill_a_slot(file_svc):
    svc = file_svc
    event_id = svc.create_event("Food Drive", at(8), at(18), publish_state=PublishState.PUBLISHED).event_id
    station = svc.create_station(event_id, "Check-in")
    slot = svc.create_slot(station, capacity_needed=2, start_time=at(9), end_time=at(10))

    def attempt(i: int) -> bool:
        try:
            svc.submit_registration(
                event_id,
                contact(f"Volunteer {i}", f"v{i}@neighbors.org"),
                schedule_assignments=[Selection(slot)],
            )
            return True
        except ConflictError:
            return False

    with ThreadPoolExecutor(max_workers=12) as pool:
        outcomes = list(pool.map(attempt, range(12)))

    assert outcomes.count(True) == 2
    (view,) = svc.list_event_slots(event_id)
    assert view.reserved_count == 2
