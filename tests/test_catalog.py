from __future__ import annotations

import pytest
from sqlalchemy import DateTime
from sqlmodel import select

from conftest import at, contact
from slotkeeper.database import session_scope
from slotkeeper.models.event import Event, PublishState, SignupMode
from slotkeeper.models.participant import Participant
from slotkeeper.models.registration import Registration
from slotkeeper.models.slot import Slot
from slotkeeper.services.errors import ConflictError, NotFoundError, ValidationError


def test_event_window_must_be_ordered(svc):
    with pytest.raises(ValidationError):
        svc.create_event("Backwards", at(18), at(8))
    with pytest.raises(ValidationError):
        svc.create_event("  ", at(8), at(18))


def test_public_listing_only_published_and_upcoming(svc, clock):
    published = svc.create_event("Open", at(8), at(18), publish_state=PublishState.PUBLISHED).event_id
    svc.create_event("Private", at(8), at(18), publish_state=PublishState.PRIVATE)
    svc.create_event("Draft", at(8), at(18))

    assert [e.event_id for e in svc.list_public_events()] == [published]

    clock.now = at(19)
    assert svc.list_public_events() == []


def test_slot_rules_follow_event_mode(svc):
    schedule = svc.create_event("Shifts", at(8), at(18))
    potluck = svc.create_event("Supper", at(8), at(18), signup_mode=SignupMode.POTLUCK)
    s_station = svc.create_station(schedule.event_id, "Check-in")
    p_station = svc.create_station(potluck.event_id, "Mains")

    with pytest.raises(ValidationError):
        svc.create_slot(s_station, capacity_needed=0, start_time=at(9), end_time=at(10))
    with pytest.raises(ValidationError):
        svc.create_slot(s_station, start_time=at(9))
    with pytest.raises(ValidationError):
        svc.create_slot(p_station, title="Stew", servings_min=10, servings_max=4)
    with pytest.raises(ValidationError):
        svc.create_slot(p_station)
    with pytest.raises(NotFoundError):
        svc.create_slot(9999, title="Stew")

    assert svc.create_slot(p_station, title="Stew", servings_min=4, servings_max=10)


def test_stations_follow_manual_order(svc):
    event_id = svc.create_event("Shifts", at(8), at(18)).event_id
    first = svc.create_station(event_id, "Check-in")
    second = svc.create_station(event_id, "Sorting")
    svc.create_slot(first, start_time=at(9), end_time=at(10))
    svc.create_slot(second, start_time=at(9), end_time=at(10))

    svc.reorder_stations(event_id, [second, first])

    assert [v.station_name for v in svc.list_event_slots(event_id)] == ["Sorting", "Check-in"]
    with pytest.raises(ValidationError):
        svc.reorder_stations(event_id, [12345])


def _views(svc, event_id):
    return {v.slot_id: v for v in svc.list_event_slots(event_id)}


def test_event_and_station_edits(svc):
    event_id = svc.create_event("Shifts", at(8), at(18), description="Warehouse").event_id
    station = svc.create_station(event_id, "Check-in")

    summary = svc.update_event(event_id, name=" Big Shifts ", date_end=at(20))
    assert summary.name == "Big Shifts"
    assert summary.date_end == at(20)

    with pytest.raises(ValidationError):
        svc.update_event(event_id, date_start=at(21))
    with pytest.raises(NotFoundError):
        svc.update_event(9999, name="Nope")

    svc.update_station(station, "Front desk", description_tasks="Hand out wristbands")
    svc.create_slot(station, start_time=at(9), end_time=at(10))
    assert [v.station_name for v in svc.list_event_slots(event_id)] == ["Front desk"]
    with pytest.raises(ValidationError):
        svc.update_station(station, "   ")


def test_slot_edits_revalidate_and_keep_holders_consistent(svc, make_event, make_slot):
    event_id = make_event()
    early = make_slot(event_id, capacity=2, start=at(9), end=at(10))
    late = make_slot(event_id, station="Sorting", capacity=2, start=at(11), end=at(12))
    svc.admin_add_assignment(early, contact())
    svc.admin_add_assignment(late, contact())
    svc.admin_add_assignment(early, contact("Bob", "bob@neighbors.org"))

    with pytest.raises(ValidationError):
        svc.update_slot(late, end_time=at(10))
    with pytest.raises(ValidationError):
        svc.update_slot(late, capacity_needed=0)
    # Ann holds both; sliding the late block onto the early one is refused
    with pytest.raises(ConflictError):
        svc.update_slot(late, start_time=at(9, 30), end_time=at(10, 30))
    assert _views(svc, event_id)[late].start_time == at(11)

    # lowering capacity below occupancy keeps the claims but closes the slot
    svc.update_slot(early, capacity_needed=1)
    view = _views(svc, event_id)[early]
    assert (view.capacity, view.reserved_count, view.is_full) == (1, 2, True)
    with pytest.raises(ConflictError):
        svc.admin_add_assignment(early, contact("Cy", "cy@neighbors.org"))


def test_deletes_release_claims(engine, svc, make_event, make_slot):
    event_id = make_event()
    slot = make_slot(event_id, start=at(9), end=at(10))
    other = make_slot(event_id, station="Sorting", start=at(10), end=at(11))
    svc.admin_add_assignment(slot, contact())
    svc.admin_add_assignment(other, contact())

    assert svc.delete_slot(slot) == 1
    assert set(_views(svc, event_id)) == {other}
    with pytest.raises(NotFoundError):
        svc.delete_slot(slot)

    station_id = _views(svc, event_id)[other].station_id
    assert svc.delete_station(station_id) == 1
    assert svc.list_event_slots(event_id) == []

    svc.delete_event(event_id)
    with pytest.raises(NotFoundError):
        svc.get_event(event_id)
    with session_scope(engine) as session:
        assert session.exec(select(Registration)).all() == []
        assert session.exec(select(Participant)).all() == []


def test_wall_clock_columns_take_naive_values(svc):
    for column in (
        Event.__table__.c.date_start,
        Event.__table__.c.date_end,
        Slot.__table__.c.start_time,
        Slot.__table__.c.end_time,
        Registration.__table__.c.manage_token_expires_at,
        Registration.__table__.c.created_at,
    ):
        assert isinstance(column.type, DateTime)
        assert not column.type.timezone

    summary = svc.get_event(svc.create_event("Shifts", at(8), at(18)).event_id)
    assert (summary.date_start, summary.date_start.tzinfo) == (at(8), None)
