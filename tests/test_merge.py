from __future__ import annotations

from datetime import datetime

from sqlmodel import select

from conftest import at
from slotkeeper.database import session_scope
from slotkeeper.models.assignment import ScheduleAssignment
from slotkeeper.models.participant import Participant
from slotkeeper.models.registration import Registration
from slotkeeper.services.capacity_store import CapacityStore
from slotkeeper.services.merge import delete_empty_registrations, merge_duplicate_registrations


def _reg(session, event_id, email, created_at, names=(), slots=()):
    reg = Registration(
        event_id=event_id,
        registrant_name="Ann Lee",
        registrant_email=email,
        registrant_phone="555",
        created_at=created_at,
    )
    session.add(reg)
    session.flush()
    store = CapacityStore(session)
    people = [store.add_participant(reg.id, n) for n in names]
    for person, slot_id in slots:
        session.add(ScheduleAssignment(participant_id=people[person].id, slot_id=slot_id))
    session.flush()
    return reg.id


def _regs(engine, event_id):
    with session_scope(engine) as session:
        return [r.id for r in session.exec(select(Registration).where(Registration.event_id == event_id)).all()]


def test_merge_folds_duplicates_into_oldest(engine, make_event, make_slot):
    event_id = make_event()
    s1 = make_slot(event_id, start=at(9), end=at(10))
    s2 = make_slot(event_id, station="Sorting", capacity=2, start=at(10), end=at(11))

    with session_scope(engine) as session:
        newer = _reg(session, event_id, "Ann@Neighbors.org", datetime(2030, 1, 2), ["ann", "Ben"], [(0, s2), (1, s2)])
        oldest = _reg(session, event_id, "ann@neighbors.org", datetime(2030, 1, 1), ["Ann"], [(0, s1)])

    with session_scope(engine) as session:
        survivor = merge_duplicate_registrations(session, event_id, "ann@neighbors.org")

    assert survivor == oldest
    assert _regs(engine, event_id) == [oldest]

    with session_scope(engine) as session:
        people = {p.name_key: p.id for p in CapacityStore(session).participants(oldest)}
        assert set(people) == {"ann", "ben"}
        rows = {(r.participant_id, r.slot_id) for r in CapacityStore(session).current_rows(people.values())}
        assert rows == {(people["ann"], s1), (people["ann"], s2), (people["ben"], s2)}
        assert session.get(Registration, newer) is None


def test_merge_does_not_count_moved_rows_twice(engine, make_event, make_slot):
    # the slot is full only because of the duplicate's own rows
    event_id = make_event()
    slot = make_slot(event_id, capacity=1, start=at(9), end=at(10))

    with session_scope(engine) as session:
        _reg(session, event_id, "ann@neighbors.org", datetime(2030, 1, 1), ["Ann"])
        _reg(session, event_id, "ann@neighbors.org", datetime(2030, 1, 2), ["Ann"], [(0, slot)])

    with session_scope(engine) as session:
        merge_duplicate_registrations(session, event_id, "ann@neighbors.org")
        assert CapacityStore(session).reserved_count(slot) == 1


def test_merge_converges_and_is_idempotent(engine, make_event, make_slot):
    event_id = make_event()
    slot = make_slot(event_id, capacity=3, start=at(9), end=at(10))

    with session_scope(engine) as session:
        for day in (1, 2, 3):
            _reg(session, event_id, "ann@neighbors.org", datetime(2030, 1, day), ["Ann"], [(0, slot)])

    results = []
    for _ in range(3):
        with session_scope(engine) as session:
            results.append(merge_duplicate_registrations(session, event_id, "ann@neighbors.org"))

    assert len(set(results)) == 1
    assert len(_regs(engine, event_id)) == 1
    with session_scope(engine) as session:
        assert CapacityStore(session).reserved_count(slot) == 1
        assert merge_duplicate_registrations(session, event_id, "nobody@neighbors.org") is None


def test_merge_honours_preferred_survivor_and_adopts_token(engine, make_event):
    event_id = make_event()

    with session_scope(engine) as session:
        first = _reg(session, event_id, "ann@neighbors.org", datetime(2030, 1, 1), ["Ann"])
        second = _reg(session, event_id, "ann@neighbors.org", datetime(2030, 1, 2), ["Ann"])
        reg = session.get(Registration, first)
        reg.manage_token_hash = "f" * 64
        session.add(reg)

    with session_scope(engine) as session:
        survivor = merge_duplicate_registrations(session, event_id, "ann@neighbors.org", preferred_registration_id=second)

    assert survivor == second
    with session_scope(engine) as session:
        assert session.get(Registration, second).manage_token_hash == "f" * 64


def test_delete_empty_registrations_only_touches_empty_ones(engine, make_event):
    event_id = make_event()

    with session_scope(engine) as session:
        empty = _reg(session, event_id, "empty@neighbors.org", datetime(2030, 1, 1))
        kept = _reg(session, event_id, "kept@neighbors.org", datetime(2030, 1, 1), ["Kim"])

    with session_scope(engine) as session:
        assert delete_empty_registrations(session, event_id) == 1

    assert _regs(engine, event_id) == [kept]
    with session_scope(engine) as session:
        assert session.get(Registration, empty) is None
        assert len(session.exec(select(Participant)).all()) == 1


def test_merge_converges_when_same_named_participants_overlap(engine, make_event, make_slot):
    event_id = make_event()
    early = make_slot(event_id, start=at(10), end=at(11))
    late = make_slot(event_id, station="Sorting", start=at(10, 30), end=at(11, 30))
    after = make_slot(event_id, station="Dock", start=at(12), end=at(13))

    with session_scope(engine) as session:
        oldest = _reg(session, event_id, "ann@neighbors.org", datetime(2030, 1, 1), ["Ann"], [(0, early)])
        _reg(session, event_id, "ann@neighbors.org", datetime(2030, 1, 2), ["Ann"], [(0, late), (0, after)])

    for _ in range(2):
        with session_scope(engine) as session:
            assert merge_duplicate_registrations(session, event_id, "ann@neighbors.org") == oldest

    assert _regs(engine, event_id) == [oldest]
    with session_scope(engine) as session:
        store = CapacityStore(session)
        (ann,) = store.participants(oldest)
        assert {r.slot_id for r in store.current_rows([ann.id])} == {early, after}
        assert store.reserved_count(late) == 0
