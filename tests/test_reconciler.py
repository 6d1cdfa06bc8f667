from __future__ import annotations

import pytest
from sqlmodel import select

from conftest import at
from slotkeeper.database import session_scope
from slotkeeper.models.assignment import PotluckAssignment, ScheduleAssignment
from slotkeeper.models.event import SignupMode
from slotkeeper.models.registration import Registration
from slotkeeper.models.slot import Slot
from slotkeeper.services.capacity_store import CapacityStore
from slotkeeper.services.errors import ConflictError, NotFoundError, ValidationError
from slotkeeper.services.reconciler import RegistrationReconciler
from slotkeeper.services.views import AssignmentRow


def _registration(session, event_id, email="ann@neighbors.org", names=("Ann",)):
    reg = Registration(event_id=event_id, registrant_name=names[0], registrant_email=email, registrant_phone="555")
    session.add(reg)
    session.flush()
    store = CapacityStore(session)
    people = [store.add_participant(reg.id, n) for n in names]
    return reg.id, [p.id for p in people]


def _reconcile(engine, reg_id, rows, **kwargs):
    with session_scope(engine) as session:
        return RegistrationReconciler(CapacityStore(session)).reconcile(reg_id, rows, **kwargs)


def _occupancy(engine, slot_id):
    with session_scope(engine) as session:
        return CapacityStore(session).reserved_count(slot_id)


def test_capacity_two_then_full_then_rebook(engine, make_event, make_slot):
    event_id = make_event()
    slot = make_slot(event_id, capacity=2, start=at(9), end=at(10))

    with session_scope(engine) as session:
        reg_a, (a,) = _registration(session, event_id, "a@neighbors.org", ("A",))
        reg_b, (b,) = _registration(session, event_id, "b@neighbors.org", ("B",))
        reg_c, (c,) = _registration(session, event_id, "c@neighbors.org", ("C",))

    _reconcile(engine, reg_a, [AssignmentRow(a, slot)])
    _reconcile(engine, reg_b, [AssignmentRow(b, slot)])
    assert _occupancy(engine, slot) == 2

    with pytest.raises(ConflictError):
        _reconcile(engine, reg_c, [AssignmentRow(c, slot)])

    result = _reconcile(engine, reg_a, [AssignmentRow(a, slot)])
    assert not result.changed
    assert _occupancy(engine, slot) == 2


def test_no_self_block_on_overbooked_slot(engine, make_event, make_slot):
    event_id = make_event()
    slot = make_slot(event_id, capacity=2, start=at(9), end=at(10))
    other = make_slot(event_id, station="Sorting", capacity=5, start=at(10), end=at(11))

    with session_scope(engine) as session:
        reg_a, (a,) = _registration(session, event_id, "a@neighbors.org", ("A",))
        reg_b, (b,) = _registration(session, event_id, "b@neighbors.org", ("B",))
    _reconcile(engine, reg_a, [AssignmentRow(a, slot)])
    _reconcile(engine, reg_b, [AssignmentRow(b, slot)])

    with session_scope(engine) as session:
        s = session.get(Slot, slot)
        s.capacity_needed = 1
        session.add(s)

    # keeping the held slot while adding another one still works
    result = _reconcile(engine, reg_a, [AssignmentRow(a, slot), AssignmentRow(a, other)])
    assert result.added == 1


def test_overlap_rejected_abutting_allowed(engine, make_event, make_slot):
    event_id = make_event()
    s1 = make_slot(event_id, start=at(10), end=at(11))
    s2 = make_slot(event_id, station="Sorting", start=at(10, 30), end=at(11, 30))
    s3 = make_slot(event_id, station="Dock", start=at(11), end=at(12))

    with session_scope(engine) as session:
        reg, (a,) = _registration(session, event_id)
    _reconcile(engine, reg, [AssignmentRow(a, s1)])

    with pytest.raises(ConflictError):
        _reconcile(engine, reg, [AssignmentRow(a, s1), AssignmentRow(a, s2)])

    result = _reconcile(engine, reg, [AssignmentRow(a, s1), AssignmentRow(a, s3)])
    assert {r.slot_id for r in result.assignments} == {s1, s3}


def test_rejected_update_leaves_nothing_behind(engine, make_event, make_slot):
    event_id = make_event()
    free = make_slot(event_id, capacity=3, start=at(9), end=at(10))
    full = make_slot(event_id, station="Sorting", capacity=1, start=at(13), end=at(14))

    with session_scope(engine) as session:
        reg_x, (x,) = _registration(session, event_id, "x@neighbors.org", ("X",))
        reg, (a,) = _registration(session, event_id)
    _reconcile(engine, reg_x, [AssignmentRow(x, full)])

    with pytest.raises(ConflictError):
        _reconcile(engine, reg, [AssignmentRow(a, free), AssignmentRow(a, full)])

    assert _occupancy(engine, free) == 0


def test_cross_event_and_unknown_references(engine, make_event, make_slot):
    event_id = make_event()
    other_event = make_event(name="Other")
    mine = make_slot(event_id, start=at(9), end=at(10))
    theirs = make_slot(other_event, start=at(9), end=at(10))

    with session_scope(engine) as session:
        reg, (a,) = _registration(session, event_id)

    with pytest.raises(ValidationError):
        _reconcile(engine, reg, [AssignmentRow(a, mine), AssignmentRow(a, theirs)])
    with pytest.raises(NotFoundError):
        _reconcile(engine, reg, [AssignmentRow(a, 9999)])
    with pytest.raises(NotFoundError):
        _reconcile(engine, reg, [AssignmentRow(a + 1000, mine)])
    with pytest.raises(NotFoundError):
        _reconcile(engine, reg, [AssignmentRow(a, mine)], event_id=other_event)


def test_update_twice_is_idempotent(engine, make_event, make_slot):
    event_id = make_event()
    s1 = make_slot(event_id, start=at(9), end=at(10))
    s2 = make_slot(event_id, station="Sorting", start=at(10), end=at(11))

    with session_scope(engine) as session:
        reg, (a,) = _registration(session, event_id)

    desired = [AssignmentRow(a, s1), AssignmentRow(a, s2), AssignmentRow(a, s2)]
    first = _reconcile(engine, reg, desired)
    second = _reconcile(engine, reg, desired)

    assert first.added == 2
    assert not second.changed
    with session_scope(engine) as session:
        rows = session.exec(select(ScheduleAssignment)).all()
        assert len(rows) == 2


def test_empty_desired_set_deletes_when_asked(engine, make_event, make_slot):
    event_id = make_event()
    slot = make_slot(event_id, start=at(9), end=at(10))

    with session_scope(engine) as session:
        reg, (a,) = _registration(session, event_id)
    _reconcile(engine, reg, [AssignmentRow(a, slot)])

    kept = _reconcile(engine, reg, [])
    assert kept.removed == 1 and not kept.deleted

    result = _reconcile(engine, reg, [], delete_if_empty=True)
    assert result.deleted
    with session_scope(engine) as session:
        assert session.get(Registration, reg) is None


def test_potluck_dish_rules_and_updates(engine, make_event, make_slot):
    event_id = make_event(mode=SignupMode.POTLUCK)
    item = make_slot(event_id, station="Mains", capacity=2, title="Casserole")

    with session_scope(engine) as session:
        reg, (a,) = _registration(session, event_id)

    with pytest.raises(ValidationError):
        _reconcile(engine, reg, [AssignmentRow(a, item, "   ")])
    with pytest.raises(ValidationError):
        _reconcile(engine, reg, [AssignmentRow(a, item, "x" * 201)])

    _reconcile(engine, reg, [AssignmentRow(a, item, "Mac and cheese")])
    result = _reconcile(engine, reg, [AssignmentRow(a, item, "Lasagna")])
    assert result.updated == 1 and result.added == 0

    with session_scope(engine) as session:
        (row,) = session.exec(select(PotluckAssignment)).all()
        assert row.dish_name == "Lasagna"
