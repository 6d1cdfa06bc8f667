from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import ConflictError, NotFoundError, ValidationError
from .views import AssignmentRow, SlotInfo


@dataclass(frozen=True)
class AssignmentDelta:
    """
    Minimal change set between a registration's current and desired rows.

    - adds / removes are keyed by (participant, slot)
    - dish_updates are rows present on both sides whose dish name changed
    """
    adds: Tuple[AssignmentRow, ...] = field(default_factory=tuple)
    removes: Tuple[AssignmentRow, ...] = field(default_factory=tuple)
    dish_updates: Tuple[AssignmentRow, ...] = field(default_factory=tuple)

    @property
    def is_noop(self) -> bool:
        return not (self.adds or self.removes or self.dish_updates)


@dataclass(frozen=True)
class SlotOccupancy:
    """
    Capacity arithmetic for one touched slot.
    before excludes ignored rows; after = before - removed + added.
    """
    slot_id: int
    capacity: int
    before: int
    after: int

    @property
    def increases(self) -> bool:
        return self.after > self.before

    @property
    def over_capacity(self) -> bool:
        return self.after > self.capacity


def compute_delta(current: Iterable[AssignmentRow], desired: Iterable[AssignmentRow]) -> AssignmentDelta:
    current_by_key = {r.key: r for r in current}
    desired_by_key: Dict[Tuple[int, int], AssignmentRow] = {}
    for r in desired:
        desired_by_key.setdefault(r.key, r)

    adds = tuple(r for k, r in desired_by_key.items() if k not in current_by_key)
    removes = tuple(r for k, r in current_by_key.items() if k not in desired_by_key)
    dish_updates = tuple(
        r
        for k, r in desired_by_key.items()
        if k in current_by_key and (current_by_key[k].dish_name or None) != (r.dish_name or None)
    )
    return AssignmentDelta(adds=adds, removes=removes, dish_updates=dish_updates)


def check_same_event(slots: Mapping[int, SlotInfo], slot_ids: Iterable[int], event_id: int) -> None:
    """
    Every slot referenced by one request must exist and belong to event_id.
    """
    for slot_id in sorted(set(slot_ids)):
        info = slots.get(slot_id)
        if info is None:
            raise NotFoundError(f"Slot {slot_id} not found.")
        if info.event_id != event_id:
            raise ValidationError("All assignments must belong to the same event.")


def slot_occupancy(
    slots: Mapping[int, SlotInfo],
    occupancy: Mapping[int, int],
    delta: AssignmentDelta,
    ignored: Optional[Mapping[int, int]] = None,
) -> List[SlotOccupancy]:
    """
    Occupancy before/after the delta for every slot that receives an add.

    occupancy is the committed per-slot count (this registration's rows
    included); ignored are rows about to be deleted by the caller.
    """
    ignored = ignored or {}
    added = Counter(r.slot_id for r in delta.adds)
    removed = Counter(r.slot_id for r in delta.removes)

    out: List[SlotOccupancy] = []
    for slot_id in sorted(added):
        info = slots[slot_id]
        before = max(0, int(occupancy.get(slot_id, 0)) - int(ignored.get(slot_id, 0)))
        after = max(0, before - removed.get(slot_id, 0)) + added[slot_id]
        out.append(SlotOccupancy(slot_id=slot_id, capacity=info.capacity, before=before, after=after))
    return out


def check_capacity(
    slots: Mapping[int, SlotInfo],
    occupancy: Mapping[int, int],
    delta: AssignmentDelta,
    ignored: Optional[Mapping[int, int]] = None,
) -> List[SlotOccupancy]:
    """
    Reject any net increase that ends above capacity.

    Rows kept from the current set are never adds, so re-confirming one's
    own holdings cannot fail, even on a slot that is already over capacity.
    """
    checked = slot_occupancy(slots, occupancy, delta, ignored)
    for occ in checked:
        if occ.increases and occ.over_capacity:
            raise ConflictError("One or more selected slots are already full.")
    return checked


def _intervals_by_participant(
    slots: Mapping[int, SlotInfo], rows: Iterable[AssignmentRow]
) -> Dict[int, List[Tuple[datetime, datetime, int]]]:
    out: Dict[int, List[Tuple[datetime, datetime, int]]] = defaultdict(list)
    for r in rows:
        info = slots.get(r.slot_id)
        if info is None or info.start_time is None or info.end_time is None:
            continue
        out[r.participant_id].append((info.start_time, info.end_time, r.slot_id))
    return out


def find_overlaps(slots: Mapping[int, SlotInfo], rows: Iterable[AssignmentRow]) -> List[Tuple[int, int, int]]:
    """
    Returns (participant_id, slot_a, slot_b) for each overlapping pair found.
    Intervals are half-open, so 10:00-11:00 and 11:00-12:00 do not overlap.
    """
    found: List[Tuple[int, int, int]] = []
    for participant_id, intervals in _intervals_by_participant(slots, rows).items():
        intervals.sort()
        open_end: Optional[datetime] = None
        open_slot: Optional[int] = None
        for start, end, slot_id in intervals:
            if open_end is not None and start < open_end:
                found.append((participant_id, open_slot, slot_id))
            if open_end is None or end > open_end:
                open_end, open_slot = end, slot_id
    return found


def check_overlap(slots: Mapping[int, SlotInfo], rows: Iterable[AssignmentRow]) -> None:
    if find_overlaps(slots, rows):
        raise ConflictError("Selected time slots overlap for the same participant.")
