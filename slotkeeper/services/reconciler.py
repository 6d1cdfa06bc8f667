from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Tuple

from ..models.event import Event
from ..models.registration import Registration
from .capacity_store import CapacityStore
from .conflict_checker import (
    AssignmentDelta,
    check_capacity,
    check_same_event,
    compute_delta,
)
from .errors import NotFoundError
from .modes import strategy_for
from .views import AssignmentRow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """
    Outcome of bringing one registration to its desired assignment set.
    assignments is the canonical set after the write (empty when deleted).
    """
    registration_id: int
    assignments: Tuple[AssignmentRow, ...] = field(default_factory=tuple)
    added: int = 0
    removed: int = 0
    updated: int = 0
    deleted: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed or self.updated or self.deleted)


class RegistrationReconciler:
    """
    Diff a registration's current assignments against a desired set and
    apply the minimal change through the CapacityStore.

    Must run inside a unit of work (session_scope); it flushes but never
    commits, so any error leaves the transaction to be rolled back whole.
    """

    def __init__(self, store: CapacityStore) -> None:
        self.store = store

    def reconcile(
        self,
        registration_id: int,
        desired: Iterable[AssignmentRow],
        *,
        event_id: Optional[int] = None,
        ignored_counts: Optional[Mapping[int, int]] = None,
        delete_if_empty: bool = False,
    ) -> ReconcileResult:
        session = self.store.session

        reg = session.get(Registration, registration_id)
        if reg is None or (event_id is not None and reg.event_id != event_id):
            raise NotFoundError("Registration not found.")

        event = session.get(Event, reg.event_id)
        if event is None:
            raise NotFoundError("Event not found.")
        strategy = strategy_for(event.signup_mode)

        participant_ids = {p.id for p in self.store.participants(reg.id)}

        cleaned: List[AssignmentRow] = []
        seen = set()
        for row in desired:
            if row.participant_id not in participant_ids:
                raise NotFoundError("Unknown participant for assignment.")
            if row.key in seen:
                continue
            seen.add(row.key)
            cleaned.append(AssignmentRow(row.participant_id, row.slot_id, strategy.clean_dish(row.dish_name)))

        current = self.store.current_rows(participant_ids)
        desired_slot_ids = {r.slot_id for r in cleaned}

        slots = self.store.blocks_info(desired_slot_ids | {r.slot_id for r in current}, lock=True)
        check_same_event(slots, desired_slot_ids, reg.event_id)

        delta = compute_delta(current, cleaned)
        empty_after = not cleaned

        if delta.is_noop and not (delete_if_empty and empty_after):
            return ReconcileResult(registration_id=reg.id, assignments=tuple(cleaned))

        if delta.adds:
            occupancy = self.store.occupancy(r.slot_id for r in delta.adds)
            check_capacity(slots, occupancy, delta, ignored_counts)
            strategy.check_final(slots, cleaned)

        applied = self.store.apply_assignment_delta(strategy, delta)

        if delete_if_empty and empty_after:
            self.store.delete_registration_cascade(reg.id)
            logger.info("Registration %s cleared all assignments and was deleted", registration_id)
            return ReconcileResult(
                registration_id=registration_id,
                removed=applied.removed,
                deleted=True,
            )

        self._log_delta(reg.id, delta)
        return ReconcileResult(
            registration_id=reg.id,
            assignments=tuple(cleaned),
            added=applied.added,
            removed=applied.removed,
            updated=applied.updated,
        )

    @staticmethod
    def _log_delta(registration_id: int, delta: AssignmentDelta) -> None:
        logger.info(
            "Registration %s reconciled: +%d -%d ~%d",
            registration_id,
            len(delta.adds),
            len(delta.removes),
            len(delta.dish_updates),
        )
