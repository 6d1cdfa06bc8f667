from __future__ import annotations

import logging
from collections import Counter, defaultdict
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session

from ..models.event import SignupMode
from ..models.participant import Participant
from ..models.registration import Registration
from .capacity_store import CapacityStore
from .reconciler import RegistrationReconciler
from .views import AssignmentRow, SlotInfo

logger = logging.getLogger(__name__)


def delete_empty_registrations(session: Session, event_id: Optional[int] = None) -> int:
    """
    Housekeeping: drop registrations left with zero participants and zero
    assignments. Returns how many were deleted.
    """
    store = CapacityStore(session)
    ids = store.empty_registration_ids(event_id)
    for rid in ids:
        store.delete_registration_cascade(rid)
    if ids:
        logger.info("Deleted %d empty registration(s) for event=%s", len(ids), event_id)
    return len(ids)


def _adopt_token(survivor: Registration, extras) -> None:
    """
    Keep a working manage link when the survivor never had one: take the
    newest token from the registrations about to be deleted.
    """
    if survivor.manage_token_hash:
        return
    for extra in sorted(extras, key=lambda r: r.id, reverse=True):
        if extra.manage_token_hash:
            survivor.manage_token_hash = extra.manage_token_hash
            survivor.manage_token_expires_at = extra.manage_token_expires_at
            extra.manage_token_hash = None
            return


def _overlaps(a: SlotInfo, b: SlotInfo) -> bool:
    if a.mode != SignupMode.SCHEDULE or b.mode != SignupMode.SCHEDULE:
        return False
    if None in (a.start_time, a.end_time, b.start_time, b.end_time):
        return False
    return a.start_time < b.end_time and b.start_time < a.end_time


def merge_duplicate_registrations(
    session: Session,
    event_id: int,
    email: str,
    preferred_registration_id: Optional[int] = None,
) -> Optional[int]:
    """
    Fold every registration for (event, lower(email)) into one survivor.

    Steps:
    - survivor = preferred_registration_id when it is one of them, else the oldest
    - each extra participant maps onto a same-named survivor participant
      (case-insensitive), created when missing
    - an extra row that overlaps a slot the target participant keeps is
      dropped (the survivor's rows win)
    - the union of assignments is applied through the reconciler; the extras'
      rows are passed as ignored counts since they are deleted right after
    - extras are deleted, then empty registrations across the event

    Safe to re-run: with zero or one registration it only reports the id.
    Runs inside the caller's unit of work and raises on conflicts; callers
    that treat merging as best-effort wrap it in a savepoint.
    """
    store = CapacityStore(session)
    regs = store.registrations_by_email(event_id, email)
    if not regs:
        return None
    if len(regs) == 1:
        return regs[0].id

    survivor = next((r for r in regs if r.id == preferred_registration_id), regs[0])
    extras = [r for r in regs if r.id != survivor.id]

    by_name: Dict[str, Participant] = {p.name_key: p for p in store.participants(survivor.id)}
    desired: Dict[Tuple[int, int], AssignmentRow] = {
        r.key: r for r in store.current_rows(p.id for p in by_name.values())
    }
    ignored: Counter = Counter()

    incoming: List[AssignmentRow] = []
    for extra in extras:
        for participant in store.participants(extra.id):
            target = by_name.get(participant.name_key)
            if target is None:
                target = store.add_participant(survivor.id, participant.participant_name)
                by_name[target.name_key] = target

            for row in store.current_rows([participant.id]):
                ignored[row.slot_id] += 1
                incoming.append(AssignmentRow(target.id, row.slot_id, row.dish_name))

    infos = store.blocks_info({r.slot_id for r in desired.values()} | {r.slot_id for r in incoming})
    held: Dict[int, List[SlotInfo]] = defaultdict(list)
    for r in desired.values():
        if r.slot_id in infos:
            held[r.participant_id].append(infos[r.slot_id])

    for row in incoming:
        if row.key in desired:
            continue
        info = infos.get(row.slot_id)
        if info is not None and any(_overlaps(info, other) for other in held[row.participant_id]):
            logger.warning(
                "Dropped slot %s for participant %s while merging: overlaps a kept slot",
                row.slot_id,
                row.participant_id,
            )
            continue
        desired[row.key] = row
        if info is not None:
            held[row.participant_id].append(info)

    RegistrationReconciler(store).reconcile(
        survivor.id,
        desired.values(),
        event_id=event_id,
        ignored_counts=ignored,
    )

    _adopt_token(survivor, extras)
    session.add(survivor)

    for extra in extras:
        store.delete_registration_cascade(extra.id)

    delete_empty_registrations(session, event_id)

    logger.info(
        "Merged %d duplicate registration(s) into registration %s (event=%s)",
        len(extras),
        survivor.id,
        event_id,
    )
    return survivor.id
