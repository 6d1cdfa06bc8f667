from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Type, Union

from ..models.assignment import PotluckAssignment, ScheduleAssignment
from ..models.event import SignupMode
from .conflict_checker import check_overlap
from .errors import ValidationError
from .views import AssignmentRow, SlotInfo

MAX_DISH_NAME = 200

AssignmentModel = Union[Type[ScheduleAssignment], Type[PotluckAssignment]]


class ModeStrategy:
    """
    Mode-specific allocation rules. One instance per SignupMode.

    - assignment_model: table the mode's assignments live in
    - clean_dish: normalize/validate the dish name of a desired row
    - check_final: validate a participant set after the delta is applied
    """

    mode: SignupMode
    assignment_model: AssignmentModel

    def clean_dish(self, dish_name: Optional[str]) -> Optional[str]:
        raise NotImplementedError

    def check_final(self, slots: Mapping[int, SlotInfo], rows: Iterable[AssignmentRow]) -> None:
        raise NotImplementedError


class ScheduleMode(ModeStrategy):
    mode = SignupMode.SCHEDULE
    assignment_model = ScheduleAssignment

    def clean_dish(self, dish_name: Optional[str]) -> Optional[str]:
        # time blocks carry no dish
        return None

    def check_final(self, slots: Mapping[int, SlotInfo], rows: Iterable[AssignmentRow]) -> None:
        check_overlap(slots, rows)


class PotluckMode(ModeStrategy):
    mode = SignupMode.POTLUCK
    assignment_model = PotluckAssignment

    def clean_dish(self, dish_name: Optional[str]) -> Optional[str]:
        cleaned = " ".join((dish_name or "").split())
        if not cleaned:
            raise ValidationError("Please tell us which dish you are bringing.")
        if len(cleaned) > MAX_DISH_NAME:
            raise ValidationError(f"Dish names are limited to {MAX_DISH_NAME} characters.")
        return cleaned

    def check_final(self, slots: Mapping[int, SlotInfo], rows: Iterable[AssignmentRow]) -> None:
        # potluck items have no time semantics
        return None


_STRATEGIES: Dict[SignupMode, ModeStrategy] = {
    SignupMode.SCHEDULE: ScheduleMode(),
    SignupMode.POTLUCK: PotluckMode(),
}


def strategy_for(mode: Union[SignupMode, str, None]) -> ModeStrategy:
    try:
        return _STRATEGIES[SignupMode(mode or SignupMode.SCHEDULE)]
    except ValueError:
        raise ValidationError(f"Unknown signup mode: {mode}") from None
