# slotkeeper/models/__init__.py
# Central import surface for SQLModel table registration.
# Keeping these imports ensures init_db() sees all models and creates tables.

from .event import Event, PublishState, SignupMode
from .station import Station
from .slot import Slot

# Registrations (contact -> participants -> assignments)
from .registration import Registration
from .participant import Participant
from .assignment import PotluckAssignment, ScheduleAssignment

__all__ = [
    "Event",
    "PublishState",
    "SignupMode",
    "Station",
    "Slot",
    "Registration",
    "Participant",
    "PotluckAssignment",
    "ScheduleAssignment",
]
