from __future__ import annotations

from typing import Optional

from sqlmodel import SQLModel, Field


class Station(SQLModel, table=True):
    """
    A location or role within an event (e.g. "Check-in", "Mains").
    station_order is the admin's manual ordering; ties fall back to id.
    """

    __tablename__ = "stations"

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="events.id", index=True)

    name: str
    description_overview: Optional[str] = Field(default=None)
    description_tasks: Optional[str] = Field(default=None)

    station_order: int = Field(default=0, index=True)
