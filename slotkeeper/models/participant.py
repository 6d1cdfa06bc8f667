from __future__ import annotations

from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


def name_key(name: str) -> str:
    """Case-insensitive identity of a participant name within a registration."""
    return " ".join((name or "").split()).lower()


class Participant(SQLModel, table=True):
    """
    An individual person covered by a Registration (distinct from the contact).
    name_key backs the case-insensitive uniqueness rule.
    """

    __tablename__ = "participants"
    __table_args__ = (
        UniqueConstraint("registration_id", "name_key", name="uq_participants_reg_name"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    registration_id: int = Field(foreign_key="registrations.id", index=True)

    participant_name: str
    name_key: str

    def rename(self, new_name: str) -> None:
        self.participant_name = " ".join(new_name.split())
        self.name_key = name_key(new_name)
