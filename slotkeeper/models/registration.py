from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Registration(SQLModel, table=True):
    """
    Contact-level record grouping one or more Participants for one Event.

    Notes:
    - (event_id, lower(registrant_email)) is kept unique by the merge
      service, not by a constraint: transient duplicates can exist mid-request.
    - manage_token_hash stores sha256(pepper + token). Rows written before
      hashing was introduced hold the plaintext token here; it is rehashed on
      first successful use.
    - manage_token_expires_at is naive UTC; NULL means the link never expires.
    """

    __tablename__ = "registrations"

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="events.id", index=True)

    registrant_name: str
    registrant_email: str = Field(index=True)
    registrant_phone: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow, index=True, sa_type=DateTime(timezone=False))

    manage_token_hash: Optional[str] = Field(default=None, index=True)
    manage_token_expires_at: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime(timezone=False))

    # ---- Email consent ----
    email_opt_in: bool = Field(default=True)
    email_opted_out_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=False))
    email_opt_out_reason: Optional[str] = Field(default=None)

    def set_email_preference(self, opt_in: bool, reason: Optional[str] = None) -> None:
        if opt_in:
            self.email_opt_in = True
            self.email_opted_out_at = None
            self.email_opt_out_reason = None
            return

        self.email_opt_in = False
        self.email_opted_out_at = utcnow()
        cleaned = (reason or "").strip()
        self.email_opt_out_reason = cleaned[:500] if cleaned else None
