from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Protocol, Sequence

import httpx

from ..config import Settings
from .views import AssignmentView, Contact, EventSummary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    to: str
    subject: str
    text: str


class Notifier(Protocol):
    """
    Outbound confirmation collaborator. Called after commit, never inside
    a transaction; failures are logged by the caller and never undo a write.
    """

    def notify(
        self,
        contact: Contact,
        event: EventSummary,
        assignments: Sequence[AssignmentView],
        manage_url: str,
        is_update: bool,
    ) -> None: ...


def _fmt_time(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.strftime("%a %b %d, %I:%M %p").replace(" 0", " ")


def _describe(a: AssignmentView) -> str:
    who = f" ({a.participant_name})" if a.participant_name else ""
    if a.dish_name:
        label = a.title or a.station_name
        return f"- {a.station_name}: {label}, bringing {a.dish_name}{who}"
    if a.start_time and a.end_time:
        return f"- {a.station_name}: {_fmt_time(a.start_time)} - {_fmt_time(a.end_time)}{who}"
    return f"- {a.station_name}{who}"


def build_confirmation_message(
    contact: Contact,
    event: EventSummary,
    assignments: Sequence[AssignmentView],
    manage_url: str,
    is_update: bool,
) -> Message:
    subject = (
        f"Updated volunteer schedule for {event.name}"
        if is_update
        else f"Your volunteer schedule for {event.name}"
    )
    items = "\n".join(_describe(a) for a in assignments) if assignments else "You currently have no reserved slots."
    text = (
        f"Hi {contact.name or contact.email},\n\n"
        f'Here is your schedule for "{event.name}":\n{items}\n\n'
        f"Need to make a change? Manage your signup here: {manage_url}\n\n"
        "If you did not request this email you can ignore it."
    )
    return Message(to=contact.email, subject=subject, text=text)


class LoggingNotifier:
    """Default notifier: records that a message would go out, without its body."""

    def notify(self, contact, event, assignments, manage_url, is_update) -> None:
        msg = build_confirmation_message(contact, event, assignments, manage_url, is_update)
        logger.info(
            "Notification (log only) subject=%r event_id=%s assignments=%d update=%s",
            msg.subject,
            event.event_id,
            len(assignments),
            is_update,
        )


class WebhookNotifier:
    """
    POSTs the rendered message as JSON to a mail relay (NOTIFY_WEBHOOK_URL).
    Non-2xx responses raise httpx.HTTPStatusError.
    """

    def __init__(self, url: str, timeout: float = 10.0, client: Optional[httpx.Client] = None) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client

    def _payload(self, msg: Message, event: EventSummary, is_update: bool) -> Dict[str, Any]:
        return {
            "to": msg.to,
            "subject": msg.subject,
            "text": msg.text,
            "event_id": event.event_id,
            "is_update": is_update,
        }

    def notify(self, contact, event, assignments, manage_url, is_update) -> None:
        msg = build_confirmation_message(contact, event, assignments, manage_url, is_update)
        payload = self._payload(msg, event, is_update)

        if self._client is not None:
            r = self._client.post(self.url, json=payload, timeout=self.timeout)
            r.raise_for_status()
            return

        with httpx.Client(timeout=self.timeout) as client:
            r = client.post(self.url, json=payload)
            r.raise_for_status()


def build_notifier(cfg: Settings) -> Notifier:
    if cfg.notify_webhook_url:
        return WebhookNotifier(cfg.notify_webhook_url, timeout=cfg.notify_timeout_s)
    return LoggingNotifier()
