from __future__ import annotations

import json
import logging

import httpx
import pytest

from conftest import at, contact
from slotkeeper.config import settings
from slotkeeper.models.event import SignupMode
from slotkeeper.services.allocation import AllocationService, Selection
from slotkeeper.services.notifier import (
    LoggingNotifier,
    WebhookNotifier,
    build_confirmation_message,
    build_notifier,
)
from slotkeeper.services.views import AssignmentView, EventSummary

EVENT = EventSummary(1, "Food Drive", at(8), at(18), SignupMode.SCHEDULE, "published")
SHIFT = AssignmentView(1, "Ann", 10, "Check-in", start_time=at(9), end_time=at(10))


def test_message_lists_assignments_and_link():
    msg = build_confirmation_message(contact(), EVENT, [SHIFT], "http://x/manage/abc", is_update=False)

    assert msg.to == "ann@neighbors.org"
    assert msg.subject == "Your volunteer schedule for Food Drive"
    assert "- Check-in: Sat Jun 1, 9:00 AM - Sat Jun 1, 10:00 AM (Ann)" in msg.text
    assert "http://x/manage/abc" in msg.text


def test_update_message_without_assignments():
    msg = build_confirmation_message(contact(), EVENT, [], "u", is_update=True)

    assert msg.subject.startswith("Updated volunteer schedule")
    assert "You currently have no reserved slots." in msg.text


def test_webhook_posts_json():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(202)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    WebhookNotifier("http://relay/send", client=client).notify(contact(), EVENT, [SHIFT], "u", False)

    (payload,) = seen
    assert payload["to"] == "ann@neighbors.org"
    assert payload["event_id"] == 1
    assert payload["is_update"] is False


def test_webhook_raises_on_error_status():
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500)))

    with pytest.raises(httpx.HTTPStatusError):
        WebhookNotifier("http://relay/send", client=client).notify(contact(), EVENT, [], "u", True)


def test_build_notifier_picks_by_config():
    assert isinstance(build_notifier(settings.model_copy(update={"notify_webhook_url": ""})), LoggingNotifier)
    assert isinstance(
        build_notifier(settings.model_copy(update={"notify_webhook_url": "http://relay"})), WebhookNotifier
    )


def test_logging_notifier_keeps_link_and_contact_out_of_logs(engine, clock, make_event, make_slot, caplog):
    event_id = make_event()
    slot = make_slot(event_id, start=at(9), end=at(10))
    svc = AllocationService(engine=engine, notifier=LoggingNotifier(), clock=clock)

    with caplog.at_level(logging.DEBUG, logger="slotkeeper"):
        result = svc.submit_registration(event_id, contact(), schedule_assignments=[Selection(slot)])

    assert result.token
    text = "\n".join(r.getMessage() for r in caplog.records)
    assert "Notification (log only)" in text
    assert result.token not in text
    assert "ann@neighbors.org" not in text
    assert "Ann Lee" not in text
