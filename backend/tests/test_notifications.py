"""
Notification dispatch tests.

Each (recipient, channel) is delivered independently: one failing or
hanging channel never blocks another, and replayed events are not re-sent.
"""

import pytest

from backend.app.services.notification_service import (
    Channel,
    ConsoleEmailChannel,
    NotificationDispatcher,
    OutboundNotification,
    notifications_for,
)
from backend.app.models.enums import UserRole
from backend.app.models.user import User
from factories import RecordingChannel


def messages(event_key="payment-paid:1"):
    return [
        OutboundNotification(event_key, Channel.EMAIL, "renter@test.com", "Payment Received", "<p>ok</p>"),
        OutboundNotification(event_key, Channel.SMS, "+910000000002", "Payment Received", "ok"),
    ]


@pytest.mark.asyncio
async def test_failed_sms_does_not_block_email():
    email = RecordingChannel("email")
    sms = RecordingChannel("sms", fail=True)
    dispatcher = NotificationDispatcher({Channel.EMAIL: email, Channel.SMS: sms}, timeout=1.0)

    tasks = dispatcher.dispatch(messages())
    await dispatcher.drain()

    assert email.sent == [("renter@test.com", "Payment Received", "<p>ok</p>")]
    assert sms.sent == []
    assert [task.result() for task in tasks] == [True, False]


@pytest.mark.asyncio
async def test_slow_channel_times_out():
    email = RecordingChannel("email")
    sms = RecordingChannel("sms", delay=5)
    dispatcher = NotificationDispatcher({Channel.EMAIL: email, Channel.SMS: sms}, timeout=0.05)

    tasks = dispatcher.dispatch(messages())
    await dispatcher.drain()

    assert len(email.sent) == 1
    assert sms.sent == []
    assert tasks[1].result() is False


@pytest.mark.asyncio
async def test_duplicate_event_is_sent_once(redis_client_session):
    email = RecordingChannel("email")
    sms = RecordingChannel("sms")
    dispatcher = NotificationDispatcher({Channel.EMAIL: email, Channel.SMS: sms}, timeout=1.0, dedupe_ttl=60)

    dispatcher.dispatch(messages())
    await dispatcher.drain()
    dispatcher.dispatch(messages())
    await dispatcher.drain()

    assert len(email.sent) == 1
    assert len(sms.sent) == 1
    assert "notif:payment-paid:1:email:renter@test.com" in redis_client_session.store


@pytest.mark.asyncio
async def test_send_goes_ahead_when_dedupe_store_is_down(monkeypatch):
    async def unavailable(key, ttl_seconds):
        raise ConnectionError("redis down")

    monkeypatch.setattr("backend.app.services.notification_service.claim_once", unavailable)
    email = RecordingChannel("email")
    dispatcher = NotificationDispatcher({Channel.EMAIL: email}, timeout=1.0, dedupe_ttl=60)

    dispatcher.dispatch(messages()[:1])
    await dispatcher.drain()

    assert len(email.sent) == 1


@pytest.mark.asyncio
async def test_missing_channel_is_skipped():
    email = RecordingChannel("email")
    dispatcher = NotificationDispatcher({Channel.EMAIL: email}, timeout=1.0)

    tasks = dispatcher.dispatch(messages())
    await dispatcher.drain()

    assert len(email.sent) == 1
    assert tasks[1].result() is False


def test_notifications_for_skips_missing_addresses():
    no_phone = User(username="a", email="a@test.com", phone=None, role=UserRole.RENTER)
    no_email = User(username="b", email=None, phone="+911", role=UserRole.OWNER)

    assert [m.channel for m in notifications_for(no_phone, "e", "s", "b", "b")] == [Channel.EMAIL]
    assert [m.channel for m in notifications_for(no_email, "e", "s", "b", "b")] == [Channel.SMS]
    assert notifications_for(None, "e", "s", "b", "b") == []


@pytest.mark.asyncio
async def test_console_channel_logs(caplog):
    caplog.set_level("INFO", logger="rentivo.notifications")

    await ConsoleEmailChannel().send("renter@test.com", "Hello", "<p>hi</p>")

    assert "renter@test.com" in caplog.text
