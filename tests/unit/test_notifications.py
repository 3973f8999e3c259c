"""Unit tests for the Notification Trigger and its sinks."""

import asyncio

import pytest

from email_tracker.domain.models import TrackingSession
from email_tracker.services.notifications import (
    CallbackNotificationSink,
    NotificationTrigger,
    build_open_notification,
)
from tests.helpers.tracking import FailingSink, RecordingSink


@pytest.fixture
def session() -> TrackingSession:
    return TrackingSession(id="s-1", email_subject="Invoice 42", sent_timestamp=1)


@pytest.mark.unit
class TestOpenNotification:
    def test_notification_content(self, session):
        notification = build_open_notification(session)

        assert notification.notification_id == "open-s-1"
        assert notification.title == "Email Opened!"
        assert notification.message == (
            'Your email "Invoice 42" was just opened by one of the recipients.'
        )


@pytest.mark.unit
class TestNotificationTrigger:
    def test_dispatch_without_running_loop_is_immediate(self, session):
        sink = RecordingSink()
        NotificationTrigger(sinks=[sink]).notify_first_open(session)
        assert len(sink.notifications) == 1

    @pytest.mark.asyncio
    async def test_dispatch_is_deferred_inside_event_loop(self, session):
        sink = RecordingSink()
        NotificationTrigger(sinks=[sink]).notify_first_open(session)

        assert sink.notifications == []
        await asyncio.sleep(0)
        assert len(sink.notifications) == 1

    def test_failing_sink_does_not_block_others(self, session):
        sink = RecordingSink()
        trigger = NotificationTrigger(sinks=[FailingSink(), sink])

        trigger.notify_first_open(session)

        assert len(sink.notifications) == 1

    def test_disabled_trigger_delivers_nothing(self, session):
        sink = RecordingSink()
        trigger = NotificationTrigger(sinks=[sink], enabled=False)

        trigger.notify_first_open(session)

        assert sink.notifications == []

    def test_sinks_can_be_added_and_removed(self, session):
        received = []
        callback_sink = CallbackNotificationSink(received.append)
        trigger = NotificationTrigger()

        trigger.add_sink(callback_sink)
        trigger.notify_first_open(session)
        trigger.remove_sink(callback_sink)
        trigger.notify_first_open(session)

        assert [n.session_id for n in received] == ["s-1"]
