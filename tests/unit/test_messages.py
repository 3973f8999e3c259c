"""Unit tests for the local message contract and the tracker client."""

import asyncio

import pytest
from pydantic import ValidationError

from email_tracker.client.extension import TrackerClient
from email_tracker.client.messages import (
    CreateTrackingSession,
    GetTrackingData,
    RecordLinkClick,
    SetTrackingEnabled,
    parse_message,
)
from email_tracker.config import TrackerConfig
from email_tracker.core.exceptions import StoreUnavailable
from email_tracker.services.notifications import NotificationTrigger
from tests.helpers.tracking import RecordingSink


class StubSyncEngine:
    def __init__(self, result=True):
        self.result = result
        self.calls = 0
        self.transport = object()

    async def sync_once(self):
        self.calls += 1
        return self.result

    async def stop(self):
        pass


@pytest.fixture
def tracker(memory_store, sink, clock) -> TrackerClient:
    return TrackerClient(
        memory_store,
        sync_engine=StubSyncEngine(),
        notifier=NotificationTrigger(sinks=[sink]),
        clock=clock,
    )


@pytest.mark.unit
class TestParseMessage:
    def test_variants_are_selected_by_type(self):
        message = parse_message(
            {
                "type": "CREATE_TRACKING_SESSION",
                "emailDetails": {"subject": "Hi", "recipients": ["a@example.com"]},
            }
        )
        assert isinstance(message, CreateTrackingSession)
        assert message.email_details.subject == "Hi"

    def test_camel_case_fields(self):
        message = parse_message(
            {"type": "RECORD_LINK_CLICK", "trackingId": "t", "linkId": "link_3", "data": {}}
        )
        assert isinstance(message, RecordLinkClick)
        assert message.link_id == "link_3"
        assert message.data.ip_address == "unknown"

    def test_optional_tracking_id(self):
        message = parse_message({"type": "GET_TRACKING_DATA"})
        assert isinstance(message, GetTrackingData)
        assert message.tracking_id is None

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_message({"type": "LAUNCH_ROCKETS"})

    def test_missing_required_field_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_message({"type": "SET_TRACKING_ENABLED"})

    def test_set_tracking_enabled(self):
        message = parse_message({"type": "SET_TRACKING_ENABLED", "enabled": False})
        assert isinstance(message, SetTrackingEnabled)
        assert message.enabled is False


@pytest.mark.unit
class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_create_then_record_then_read(self, tracker, sink):
        created = await tracker.handle_message(
            {"type": "CREATE_TRACKING_SESSION", "emailDetails": {"subject": "Hi"}}
        )
        tracking_id = created["trackingId"]
        assert created["success"] is True

        recorded = await tracker.handle_message(
            {
                "type": "RECORD_PIXEL_LOAD",
                "trackingId": tracking_id,
                "data": {"ipAddress": "192.0.2.9", "userAgent": "UA"},
            }
        )
        await asyncio.sleep(0)
        assert recorded == {"success": True}
        assert len(sink.notifications) == 1

        one = await tracker.handle_message({"type": "GET_TRACKING_DATA", "trackingId": tracking_id})
        assert one["data"]["status"] == "opened"
        assert one["data"]["pixelLoads"][0]["ipAddress"] == "192.0.2.9"

        everything = await tracker.handle_message({"type": "GET_TRACKING_DATA"})
        assert list(everything["data"]) == [tracking_id]

    @pytest.mark.asyncio
    async def test_record_against_unknown_id(self, tracker):
        response = await tracker.handle_message(
            {"type": "RECORD_LINK_CLICK", "trackingId": "nope", "linkId": "link_0"}
        )
        assert response == {"success": False}

    @pytest.mark.asyncio
    async def test_unknown_type(self, tracker):
        response = await tracker.handle_message({"type": "SOMETHING_ELSE"})
        assert response == {"success": False, "error": "Unknown message type"}

    @pytest.mark.asyncio
    async def test_invalid_fields(self, tracker):
        response = await tracker.handle_message({"type": "SET_TRACKING_ENABLED"})
        assert response["success"] is False
        assert response["error"].startswith("Invalid message")

    @pytest.mark.asyncio
    async def test_disabling_tracking_suppresses_notifications(self, tracker, sink):
        await tracker.handle_message({"type": "SET_TRACKING_ENABLED", "enabled": False})
        created = await tracker.handle_message({"type": "CREATE_TRACKING_SESSION"})

        await tracker.handle_message(
            {"type": "RECORD_PIXEL_LOAD", "trackingId": created["trackingId"]}
        )
        await asyncio.sleep(0)

        assert tracker.tracking_enabled is False
        assert sink.notifications == []

    @pytest.mark.asyncio
    async def test_sync_now_delegates_to_engine(self, tracker):
        assert await tracker.handle_message({"type": "SYNC_NOW"}) == {"success": True}
        assert tracker.sync_engine.calls == 1

    @pytest.mark.asyncio
    async def test_statistics(self, tracker):
        await tracker.handle_message({"type": "CREATE_TRACKING_SESSION"})

        response = await tracker.handle_message({"type": "GET_STATISTICS"})

        assert response["success"] is True
        assert response["data"]["sent"] == 1
        assert response["data"]["openRate"] == 0
        assert response["data"]["recentActivity"][0]["type"] == "sent"

    @pytest.mark.asyncio
    async def test_clear(self, tracker):
        await tracker.handle_message({"type": "CREATE_TRACKING_SESSION"})

        response = await tracker.handle_message({"type": "CLEAR_TRACKING_DATA"})

        assert response == {"success": True, "cleared": 1}

    @pytest.mark.asyncio
    async def test_failed_clear_reports_failure(self, tracker, monkeypatch):
        async def broken_clear():
            raise StoreUnavailable("disk full", in_memory=True)

        monkeypatch.setattr(tracker.store, "clear", broken_clear)

        response = await tracker.handle_message({"type": "CLEAR_TRACKING_DATA"})

        assert response["success"] is False
        assert "disk full" in response["error"]


@pytest.mark.unit
class TestCreateSession:
    @pytest.mark.asyncio
    async def test_id_is_returned_when_replica_write_fails(self, json_store, draft, monkeypatch):
        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("email_tracker.repositories.memory_impl.os.replace", broken_replace)
        tracker = TrackerClient(json_store, notifier=NotificationTrigger(sinks=[RecordingSink()]))

        tracking_id = await tracker.create_session(draft)

        assert (await json_store.get(tracking_id)) is not None


@pytest.mark.unit
class TestTrackingUrls:
    @pytest.mark.asyncio
    async def test_create_returns_pixel_and_tracked_links(self, memory_store, sink):
        tracker = TrackerClient(
            memory_store,
            notifier=NotificationTrigger(sinks=[sink]),
            public_base_url="https://track.example.com/",
        )

        created = await tracker.handle_message(
            {
                "type": "CREATE_TRACKING_SESSION",
                "emailDetails": {"subject": "Hi"},
                "links": ["https://example.com", "https://example.org/a?b=c"],
            }
        )

        tracking_id = created["trackingId"]
        assert created["pixelUrl"] == f"https://track.example.com/pixel/{tracking_id}"
        assert f'src="https://track.example.com/pixel/{tracking_id}"' in created["pixelHtml"]
        assert created["trackedLinks"] == [
            {
                "linkId": "link_0",
                "originalUrl": "https://example.com",
                "url": f"https://track.example.com/link/{tracking_id}/link_0?url=https%3A%2F%2Fexample.com",
            },
            {
                "linkId": "link_1",
                "originalUrl": "https://example.org/a?b=c",
                "url": (
                    f"https://track.example.com/link/{tracking_id}/link_1"
                    "?url=https%3A%2F%2Fexample.org%2Fa%3Fb%3Dc"
                ),
            },
        ]

    @pytest.mark.asyncio
    async def test_no_urls_without_public_base_url(self, tracker):
        created = await tracker.handle_message(
            {"type": "CREATE_TRACKING_SESSION", "links": ["https://example.com"]}
        )
        assert set(created) == {"success", "trackingId"}

    def test_from_config_uses_server_public_url(self, tmp_path):
        config = TrackerConfig()
        config.client.store_path = str(tmp_path / "tracking_data.json")
        config.server.public_base_url = "https://track.example.com"

        tracker = TrackerClient.from_config(config)
        try:
            assert tracker.tracking_urls("abc")["pixelUrl"] == "https://track.example.com/pixel/abc"
        finally:
            tracker.sync_engine.transport.close()


@pytest.mark.unit
class TestNotifierOwnership:
    def test_given_notifier_keeps_its_enabled_state(self, memory_store):
        notifier = NotificationTrigger(sinks=[RecordingSink()], enabled=False)

        tracker = TrackerClient(memory_store, notifier=notifier, tracking_enabled=True)

        assert tracker.notifier is notifier
        assert notifier.enabled is False

    def test_built_notifier_follows_tracking_flag(self, memory_store):
        tracker = TrackerClient(memory_store, tracking_enabled=False)
        assert tracker.notifier.enabled is False
