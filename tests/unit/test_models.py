"""Unit tests for the tracking session model and its wire form."""

import pytest
from pydantic import ValidationError

from email_tracker.core.enums import SessionStatus
from email_tracker.domain.models import (
    ClickEvent,
    DeviceInfo,
    GeoLocation,
    OpenEvent,
    TrackingSession,
    derive_status,
    sessions_from_wire,
    sessions_to_wire,
)


def _full_session() -> TrackingSession:
    return TrackingSession(
        id="s-1",
        email_subject="Hello",
        recipients=["a@example.com", "b@example.com"],
        sent_timestamp=1_000,
        pixel_loads=[
            OpenEvent(
                timestamp=2_000,
                ip_address="203.0.113.5",
                user_agent="UA",
                geolocation=GeoLocation(country="DE", city="Berlin", lat=52.5, lon=13.4),
                device=DeviceInfo(browser="Chrome", os="Android", form_factor="Mobile"),
            )
        ],
        link_clicks=[
            ClickEvent(
                timestamp=3_000,
                ip_address="203.0.113.5",
                user_agent="UA",
                link_id="link_0",
                original_url="https://example.com",
            )
        ],
    )


@pytest.mark.unit
class TestWireForm:
    def test_wire_form_uses_camel_case_keys(self):
        wire = _full_session().to_wire()

        assert set(wire) == {
            "id",
            "emailSubject",
            "recipients",
            "sentTimestamp",
            "pixelLoads",
            "linkClicks",
            "status",
        }
        assert wire["status"] == "clicked"
        assert wire["pixelLoads"][0]["ipAddress"] == "203.0.113.5"
        assert wire["pixelLoads"][0]["device"]["formFactor"] == "Mobile"
        assert wire["linkClicks"][0]["linkId"] == "link_0"
        assert wire["linkClicks"][0]["originalUrl"] == "https://example.com"

    def test_round_trip_preserves_every_field(self):
        session = _full_session()
        restored = TrackingSession.from_wire(session.to_wire())

        assert restored.to_wire() == session.to_wire()
        assert restored.pixel_loads[0].geolocation.city == "Berlin"
        assert restored.link_clicks[0].original_url == "https://example.com"
        assert restored.sent_timestamp == 1_000

    def test_mapping_round_trip(self):
        sessions = {"s-1": _full_session()}
        restored = sessions_from_wire(sessions_to_wire(sessions))
        assert sessions_to_wire(restored) == sessions_to_wire(sessions)

    def test_missing_id_takes_mapping_key(self):
        sessions = sessions_from_wire({"abc": {"emailSubject": "Hi", "recipients": []}})
        assert sessions["abc"].id == "abc"

    def test_legacy_keys_are_accepted(self):
        event = ClickEvent.model_validate(
            {
                "timestamp": 5,
                "ipAddress": "192.0.2.1",
                "userAgent": "UA",
                "linkId": "link_1",
                "url": "https://example.org",
                "device": {"browser": "Firefox", "os": "Linux", "device": "Desktop"},
                "geolocation": {"country": "US", "ll": [40.7, -74.0]},
            }
        )
        assert event.ip_address == "192.0.2.1"
        assert event.original_url == "https://example.org"
        assert event.device.form_factor == "Desktop"
        assert event.geolocation.lat == 40.7
        assert event.geolocation.lon == -74.0

    def test_event_without_timestamp_is_rejected(self):
        with pytest.raises(ValidationError):
            OpenEvent.model_validate({"ipAddress": "192.0.2.1"})


@pytest.mark.unit
class TestStatus:
    def test_new_session_is_sent(self):
        session = TrackingSession(id="s", email_subject="x", sent_timestamp=1)
        assert session.status == SessionStatus.SENT
        assert session.pixel_loads == []
        assert session.link_clicks == []

    def test_incoming_status_is_recomputed(self):
        session = TrackingSession.from_wire({"id": "s", "status": "clicked"})
        assert session.status == SessionStatus.SENT

    def test_append_open_reports_first_open_only(self):
        session = TrackingSession(id="s")
        assert session.append_open(OpenEvent(timestamp=1)) is True
        assert session.append_open(OpenEvent(timestamp=2)) is False
        assert session.status == SessionStatus.OPENED

    def test_click_without_open_is_clicked(self):
        session = TrackingSession(id="s")
        session.append_click(ClickEvent(timestamp=1, link_id="link_0"))
        assert session.status == SessionStatus.CLICKED

    def test_status_never_regresses_after_more_opens(self):
        session = TrackingSession(id="s")
        session.append_click(ClickEvent(timestamp=1, link_id="link_0"))
        session.append_open(OpenEvent(timestamp=2))
        assert session.status == SessionStatus.CLICKED

    def test_copy_deep_is_independent(self):
        session = _full_session()
        copy = session.copy_deep()
        copy.pixel_loads.append(OpenEvent(timestamp=9))
        assert len(session.pixel_loads) == 1
