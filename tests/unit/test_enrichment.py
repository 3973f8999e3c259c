"""Unit tests for device classification and client info enrichment."""

import pytest

from email_tracker.domain.enrichment import (
    NullGeoLocator,
    StaticGeoLocator,
    classify_device,
    client_ip_from_headers,
    enrich,
)
from email_tracker.domain.models import GeoLocation
from tests.helpers.tracking import (
    CHROME_MOBILE_UA,
    EDGE_DESKTOP_UA,
    FIREFOX_DESKTOP_UA,
    SAFARI_IPAD_UA,
)


@pytest.mark.unit
class TestClassifyDevice:
    @pytest.mark.parametrize(
        "user_agent, browser, os_name, form_factor",
        [
            (CHROME_MOBILE_UA, "Chrome", "Android", "Mobile"),
            (FIREFOX_DESKTOP_UA, "Firefox", "Windows", "Desktop"),
            (EDGE_DESKTOP_UA, "Edge", "Windows", "Desktop"),
            (SAFARI_IPAD_UA, "Safari", "iOS", "Tablet"),
        ],
    )
    def test_known_user_agents(self, user_agent, browser, os_name, form_factor):
        device = classify_device(user_agent)
        assert device.browser == browser
        assert device.os == os_name
        assert device.form_factor == form_factor

    @pytest.mark.parametrize("user_agent", [None, "", "unknown"])
    def test_missing_user_agent(self, user_agent):
        device = classify_device(user_agent)
        assert device.browser == "unknown"
        assert device.os == "unknown"
        assert device.form_factor == "unknown"


@pytest.mark.unit
class TestEnrich:
    def test_missing_ip_and_user_agent_become_unknown(self):
        info = enrich(None, None)
        assert info.ip_address == "unknown"
        assert info.user_agent == "unknown"
        assert info.geolocation is None

    def test_locator_is_consulted(self):
        locator = StaticGeoLocator({"203.0.113.5": GeoLocation(country="NL", city="Amsterdam")})
        info = enrich("203.0.113.5", CHROME_MOBILE_UA, locator)
        assert info.geolocation.city == "Amsterdam"
        assert info.device.browser == "Chrome"

    def test_null_locator_returns_nothing(self):
        assert enrich("203.0.113.5", "UA", NullGeoLocator()).geolocation is None


@pytest.mark.unit
class TestClientIp:
    def test_first_forwarded_hop_wins(self):
        assert client_ip_from_headers("203.0.113.5, 10.0.0.1", "127.0.0.1") == "203.0.113.5"

    def test_peer_address_without_forwarding(self):
        assert client_ip_from_headers(None, "192.0.2.44") == "192.0.2.44"

    def test_nothing_known(self):
        assert client_ip_from_headers("", None) == "unknown"
