"""Unit tests for pixel and tracked-link URL building."""

from urllib.parse import parse_qs, urlparse

import pytest

from email_tracker.services.links import (
    build_pixel_url,
    build_tracked_link,
    pixel_html,
    rewrite_links,
)

BASE = "https://track.example.com/"


@pytest.mark.unit
class TestLinks:
    def test_pixel_url(self):
        assert build_pixel_url(BASE, "abc") == "https://track.example.com/pixel/abc"

    def test_pixel_html_is_hidden_image(self):
        html = pixel_html(BASE, "abc")
        assert html.startswith('<img src="https://track.example.com/pixel/abc"')
        assert 'width="1"' in html
        assert "display:none" in html

    def test_tracked_link_encodes_target(self):
        url = build_tracked_link(BASE, "abc", "link_0", "https://example.com/a?b=1&c=2")
        parsed = urlparse(url)

        assert parsed.path == "/link/abc/link_0"
        assert parse_qs(parsed.query)["url"] == ["https://example.com/a?b=1&c=2"]

    def test_rewrite_links_numbers_by_position(self):
        rewritten = rewrite_links(BASE, "abc", ["https://a.test", "https://b.test"])

        assert [link_id for link_id, _ in rewritten] == ["link_0", "link_1"]
        assert rewritten[1][1].startswith("https://track.example.com/link/abc/link_1?url=")
