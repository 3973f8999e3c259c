"""Builders for the pixel and tracked-link URLs embedded in outgoing email."""

from html import escape
from typing import List, Sequence, Tuple
from urllib.parse import quote

from ..core.identifiers import new_link_id

PIXEL_PATH = "/pixel"
LINK_PATH = "/link"


def build_pixel_url(base_url: str, tracking_id: str) -> str:
    """URL of the tracking pixel for ``tracking_id``."""
    return f"{base_url.rstrip('/')}{PIXEL_PATH}/{quote(tracking_id, safe='')}"


def pixel_html(base_url: str, tracking_id: str) -> str:
    """Hidden 1x1 image tag to append to the email body."""
    url = escape(build_pixel_url(base_url, tracking_id), quote=True)
    return f'<img src="{url}" width="1" height="1" alt="" style="display:none;">'


def build_tracked_link(base_url: str, tracking_id: str, link_id: str, original_url: str) -> str:
    """Redirect URL that records a click before forwarding to ``original_url``."""
    return (
        f"{base_url.rstrip('/')}{LINK_PATH}/{quote(tracking_id, safe='')}/"
        f"{quote(link_id, safe='')}?url={quote(original_url, safe='')}"
    )


def rewrite_links(
    base_url: str, tracking_id: str, urls: Sequence[str]
) -> List[Tuple[str, str]]:
    """Rewrite every link of an email, numbering them by position.

    Returns:
        ``(link_id, tracked_url)`` pairs in the order of ``urls``
    """
    rewritten = []
    for index, url in enumerate(urls):
        link_id = new_link_id(tracking_id, index)
        rewritten.append((link_id, build_tracked_link(base_url, tracking_id, link_id, url)))
    return rewritten
