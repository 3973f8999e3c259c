"""Enrichment adapter: device classification and geolocation lookup.

Geolocation is a boundary. The core only depends on the ``GeoLocator``
interface; deployments plug in a real lookup, tests plug in a fake.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..core.enums import FormFactor
from .models import UNKNOWN, ClientInfo, DeviceInfo, GeoLocation

# Checked in order; Edge and Chrome UAs also contain "Safari"
_BROWSERS = (
    ("Edg", "Edge"),
    ("Firefox", "Firefox"),
    ("Chrome", "Chrome"),
    ("Safari", "Safari"),
)

_OPERATING_SYSTEMS = (
    ("Windows", "Windows"),
    ("iPhone", "iOS"),
    ("iPad", "iOS"),
    ("Android", "Android"),
    ("Mac", "MacOS"),
    ("Linux", "Linux"),
)


def classify_device(user_agent: Optional[str]) -> DeviceInfo:
    """Guess browser, OS and form factor from a user-agent string."""
    if not user_agent or user_agent == UNKNOWN:
        return DeviceInfo()

    browser = next((name for token, name in _BROWSERS if token in user_agent), UNKNOWN)
    os_name = next(
        (name for token, name in _OPERATING_SYSTEMS if token in user_agent), UNKNOWN
    )

    if "iPad" in user_agent or "Tablet" in user_agent:
        form_factor = FormFactor.TABLET
    elif "Mobile" in user_agent or "iPhone" in user_agent:
        form_factor = FormFactor.MOBILE
    else:
        form_factor = FormFactor.DESKTOP

    return DeviceInfo(browser=browser, os=os_name, form_factor=form_factor.value)


class GeoLocator(ABC):
    """Maps an IP address to a geolocation guess."""

    @abstractmethod
    def lookup(self, ip_address: str) -> Optional[GeoLocation]:
        """Return a geolocation for ``ip_address`` or None if unknown."""
        pass


class NullGeoLocator(GeoLocator):
    """Locator used when no geolocation database is configured."""

    def lookup(self, ip_address: str) -> Optional[GeoLocation]:
        return None


class StaticGeoLocator(GeoLocator):
    """Locator backed by a fixed IP -> location table."""

    def __init__(self, table: Optional[dict] = None):
        self._table = dict(table or {})

    def lookup(self, ip_address: str) -> Optional[GeoLocation]:
        return self._table.get(ip_address)


def enrich(
    ip_address: Optional[str],
    user_agent: Optional[str],
    locator: Optional[GeoLocator] = None,
    timestamp: Optional[int] = None,
) -> ClientInfo:
    """Build the ``ClientInfo`` for a pixel or link fetch."""
    ip_address = ip_address or UNKNOWN
    user_agent = user_agent or UNKNOWN
    geolocation = None
    if locator is not None and ip_address != UNKNOWN:
        geolocation = locator.lookup(ip_address)

    return ClientInfo(
        ip_address=ip_address,
        user_agent=user_agent,
        geolocation=geolocation,
        device=classify_device(user_agent),
        timestamp=timestamp,
    )


def client_ip_from_headers(forwarded_for: Optional[str], peer: Optional[str]) -> str:
    """Pick the originating client IP, preferring the first X-Forwarded-For hop."""
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
    return peer or UNKNOWN
