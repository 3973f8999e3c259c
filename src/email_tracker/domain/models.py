"""Tracking session entity model and its JSON wire form.

The wire form uses camelCase keys (``emailSubject``, ``pixelLoads`` ...) so
that it matches what the sending side persists and what ``/sync`` exchanges.
Python code uses the snake_case attribute names.
"""

from typing import Dict, List, Optional, Tuple, Any

from pydantic import (  # type: ignore
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..core.enums import FormFactor, SessionStatus

UNKNOWN = "unknown"

EventKey = Tuple[int, str, Optional[str]]


class WireModel(BaseModel):
    """Base model for everything that travels over ``/sync``."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        use_enum_values=False,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON-compatible wire form."""
        return self.model_dump(mode="json", by_alias=True)


class GeoLocation(WireModel):
    """Geolocation guess for an IP address."""

    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _split_lat_lon_pair(cls, data: Any) -> Any:
        # Older payloads carry coordinates as "ll": [lat, lon]
        if isinstance(data, dict) and "ll" in data:
            data = dict(data)
            ll = data.pop("ll") or []
            if len(ll) == 2:
                data.setdefault("lat", ll[0])
                data.setdefault("lon", ll[1])
        return data


class DeviceInfo(WireModel):
    """Device classification derived from a user agent."""

    browser: str = UNKNOWN
    os: str = UNKNOWN
    form_factor: str = Field(
        default=FormFactor.UNKNOWN.value,
        validation_alias=AliasChoices("formFactor", "form_factor", "device"),
        serialization_alias="formFactor",
    )


class ClientInfo(WireModel):
    """Raw request facts plus enrichment, as handed to the Event Recorder."""

    ip_address: str = Field(
        default=UNKNOWN,
        validation_alias=AliasChoices("ipAddress", "ip_address", "ip"),
        serialization_alias="ipAddress",
    )
    user_agent: str = UNKNOWN
    geolocation: Optional[GeoLocation] = None
    device: Optional[DeviceInfo] = None
    timestamp: Optional[int] = None


class OpenEvent(WireModel):
    """A tracking pixel fetch."""

    timestamp: int
    ip_address: str = UNKNOWN
    user_agent: str = UNKNOWN
    geolocation: Optional[GeoLocation] = None
    device: DeviceInfo = Field(default_factory=DeviceInfo)

    @property
    def link_key(self) -> Optional[str]:
        return None

    def identity_key(self) -> EventKey:
        """Structural identity used to deduplicate events on merge."""
        return (self.timestamp, self.ip_address, self.link_key)


class ClickEvent(OpenEvent):
    """A fetch of a rewritten link, recorded before redirecting."""

    link_id: str
    original_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("originalUrl", "original_url", "url"),
        serialization_alias="originalUrl",
    )

    @property
    def link_key(self) -> Optional[str]:
        return self.link_id


def derive_status(
    pixel_loads: List[OpenEvent], link_clicks: List[ClickEvent]
) -> SessionStatus:
    """Status is a pure function of the two event sequences."""
    if link_clicks:
        return SessionStatus.CLICKED
    if pixel_loads:
        return SessionStatus.OPENED
    return SessionStatus.SENT


class TrackingSession(WireModel):
    """Tracking state for one sent email."""

    id: str
    email_subject: str = ""
    recipients: List[str] = Field(default_factory=list)
    sent_timestamp: Optional[int] = None
    pixel_loads: List[OpenEvent] = Field(default_factory=list)
    link_clicks: List[ClickEvent] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.SENT

    @model_validator(mode="after")
    def _recompute_status(self) -> "TrackingSession":
        # Incoming status values are never trusted
        self.status = derive_status(self.pixel_loads, self.link_clicks)
        return self

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "TrackingSession":
        """Build a session from its wire form."""
        return cls.model_validate(data)

    def copy_deep(self) -> "TrackingSession":
        return self.model_copy(deep=True)

    def append_open(self, event: OpenEvent) -> bool:
        """Append an open event.

        Returns:
            True if this is the first open ever recorded for the session
        """
        first_open = not self.pixel_loads
        self.pixel_loads.append(event)
        self.status = derive_status(self.pixel_loads, self.link_clicks)
        return first_open

    def append_click(self, event: ClickEvent) -> None:
        """Append a click event."""
        self.link_clicks.append(event)
        self.status = derive_status(self.pixel_loads, self.link_clicks)


class EmailDraft(WireModel):
    """Subject and recipients of an outgoing email."""

    subject: str = ""
    recipients: List[str] = Field(default_factory=list)


def sessions_to_wire(sessions: Dict[str, TrackingSession]) -> Dict[str, Dict[str, Any]]:
    """Serialize an id -> session mapping."""
    return {session_id: session.to_wire() for session_id, session in sessions.items()}


def sessions_from_wire(data: Dict[str, Any]) -> Dict[str, TrackingSession]:
    """Deserialize an id -> session mapping.

    A session whose embedded id is missing takes the mapping key.
    """
    sessions = {}
    for session_id, raw in data.items():
        if isinstance(raw, dict) and not raw.get("id"):
            raw = {**raw, "id": session_id}
        sessions[session_id] = TrackingSession.from_wire(raw)
    return sessions
