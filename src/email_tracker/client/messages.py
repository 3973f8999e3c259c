"""Local message contract between the presentation layer and the client.

Each message is a pydantic model tagged by its ``type`` literal; raw dicts are
validated into the matching variant with ``parse_message``.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, Field, TypeAdapter  # type: ignore

from ..domain.models import ClientInfo, EmailDraft, WireModel


class CreateTrackingSession(WireModel):
    type: Literal["CREATE_TRACKING_SESSION"] = "CREATE_TRACKING_SESSION"
    email_details: EmailDraft = Field(
        default_factory=EmailDraft,
        validation_alias=AliasChoices("emailDetails", "email_details", "data"),
    )
    # Links of the email body to rewrite into tracked redirects
    links: List[str] = Field(default_factory=list)


class RecordPixelLoad(WireModel):
    type: Literal["RECORD_PIXEL_LOAD"] = "RECORD_PIXEL_LOAD"
    tracking_id: str
    data: ClientInfo = Field(default_factory=ClientInfo)


class RecordLinkClick(WireModel):
    type: Literal["RECORD_LINK_CLICK"] = "RECORD_LINK_CLICK"
    tracking_id: str
    link_id: str
    data: ClientInfo = Field(default_factory=ClientInfo)
    original_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("originalUrl", "original_url", "url")
    )


class GetTrackingData(WireModel):
    """Whole mapping, or one session when ``tracking_id`` is given."""

    type: Literal["GET_TRACKING_DATA"] = "GET_TRACKING_DATA"
    tracking_id: Optional[str] = None


class ClearTrackingData(WireModel):
    type: Literal["CLEAR_TRACKING_DATA"] = "CLEAR_TRACKING_DATA"


class SetTrackingEnabled(WireModel):
    type: Literal["SET_TRACKING_ENABLED"] = "SET_TRACKING_ENABLED"
    enabled: bool


class SyncNow(WireModel):
    type: Literal["SYNC_NOW"] = "SYNC_NOW"


class GetStatistics(WireModel):
    type: Literal["GET_STATISTICS"] = "GET_STATISTICS"


TrackerMessage = Annotated[
    Union[
        CreateTrackingSession,
        RecordPixelLoad,
        RecordLinkClick,
        GetTrackingData,
        ClearTrackingData,
        SetTrackingEnabled,
        SyncNow,
        GetStatistics,
    ],
    Field(discriminator="type"),
]

_message_adapter = TypeAdapter(TrackerMessage)


def parse_message(raw: Dict[str, Any]) -> TrackerMessage:
    """Validate a raw message into its variant.

    Raises:
        pydantic.ValidationError: On an unknown ``type`` or invalid fields
    """
    return _message_adapter.validate_python(raw)


def success_response(**fields: Any) -> Dict[str, Any]:
    return {"success": True, **fields}


def error_response(error: str) -> Dict[str, Any]:
    return {"success": False, "error": error}
