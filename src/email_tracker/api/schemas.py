"""Pydantic models for API request/response validation."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator  # type: ignore
from pydantic.alias_generators import to_camel

from ..domain.models import TrackingSession


class ApiModel(BaseModel):
    """Base model for camelCase request and response bodies."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProblemDetails(BaseModel):
    """RFC 9457 Problem Details for HTTP APIs."""

    type: str = Field(description="A URI reference that identifies the problem type")
    title: str = Field(
        description="A short, human-readable summary of the problem type"
    )
    status: int = Field(description="The HTTP status code")
    detail: Optional[str] = Field(
        None, description="A human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        None, description="A URI reference that identifies the specific occurrence"
    )


# Sync schemas
class SyncRequest(ApiModel):
    """Whole local mapping sent by a replica."""

    tracking_sessions: Dict[str, TrackingSession] = Field(
        description="Tracking sessions keyed by id"
    )
    timestamp: int = Field(description="Client clock at send time, epoch ms")

    @model_validator(mode="before")
    @classmethod
    def _fill_session_ids(cls, data: Any) -> Any:
        # A session without an embedded id takes its mapping key
        if isinstance(data, dict):
            sessions = data.get("trackingSessions", data.get("tracking_sessions"))
            if isinstance(sessions, dict):
                filled = {
                    key: {**raw, "id": key}
                    if isinstance(raw, dict) and not raw.get("id")
                    else raw
                    for key, raw in sessions.items()
                }
                data = {**data, "trackingSessions": filled}
                data.pop("tracking_sessions", None)
        return data


class SyncResponse(ApiModel):
    """Post-merge aggregator mapping returned to the replica."""

    success: bool = True
    updated_sessions: Dict[str, Dict[str, Any]] = Field(
        description="Every session held by the aggregator, in wire form"
    )


class ClearResponse(ApiModel):
    """Result of an administrative clear."""

    success: bool = True
    message: str
    cleared: int


class StatsResponse(ApiModel):
    """Aggregated engagement statistics."""

    sent: int
    opened: int
    clicked: int
    open_rate: int
    click_rate: int
    recent_activity: List[Dict[str, Any]] = Field(default_factory=list)
