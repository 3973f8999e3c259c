"""Replica synchronization and aggregator administration endpoints."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request, status
from pydantic import ValidationError

from ..core.exceptions import MalformedPayload, StoreUnavailable
from ..domain.models import sessions_to_wire
from ..repositories.dependencies import get_session_store
from ..repositories.interfaces import SessionStore
from ..services.stats import activity_to_dict, compute_statistics, recent_activity
from ..utils.logging_config import get_logger
from .middleware import ProblemDetailsException
from .schemas import ClearResponse, ProblemDetails, StatsResponse, SyncRequest, SyncResponse

logger = get_logger("api")

router = APIRouter(tags=["sync"])


async def parse_sync_request(request: Request) -> SyncRequest:
    """Validate the whole ``/sync`` body before anything is merged.

    Raises:
        MalformedPayload: If the body is not JSON or does not match the schema
    """
    try:
        body: Any = await request.json()
    except ValueError as e:
        raise MalformedPayload(f"Request body is not valid JSON: {e}") from e

    if not isinstance(body, dict):
        raise MalformedPayload("Request body must be a JSON object")

    try:
        return SyncRequest.model_validate(body)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise MalformedPayload(f"Invalid sync payload: {fields}") from e


def _store_unavailable(e: StoreUnavailable) -> ProblemDetailsException:
    return ProblemDetailsException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        title="Store Unavailable",
        detail=str(e),
    )


@router.post(
    "/sync",
    response_model=SyncResponse,
    response_model_by_alias=True,
    responses={
        200: {"description": "Sessions merged"},
        400: {"model": ProblemDetails, "description": "Malformed sync payload"},
        503: {"model": ProblemDetails, "description": "Store unavailable"},
    },
)
async def sync_sessions(
    request: Request,
    store: SessionStore = Depends(get_session_store),
) -> SyncResponse:
    """
    Merge a replica's sessions into the aggregator and return the full mapping.

    Each incoming session is merged with the stored session of the same id;
    ids unknown to the aggregator are stored as received.
    """
    try:
        payload = await parse_sync_request(request)
    except MalformedPayload as e:
        logger.warning(f"Rejected sync request: {e}")
        raise ProblemDetailsException(
            status_code=status.HTTP_400_BAD_REQUEST,
            title="Malformed Payload",
            detail=str(e),
        )

    try:
        # Mapping keys are authoritative; nothing is kept if any merge fails
        await store.merge_all(payload.tracking_sessions)
        merged = await store.get_all()
    except StoreUnavailable as e:
        logger.error(f"Sync failed: {e}")
        raise _store_unavailable(e)

    logger.info(
        f"Merged {len(payload.tracking_sessions)} sessions from replica, "
        f"returning {len(merged)}"
    )
    return SyncResponse(success=True, updated_sessions=sessions_to_wire(merged))


@router.post(
    "/clear",
    response_model=ClearResponse,
    responses={503: {"model": ProblemDetails, "description": "Store unavailable"}},
)
async def clear_sessions(store: SessionStore = Depends(get_session_store)) -> ClearResponse:
    """
    Delete every session held by the aggregator.
    """
    try:
        cleared = await store.clear()
    except StoreUnavailable as e:
        raise _store_unavailable(e)
    return ClearResponse(success=True, message="Tracking data cleared", cleared=cleared)


@router.get("/stats", response_model=StatsResponse, response_model_by_alias=True)
async def get_statistics(store: SessionStore = Depends(get_session_store)) -> StatsResponse:
    """
    Aggregated open and click statistics across every session.
    """
    try:
        sessions = list((await store.get_all()).values())
    except StoreUnavailable as e:
        raise _store_unavailable(e)

    stats = compute_statistics(sessions)
    activity: List[Dict[str, Any]] = [activity_to_dict(a) for a in recent_activity(sessions)]
    return StatsResponse(
        sent=stats.sent,
        opened=stats.opened,
        clicked=stats.clicked,
        open_rate=stats.open_rate,
        click_rate=stats.click_rate,
        recent_activity=activity,
    )
