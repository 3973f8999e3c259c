"""Tracking pixel and link redirect endpoints."""

import base64
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import RedirectResponse, Response

from ..core.clock import now_ms
from ..domain.enrichment import client_ip_from_headers, enrich
from ..domain.models import ClientInfo
from ..repositories.dependencies import get_event_recorder
from ..services.recorder import EventRecorder
from ..utils.logging_config import get_logger
from .middleware import ProblemDetailsException
from .schemas import ProblemDetails

logger = get_logger("api")

router = APIRouter(tags=["tracking"])

# 1x1 transparent GIF, 43 bytes
TRANSPARENT_GIF = base64.b64decode(
    "R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7"
)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def client_info_from_request(request: Request) -> ClientInfo:
    """Extract and enrich the requester's IP address and user agent."""
    peer = request.client.host if request.client else None
    ip_address = client_ip_from_headers(request.headers.get("x-forwarded-for"), peer)
    locator = getattr(request.app.state, "geo_locator", None)
    return enrich(ip_address, request.headers.get("user-agent"), locator)


@router.get(
    "/pixel/{tracking_id}",
    response_class=Response,
    responses={200: {"content": {"image/gif": {}}, "description": "Tracking pixel"}},
)
async def tracking_pixel(
    tracking_id: str,
    request: Request,
    recorder: EventRecorder = Depends(get_event_recorder),
) -> Response:
    """
    Record an email open and return a transparent 1x1 GIF.

    The image is returned for unknown ids too so that mail clients never
    render a broken image.
    """
    recorded = await recorder.record_open(tracking_id, client_info_from_request(request))
    if not recorded:
        logger.debug(f"Pixel fetch for {tracking_id} was not recorded")

    headers = dict(NO_CACHE_HEADERS)
    headers["ETag"] = f'"{tracking_id}_{now_ms()}"'
    return Response(content=TRANSPARENT_GIF, media_type="image/gif", headers=headers)


@router.get(
    "/link/{tracking_id}/{link_id}",
    status_code=status.HTTP_302_FOUND,
    responses={
        302: {"description": "Redirect to the original URL"},
        400: {"model": ProblemDetails, "description": "Missing redirect target"},
    },
)
async def tracked_link(
    tracking_id: str,
    link_id: str,
    request: Request,
    url: Optional[str] = Query(None, description="Original link target"),
    recorder: EventRecorder = Depends(get_event_recorder),
) -> RedirectResponse:
    """
    Record a link click and redirect to the original URL.
    """
    if not url:
        raise ProblemDetailsException(
            status_code=status.HTTP_400_BAD_REQUEST,
            title="Missing URL",
            detail="Query parameter 'url' is required",
        )

    await recorder.record_click(
        tracking_id, link_id, client_info_from_request(request), original_url=url
    )
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)
