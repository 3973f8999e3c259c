"""HTTP transport for the replica's ``/sync`` round trip."""

import json
import logging
from typing import Any, Dict

import requests
from requests.exceptions import ConnectionError, RequestException, Timeout

from .. import __version__
from ..core.exceptions import SyncRoundTripFailed
from ..domain.models import TrackingSession, sessions_from_wire, sessions_to_wire

logger = logging.getLogger(__name__)

SYNC_PATH = "/sync"


def build_sync_body(sessions: Dict[str, TrackingSession], timestamp: int) -> Dict[str, Any]:
    """Request body carrying the whole local mapping."""
    return {"trackingSessions": sessions_to_wire(sessions), "timestamp": timestamp}


def parse_sync_reply(status_code: int, body: Any) -> Dict[str, TrackingSession]:
    """
    Validate a complete ``/sync`` reply.

    Args:
        status_code: HTTP status of the reply
        body: Decoded JSON body, or None if it could not be decoded

    Returns:
        The aggregator's sessions keyed by id

    Raises:
        SyncRoundTripFailed: If the reply is not a successful, complete mapping
    """
    if not 200 <= status_code < 300:
        detail = body.get("detail") if isinstance(body, dict) else None
        raise SyncRoundTripFailed(
            f"Sync rejected with HTTP {status_code}" + (f": {detail}" if detail else ""),
            status_code=status_code,
        )

    if not isinstance(body, dict) or body.get("success") is not True:
        raise SyncRoundTripFailed("Sync reply did not report success", status_code=status_code)

    updated = body.get("updatedSessions")
    if not isinstance(updated, dict):
        raise SyncRoundTripFailed(
            "Sync reply is missing updatedSessions", status_code=status_code
        )

    try:
        return sessions_from_wire(updated)
    except ValueError as e:
        raise SyncRoundTripFailed(
            f"Sync reply contains an invalid session: {e}", status_code=status_code
        ) from e


class SyncClient:
    """Blocking HTTP client posting the local mapping to the aggregator."""

    def __init__(self, base_url: str, timeout_secs: float = 30.0):
        """
        Initialize the sync client.

        Args:
            base_url: Base URL of the aggregator (e.g. http://127.0.0.1:3000)
            timeout_secs: HTTP request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_secs = timeout_secs
        self.session = requests.Session()

        self.session.headers.update({"User-Agent": f"Email-Tracker-Client/{__version__}"})

    def round_trip(
        self, sessions: Dict[str, TrackingSession], timestamp: int
    ) -> Dict[str, TrackingSession]:
        """
        Send the local mapping and return the aggregator's post-merge mapping.

        Raises:
            SyncRoundTripFailed: On transport errors, timeouts, non-2xx replies
                or malformed reply bodies
        """
        url = self.base_url + SYNC_PATH
        request_body = json.dumps(build_sync_body(sessions, timestamp), separators=(",", ":"))

        try:
            logger.debug(f"POST {url} with {len(sessions)} sessions")
            response = self.session.request(
                method="POST",
                url=url,
                headers={"Content-Type": "application/json"},
                data=request_body,
                timeout=self.timeout_secs,
            )
        except Timeout as e:
            logger.warning(f"Request timeout for {url}")
            raise SyncRoundTripFailed("Request timeout") from e
        except ConnectionError as e:
            logger.warning(f"Connection error for {url}: {e}")
            raise SyncRoundTripFailed(f"Connection error: {e}") from e
        except RequestException as e:
            logger.error(f"Request error for {url}: {e}")
            raise SyncRoundTripFailed(f"Request error: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        return parse_sync_reply(response.status_code, body)

    def close(self) -> None:
        self.session.close()
