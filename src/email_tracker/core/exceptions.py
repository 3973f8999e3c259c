"""Exception hierarchy for tracking, storage and sync failures."""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..domain.models import TrackingSession


class TrackerError(Exception):
    """Base exception for email tracker operations."""

    pass


class SessionNotFound(TrackerError):
    """A recording or lookup referenced an unknown session id."""

    def __init__(self, session_id: str):
        super().__init__(f"Tracking session {session_id} not found")
        self.session_id = session_id


class StoreUnavailable(TrackerError):
    """The persistence medium behind a session store could not be written.

    When raised from ``create`` the generated session is attached so the
    caller can still hand its id back to the invoker.
    """

    def __init__(
        self,
        message: str,
        session: Optional["TrackingSession"] = None,
        in_memory: bool = False,
    ):
        super().__init__(message)
        self.session = session
        # True when the mutation is held in memory and only the write failed
        self.in_memory = in_memory


class SyncRoundTripFailed(TrackerError):
    """A sync round trip failed before a complete reply was received."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedPayload(TrackerError):
    """A sync request or reply body is missing expected fields."""

    pass
