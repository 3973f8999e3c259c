"""Event Recorder: appends open and click events to tracking sessions."""

from typing import Callable, Optional

from ..core.clock import now_ms
from ..core.exceptions import SessionNotFound, StoreUnavailable
from ..domain.enrichment import classify_device
from ..domain.models import ClickEvent, ClientInfo, OpenEvent, TrackingSession
from ..repositories.interfaces import SessionStore
from ..utils.logging_config import get_logger
from .notifications import NotificationTrigger

logger = get_logger("recorder")


class EventRecorder:
    """Records pixel loads and link clicks against a session store.

    Recording never fabricates a session and never raises: unknown ids and
    storage failures are reported through the boolean result and the log.
    Duplicate fetches are recorded as-is; deduplication only happens on merge.
    """

    def __init__(
        self,
        store: SessionStore,
        notifier: Optional[NotificationTrigger] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.notifier = notifier
        self._clock = clock

    def _event_fields(self, client_info: ClientInfo) -> dict:
        return {
            "timestamp": client_info.timestamp if client_info.timestamp is not None else self._clock(),
            "ip_address": client_info.ip_address,
            "user_agent": client_info.user_agent,
            "geolocation": client_info.geolocation,
            "device": client_info.device or classify_device(client_info.user_agent),
        }

    async def record_open(self, session_id: str, client_info: ClientInfo) -> bool:
        """Record a tracking pixel fetch.

        Returns:
            True if the event was recorded, False if the session is unknown
            or could not be written
        """
        event = OpenEvent(**self._event_fields(client_info))
        first_open = False

        def append(session: TrackingSession) -> TrackingSession:
            nonlocal first_open
            first_open = session.append_open(event.model_copy(deep=True))
            return session

        recorded = await self._apply(session_id, append, "open")
        if recorded is None:
            return False

        self._check_clock_skew(recorded, event)
        if first_open:
            logger.info(f"First open of session {session_id}")
            if self.notifier is not None:
                self.notifier.notify_first_open(recorded)
        return True

    async def record_click(
        self,
        session_id: str,
        link_id: str,
        client_info: ClientInfo,
        original_url: Optional[str] = None,
    ) -> bool:
        """Record a tracked link fetch. Clicks never trigger notifications."""
        event = ClickEvent(
            link_id=link_id, original_url=original_url, **self._event_fields(client_info)
        )

        def append(session: TrackingSession) -> TrackingSession:
            session.append_click(event.model_copy(deep=True))
            return session

        recorded = await self._apply(session_id, append, "click")
        if recorded is None:
            return False

        self._check_clock_skew(recorded, event)
        return True

    async def _apply(self, session_id, mutator, kind: str) -> Optional[TrackingSession]:
        """Run ``mutator`` through the store and absorb storage failures."""
        snapshot: Optional[TrackingSession] = None

        def tracked(session: TrackingSession) -> TrackingSession:
            nonlocal snapshot
            snapshot = mutator(session)
            return snapshot

        try:
            updated = await self.store.update(session_id, tracked)
            if updated is None:
                raise SessionNotFound(session_id)
        except SessionNotFound as e:
            logger.info(f"Ignoring {kind}: {e}")
            return None
        except StoreUnavailable as e:
            if e.in_memory and snapshot is not None:
                logger.warning(
                    f"Recorded {kind} for {session_id} in memory only, persistence failed: {e}"
                )
                return snapshot
            logger.error(f"Failed to record {kind} for {session_id}: {e}")
            return None

        logger.debug(
            f"Recorded {kind} for {session_id}: "
            f"{len(updated.pixel_loads)} opens, {len(updated.link_clicks)} clicks, "
            f"status={updated.status.value}"
        )
        return updated

    @staticmethod
    def _check_clock_skew(session: TrackingSession, event: OpenEvent) -> None:
        if session.sent_timestamp is not None and event.timestamp < session.sent_timestamp:
            # Client clocks are not trusted; keep the event
            logger.warning(
                f"Event at {event.timestamp} predates send time {session.sent_timestamp} "
                f"for session {session.id}"
            )
