"""Sending-side client owning the local replica and its services."""

from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from pydantic import ValidationError

from ..config import ConfigManager, TrackerConfig
from ..core.clock import now_ms
from ..core.exceptions import StoreUnavailable
from ..domain.models import EmailDraft, sessions_to_wire
from ..repositories.interfaces import SessionStore
from ..repositories.memory_impl import JsonFileSessionStore
from ..services.links import build_pixel_url, pixel_html, rewrite_links
from ..services.notifications import LoggingNotificationSink, NotificationTrigger
from ..services.recorder import EventRecorder
from ..services.stats import activity_to_dict, compute_statistics, recent_activity
from ..utils.logging_config import get_logger
from .http_client import SyncClient
from .messages import (
    ClearTrackingData,
    CreateTrackingSession,
    GetStatistics,
    GetTrackingData,
    RecordLinkClick,
    RecordPixelLoad,
    SetTrackingEnabled,
    SyncNow,
    error_response,
    parse_message,
    success_response,
)
from .sync_engine import SyncEngine

logger = get_logger("client")


class TrackerClient:
    """Local replica plus the recorder, notifier and sync engine bound to it."""

    def __init__(
        self,
        store: SessionStore,
        sync_engine: Optional[SyncEngine] = None,
        notifier: Optional[NotificationTrigger] = None,
        tracking_enabled: bool = True,
        clock: Callable[[], int] = now_ms,
        config_manager: Optional[ConfigManager] = None,
        public_base_url: Optional[str] = None,
    ):
        self.store = store
        self.sync_engine = sync_engine
        if notifier is None:
            notifier = NotificationTrigger(
                sinks=[LoggingNotificationSink()], enabled=tracking_enabled
            )
        self.notifier = notifier
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.recorder = EventRecorder(store, notifier=self.notifier, clock=clock)
        self.tracking_enabled = tracking_enabled
        self._config_manager = config_manager

    @classmethod
    def from_config(
        cls, config: TrackerConfig, config_manager: Optional[ConfigManager] = None
    ) -> "TrackerClient":
        """Load the JSON replica and wire a sync engine to the configured aggregator."""
        store = JsonFileSessionStore(Path(config.client.store_path))
        store.load()
        transport = SyncClient(
            config.client.api_base_url, timeout_secs=config.client.sync_timeout_secs
        )
        engine = SyncEngine(store, transport, interval_secs=config.client.sync_interval_secs)
        return cls(
            store,
            sync_engine=engine,
            tracking_enabled=config.client.tracking_enabled,
            config_manager=config_manager,
            public_base_url=config.server.public_base_url,
        )

    async def create_session(self, draft: EmailDraft) -> str:
        """Create a tracking session and return its id.

        The id is returned even when the replica could not be persisted.
        """
        try:
            session = await self.store.create(draft)
        except StoreUnavailable as e:
            if e.session is None:
                raise
            logger.warning(f"Tracking session {e.session.id} created in memory only: {e}")
            return e.session.id
        return session.id

    def tracking_urls(self, tracking_id: str, links: Sequence[str] = ()) -> Dict[str, Any]:
        """Pixel and rewritten link URLs to embed in the outgoing email.

        Empty when no public base URL is configured.
        """
        if not self.public_base_url:
            return {}
        rewritten = rewrite_links(self.public_base_url, tracking_id, links)
        return {
            "pixelUrl": build_pixel_url(self.public_base_url, tracking_id),
            "pixelHtml": pixel_html(self.public_base_url, tracking_id),
            "trackedLinks": [
                {"linkId": link_id, "originalUrl": original, "url": tracked}
                for (link_id, tracked), original in zip(rewritten, links)
            ],
        }

    def set_tracking_enabled(self, enabled: bool) -> None:
        self.tracking_enabled = enabled
        self.notifier.enabled = enabled
        if self._config_manager is not None:
            self._config_manager.update_config({"client.tracking_enabled": enabled})
        logger.info(f"Tracking {'enabled' if enabled else 'disabled'}")

    async def statistics(self) -> Dict[str, Any]:
        sessions = list((await self.store.get_all()).values())
        stats = compute_statistics(sessions).to_dict()
        stats["recentActivity"] = [activity_to_dict(a) for a in recent_activity(sessions)]
        return stats

    async def clear(self) -> int:
        """Delete every local session.

        Raises:
            StoreUnavailable: If the cleared replica could not be written
        """
        return await self.store.clear()

    async def handle_message(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and dispatch one local message, returning its response."""
        try:
            message = parse_message(raw)
        except ValidationError as e:
            if any(
                err["type"] in ("union_tag_invalid", "union_tag_not_found")
                for err in e.errors()
            ):
                logger.warning(f"Unknown message type in {raw!r}")
                return error_response("Unknown message type")
            logger.warning(f"Invalid message {raw!r}: {e.error_count()} validation error(s)")
            return error_response(f"Invalid message: {e.error_count()} validation error(s)")

        if isinstance(message, CreateTrackingSession):
            tracking_id = await self.create_session(message.email_details)
            return success_response(
                trackingId=tracking_id, **self.tracking_urls(tracking_id, message.links)
            )

        if isinstance(message, RecordPixelLoad):
            recorded = await self.recorder.record_open(message.tracking_id, message.data)
            return {"success": recorded}

        if isinstance(message, RecordLinkClick):
            recorded = await self.recorder.record_click(
                message.tracking_id,
                message.link_id,
                message.data,
                original_url=message.original_url,
            )
            return {"success": recorded}

        if isinstance(message, GetTrackingData):
            if message.tracking_id is not None:
                session = await self.store.get(message.tracking_id)
                return success_response(data=session.to_wire() if session else None)
            return success_response(data=sessions_to_wire(await self.store.get_all()))

        if isinstance(message, ClearTrackingData):
            try:
                cleared = await self.clear()
            except StoreUnavailable as e:
                logger.error(f"Failed to clear tracking data: {e}")
                return error_response(f"Failed to clear tracking data: {e}")
            return success_response(cleared=cleared)

        if isinstance(message, SetTrackingEnabled):
            self.set_tracking_enabled(message.enabled)
            return success_response()

        if isinstance(message, SyncNow):
            if self.sync_engine is None:
                return error_response("Sync is not configured")
            return {"success": await self.sync_engine.sync_once()}

        if isinstance(message, GetStatistics):
            return success_response(data=await self.statistics())

        raise TypeError(f"Unhandled message type: {type(message).__name__}")

    async def close(self) -> None:
        if self.sync_engine is not None:
            await self.sync_engine.stop()
            transport = self.sync_engine.transport
            if hasattr(transport, "close"):
                transport.close()
        await self.store.close()
