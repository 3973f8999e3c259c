"""Sync Engine: reconciles the local replica with the aggregator."""

import asyncio
from typing import Callable, Dict, Optional

from ..core.clock import now_ms
from ..core.exceptions import StoreUnavailable, SyncRoundTripFailed
from ..domain.models import TrackingSession
from ..repositories.interfaces import SessionStore
from ..utils.logging_config import get_logger

logger = get_logger("sync")


class SyncEngine:
    """Runs ``/sync`` round trips on demand and on a fixed interval.

    A round trip sends a snapshot of the whole local store. The reply is
    validated in full before anything is merged. The reply is then merged as
    one batch against the store's current values, so events recorded while
    the request was in flight are kept and a failed merge changes nothing.
    """

    def __init__(
        self,
        store: SessionStore,
        transport,
        clock: Callable[[], int] = now_ms,
        interval_secs: float = 300.0,
    ):
        self.store = store
        self.transport = transport
        self.interval_secs = interval_secs
        self._clock = clock
        self._lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

        self.last_sync_at: Optional[int] = None
        self.last_error: Optional[str] = None

    async def sync_once(self) -> bool:
        """Run one round trip. Returns True if the reply was merged."""
        async with self._lock:
            snapshot = await self.store.get_all()
            try:
                remote: Dict[str, TrackingSession] = await asyncio.to_thread(
                    self.transport.round_trip, snapshot, self._clock()
                )
            except SyncRoundTripFailed as e:
                self.last_error = str(e)
                logger.warning(f"Sync round trip failed, local store untouched: {e}")
                return False

            try:
                await self.store.merge_all(remote)
            except StoreUnavailable as e:
                if not e.in_memory:
                    self.last_error = str(e)
                    logger.error(f"Failed to merge sync reply, local store untouched: {e}")
                    return False
                logger.warning(f"Sync merged in memory only, persistence failed: {e}")

            self.last_sync_at = self._clock()
            self.last_error = None
            logger.info(f"Synced {len(snapshot)} local sessions, merged {len(remote)} remote")
            return True

    async def run_periodic(self, stop_event: asyncio.Event) -> None:
        """Sync every ``interval_secs`` until ``stop_event`` is set.

        Failed round trips are retried on the next tick; there is no backoff.
        """
        logger.info(f"Periodic sync every {self.interval_secs}s")
        while not stop_event.is_set():
            await self.sync_once()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_secs)
            except asyncio.TimeoutError:
                pass
        logger.info("Periodic sync stopped")

    def start(self) -> asyncio.Task:
        """Start the periodic loop on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run_periodic(self._stop_event))
        return self._task

    async def stop(self) -> None:
        """Stop the periodic loop after the current round trip completes."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
