"""In-memory session store and its JSON-file-backed local replica."""

import asyncio
import json
import os
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Callable, Dict, Optional

from .interfaces import SessionMutator, SessionStore
from ..core.clock import now_ms
from ..core.exceptions import StoreUnavailable
from ..core.identifiers import new_session_id
from ..domain.merge import merge_sessions
from ..domain.models import (
    EmailDraft,
    TrackingSession,
    sessions_from_wire,
    sessions_to_wire,
)
from ..utils.logging_config import get_logger

logger = get_logger("store")


class MemorySessionStore(SessionStore):
    """Dict-backed store with one asyncio lock per session id."""

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._sessions: Dict[str, TrackingSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._clock = clock

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())

    def _new_id(self) -> str:
        session_id = new_session_id()
        while session_id in self._sessions:
            session_id = new_session_id()
        return session_id

    async def _persist(self) -> None:
        """Hook called after every mutation; memory needs nothing."""
        pass

    async def create(self, draft: EmailDraft) -> TrackingSession:
        """Create a new session in state SENT."""
        session = TrackingSession(
            id=self._new_id(),
            email_subject=draft.subject,
            recipients=list(draft.recipients),
            sent_timestamp=self._clock(),
        )
        async with self._lock_for(session.id):
            self._sessions[session.id] = session
            logger.info(f"Created tracking session {session.id}")
            try:
                await self._persist()
            except StoreUnavailable as e:
                e.session = session.copy_deep()
                raise
        return session.copy_deep()

    async def get(self, session_id: str) -> Optional[TrackingSession]:
        """Get a session by ID."""
        session = self._sessions.get(session_id)
        return session.copy_deep() if session is not None else None

    async def get_all(self) -> Dict[str, TrackingSession]:
        """Get all sessions."""
        return {session_id: s.copy_deep() for session_id, s in self._sessions.items()}

    async def put(self, session: TrackingSession) -> None:
        """Replace a session."""
        async with self._lock_for(session.id):
            self._sessions[session.id] = session.copy_deep()
            await self._persist()

    async def update(
        self, session_id: str, mutator: SessionMutator
    ) -> Optional[TrackingSession]:
        """Read-modify-write one session under its lock."""
        if session_id not in self._sessions:
            return None

        async with self._lock_for(session_id):
            current = self._sessions.get(session_id)
            if current is None:
                return None
            updated = mutator(current.copy_deep())
            self._sessions[session_id] = updated
            await self._persist()
            return updated.copy_deep()

    async def merge_in(self, session: TrackingSession) -> TrackingSession:
        """Merge an incoming session into the stored one."""
        async with self._lock_for(session.id):
            existing = self._sessions.get(session.id)
            if existing is None:
                merged = session.copy_deep()
            else:
                merged = merge_sessions(existing, session)
            self._sessions[session.id] = merged
            await self._persist()
            return merged.copy_deep()

    async def merge_all(
        self, sessions: Dict[str, TrackingSession]
    ) -> Dict[str, TrackingSession]:
        """Merge a whole mapping under the locks of every id it touches."""
        async with AsyncExitStack() as stack:
            # Fixed lock order so concurrent batches cannot deadlock
            for session_id in sorted(sessions):
                await stack.enter_async_context(self._lock_for(session_id))

            merged: Dict[str, TrackingSession] = {}
            for session_id, session in sessions.items():
                if session.id != session_id:
                    session = session.model_copy(update={"id": session_id})
                existing = self._sessions.get(session_id)
                if existing is None:
                    merged[session_id] = session.copy_deep()
                else:
                    merged[session_id] = merge_sessions(existing, session)

            self._sessions.update(merged)
            await self._persist()
            return {session_id: s.copy_deep() for session_id, s in merged.items()}

    async def clear(self) -> int:
        """Delete all sessions."""
        removed = len(self._sessions)
        self._sessions.clear()
        self._locks.clear()
        await self._persist()
        logger.info(f"Cleared {removed} tracking sessions")
        return removed

    async def count(self) -> int:
        return len(self._sessions)


class JsonFileSessionStore(MemorySessionStore):
    """Local replica: in-memory map written to a JSON file after every mutation.

    Write failures leave the in-memory state updated and raise
    ``StoreUnavailable`` so callers can decide whether to surface them.
    """

    def __init__(self, path: Path, clock: Callable[[], int] = now_ms):
        super().__init__(clock=clock)
        self.path = Path(path)
        self._write_lock = asyncio.Lock()

    def load(self) -> int:
        """Load sessions from disk. Returns the number of sessions loaded.

        A missing file is an empty store. An unreadable or corrupt file is
        logged and also treated as empty.
        """
        if not self.path.exists():
            logger.info(f"No tracking data at {self.path}, starting empty")
            return 0

        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            mapping = data.get("trackingData", data)
            if not isinstance(mapping, dict):
                raise ValueError(
                    f"expected trackingData to be an object, got {type(mapping).__name__}"
                )
            self._sessions = sessions_from_wire(mapping)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load tracking data from {self.path}: {e}")
            self._sessions = {}
            return 0

        logger.info(f"Loaded {len(self._sessions)} tracking sessions from {self.path}")
        return len(self._sessions)

    def _write_file(self, payload: dict) -> None:
        # Atomic write: write to temp file then rename
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with temp_path.open("w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False)
            os.replace(temp_path, self.path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)
            raise

    async def _persist(self) -> None:
        # Snapshot under the write lock so the last writer holds the newest state
        async with self._write_lock:
            payload = {"trackingData": sessions_to_wire(self._sessions)}
            try:
                await asyncio.to_thread(self._write_file, payload)
            except OSError as e:
                logger.error(f"Failed to save tracking data to {self.path}: {e}")
                raise StoreUnavailable(
                    f"Failed to save tracking data: {e}", in_memory=True
                ) from e
