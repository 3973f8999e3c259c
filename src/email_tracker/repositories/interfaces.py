"""Abstract session store interface."""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from ..domain.models import EmailDraft, TrackingSession
from ..utils.logging_config import get_logger

logger = get_logger("store")

SessionMutator = Callable[[TrackingSession], TrackingSession]


class SessionStore(ABC):
    """Mapping from session id to ``TrackingSession``.

    Implementations must serialize concurrent ``update``/``merge_in`` calls
    for the same id while leaving different ids independent.
    """

    @abstractmethod
    async def create(self, draft: EmailDraft) -> TrackingSession:
        """Create and store a fresh session for ``draft``.

        Raises:
            StoreUnavailable: If the session could not be persisted. The
                generated session is attached to the exception.
        """
        pass

    @abstractmethod
    async def get(self, session_id: str) -> Optional[TrackingSession]:
        """Get a session by id, or None if it is unknown."""
        pass

    @abstractmethod
    async def get_all(self) -> Dict[str, TrackingSession]:
        """Get every session keyed by id. Ordering is unspecified."""
        pass

    @abstractmethod
    async def put(self, session: TrackingSession) -> None:
        """Replace the stored value for ``session.id``."""
        pass

    @abstractmethod
    async def update(
        self, session_id: str, mutator: SessionMutator
    ) -> Optional[TrackingSession]:
        """Atomically read-modify-write one session.

        ``mutator`` receives a private copy of the stored session and returns
        the value to store. Returns the stored value, or None without calling
        ``mutator`` when the id is unknown.
        """
        pass

    @abstractmethod
    async def merge_in(self, session: TrackingSession) -> TrackingSession:
        """Atomically merge ``session`` into the stored value for its id.

        Stores ``session`` unchanged when the id is not present yet.
        """
        pass

    @abstractmethod
    async def merge_all(
        self, sessions: Dict[str, TrackingSession]
    ) -> Dict[str, TrackingSession]:
        """Atomically merge a whole id -> session mapping.

        The mapping key is the id each session is stored under. Either every
        session is merged or, when an exception is raised, none is.

        Returns:
            The merged value of every id in ``sessions``
        """
        pass

    @abstractmethod
    async def clear(self) -> int:
        """Delete every session. Returns the number of sessions removed."""
        pass

    async def count(self) -> int:
        """Number of stored sessions."""
        return len(await self.get_all())

    async def ping(self) -> bool:
        """Check that the store can be read."""
        try:
            await self.count()
            return True
        except Exception as e:
            logger.warning(f"Store check failed: {e}")
            return False

    async def close(self) -> None:
        """Release resources held by the store."""
        pass
