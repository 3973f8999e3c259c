"""SQLAlchemy-backed session store for the aggregator.

Each session is one row holding its wire form plus a ``version`` counter.
Writes go through an optimistic compare-and-swap on ``version`` so that
concurrent updates of the same session are serialized without a global
lock; updates of different sessions never contend.
"""

import asyncio
from typing import Callable, Dict, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .interfaces import SessionMutator, SessionStore
from ..core.clock import now_ms
from ..core.exceptions import StoreUnavailable
from ..core.identifiers import new_session_id
from ..db.database import create_database_engine, create_session_factory, init_database
from ..db.models import TrackingSessionRecord
from ..domain.merge import merge_sessions
from ..domain.models import EmailDraft, TrackingSession
from ..utils.logging_config import get_logger

logger = get_logger("store")

# Receives the stored session (or None) and returns the value to write,
# or None to leave the row untouched.
_Transition = Callable[[Optional[TrackingSession]], Optional[TrackingSession]]


class _VersionConflict(Exception):
    """A row changed between reading and writing it."""


class SQLAlchemySessionStore(SessionStore):
    """Persistent session store using SQLAlchemy."""

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], int] = now_ms,
        max_retries: int = 50,
        engine: Optional[Engine] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._max_retries = max_retries
        self._engine = engine

    @classmethod
    def from_url(
        cls,
        database_url: str,
        echo: bool = False,
        enable_query_logging: bool = False,
        max_retries: int = 50,
        poolclass: Optional[type] = None,
        clock: Callable[[], int] = now_ms,
    ) -> "SQLAlchemySessionStore":
        """Create the engine, ensure tables exist and return a store."""
        engine = create_database_engine(
            database_url,
            echo=echo,
            enable_query_logging=enable_query_logging,
            poolclass=poolclass,
        )
        init_database(engine)
        return cls(
            create_session_factory(engine),
            clock=clock,
            max_retries=max_retries,
            engine=engine,
        )

    @staticmethod
    def _to_record_values(session: TrackingSession) -> dict:
        return {
            "payload_json": session.to_wire(),
            "status": session.status.value,
            "sent_timestamp": session.sent_timestamp,
        }

    def _compare_and_swap(self, session_id: str, transition: _Transition) -> Optional[TrackingSession]:
        """Apply ``transition`` to one row, retrying on version conflicts."""
        for attempt in range(self._max_retries):
            with self._session_factory() as db:
                try:
                    record = db.get(TrackingSessionRecord, session_id)
                    current = (
                        TrackingSession.from_wire(record.payload_json) if record else None
                    )
                    new_value = transition(current)
                    if new_value is None:
                        return current

                    if record is None:
                        db.add(
                            TrackingSessionRecord(
                                id=session_id,
                                version=1,
                                **self._to_record_values(new_value),
                            )
                        )
                        db.commit()
                        return new_value

                    result = db.execute(
                        update(TrackingSessionRecord)
                        .where(
                            TrackingSessionRecord.id == session_id,
                            TrackingSessionRecord.version == record.version,
                        )
                        .values(
                            version=record.version + 1,
                            **self._to_record_values(new_value),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 1:
                        db.commit()
                        return new_value
                    db.rollback()

                except IntegrityError:
                    # Another writer inserted the same id first
                    db.rollback()
                except SQLAlchemyError as e:
                    db.rollback()
                    raise StoreUnavailable(f"Failed to write session {session_id}: {e}") from e

            logger.debug(f"Version conflict on session {session_id}, retry {attempt + 1}")

        raise StoreUnavailable(
            f"Gave up writing session {session_id} after {self._max_retries} conflicting attempts"
        )

    def _create_sync(self, draft: EmailDraft) -> TrackingSession:
        sent_timestamp = self._clock()
        while True:
            session = TrackingSession(
                id=new_session_id(),
                email_subject=draft.subject,
                recipients=list(draft.recipients),
                sent_timestamp=sent_timestamp,
            )
            with self._session_factory() as db:
                try:
                    db.add(
                        TrackingSessionRecord(
                            id=session.id, version=1, **self._to_record_values(session)
                        )
                    )
                    db.commit()
                    logger.info(f"Created tracking session {session.id}")
                    return session
                except IntegrityError:
                    db.rollback()
                    logger.warning(f"Session id collision on {session.id}, regenerating")
                except SQLAlchemyError as e:
                    db.rollback()
                    raise StoreUnavailable(
                        f"Failed to persist session {session.id}: {e}", session=session
                    ) from e

    def _merge_all_sync(
        self, sessions: Dict[str, TrackingSession]
    ) -> Dict[str, TrackingSession]:
        """Merge every session in one transaction, retrying it whole on conflicts."""
        for attempt in range(self._max_retries):
            with self._session_factory() as db:
                try:
                    records = {
                        record.id: record
                        for record in db.execute(
                            select(TrackingSessionRecord).where(
                                TrackingSessionRecord.id.in_(list(sessions))
                            )
                        ).scalars()
                    }

                    merged: Dict[str, TrackingSession] = {}
                    for session_id, session in sessions.items():
                        if session.id != session_id:
                            session = session.model_copy(update={"id": session_id})
                        record = records.get(session_id)
                        if record is None:
                            value = session.copy_deep()
                            db.add(
                                TrackingSessionRecord(
                                    id=session_id, version=1, **self._to_record_values(value)
                                )
                            )
                        else:
                            value = merge_sessions(
                                TrackingSession.from_wire(record.payload_json), session
                            )
                            result = db.execute(
                                update(TrackingSessionRecord)
                                .where(
                                    TrackingSessionRecord.id == session_id,
                                    TrackingSessionRecord.version == record.version,
                                )
                                .values(
                                    version=record.version + 1,
                                    **self._to_record_values(value),
                                )
                                .execution_options(synchronize_session=False)
                            )
                            if result.rowcount != 1:
                                raise _VersionConflict(session_id)
                        merged[session_id] = value

                    db.commit()
                    return merged

                except (_VersionConflict, IntegrityError):
                    db.rollback()
                except SQLAlchemyError as e:
                    db.rollback()
                    raise StoreUnavailable(f"Failed to merge sessions: {e}") from e

            logger.debug(f"Conflict while merging {len(sessions)} sessions, retry {attempt + 1}")

        raise StoreUnavailable(
            f"Gave up merging {len(sessions)} sessions after {self._max_retries} conflicting attempts"
        )

    def _get_sync(self, session_id: str) -> Optional[TrackingSession]:
        with self._session_factory() as db:
            record = db.get(TrackingSessionRecord, session_id)
            return TrackingSession.from_wire(record.payload_json) if record else None

    def _get_all_sync(self) -> Dict[str, TrackingSession]:
        with self._session_factory() as db:
            records = db.execute(select(TrackingSessionRecord)).scalars().all()
            return {
                record.id: TrackingSession.from_wire(record.payload_json)
                for record in records
            }

    def _clear_sync(self) -> int:
        with self._session_factory() as db:
            result = db.execute(delete(TrackingSessionRecord))
            db.commit()
            return result.rowcount or 0

    def _count_sync(self) -> int:
        with self._session_factory() as db:
            return db.execute(
                select(func.count()).select_from(TrackingSessionRecord)
            ).scalar_one()

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except StoreUnavailable:
            raise
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Database error: {e}") from e

    async def create(self, draft: EmailDraft) -> TrackingSession:
        """Create a new session in state SENT."""
        return await self._run(self._create_sync, draft)

    async def get(self, session_id: str) -> Optional[TrackingSession]:
        """Get a session by ID."""
        return await self._run(self._get_sync, session_id)

    async def get_all(self) -> Dict[str, TrackingSession]:
        """Get all sessions."""
        return await self._run(self._get_all_sync)

    async def put(self, session: TrackingSession) -> None:
        """Replace a session."""
        replacement = session.copy_deep()
        await self._run(self._compare_and_swap, session.id, lambda current: replacement)

    async def update(
        self, session_id: str, mutator: SessionMutator
    ) -> Optional[TrackingSession]:
        """Read-modify-write one session with compare-and-swap."""

        def transition(current: Optional[TrackingSession]) -> Optional[TrackingSession]:
            if current is None:
                return None
            return mutator(current)

        result = await self._run(self._compare_and_swap, session_id, transition)
        return result

    async def merge_in(self, session: TrackingSession) -> TrackingSession:
        """Merge an incoming session into the stored one."""

        def transition(current: Optional[TrackingSession]) -> TrackingSession:
            if current is None:
                return session.copy_deep()
            return merge_sessions(current, session)

        return await self._run(self._compare_and_swap, session.id, transition)

    async def merge_all(
        self, sessions: Dict[str, TrackingSession]
    ) -> Dict[str, TrackingSession]:
        """Merge a whole mapping in a single transaction."""
        if not sessions:
            return {}
        return await self._run(self._merge_all_sync, dict(sessions))

    async def clear(self) -> int:
        """Delete all sessions."""
        removed = await self._run(self._clear_sync)
        logger.info(f"Cleared {removed} tracking sessions")
        return removed

    async def count(self) -> int:
        return await self._run(self._count_sync)

    async def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
