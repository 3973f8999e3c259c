"""Dependency injection for the session store and services."""

from fastapi import Request

from ..config import TrackerConfig
from .interfaces import SessionStore
from .memory_impl import MemorySessionStore
from .sqlalchemy_impl import SQLAlchemySessionStore


def build_session_store(config: TrackerConfig) -> SessionStore:
    """Create the aggregator store selected by ``server.store_backend``."""
    if config.server.store_backend == "memory":
        return MemorySessionStore()
    return SQLAlchemySessionStore.from_url(
        config.database.url,
        echo=config.database.echo,
        enable_query_logging=config.database.log_queries or config.app.is_development,
        max_retries=config.database.cas_max_retries,
    )


def get_session_store(request: Request) -> SessionStore:
    """Get the store owned by the running application."""
    return request.app.state.session_store


def get_event_recorder(request: Request):
    """Get the Event Recorder owned by the running application."""
    return request.app.state.event_recorder
