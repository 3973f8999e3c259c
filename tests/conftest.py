"""Pytest configuration and shared fixtures."""

import os
import tempfile
from pathlib import Path
from typing import Generator

# Keep config and log files out of the working tree; must run before the
# package is imported because loggers are created at import time.
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="email_tracker_tests_"))
os.environ.setdefault("EMAIL_TRACKER_DATA_DIR", str(_TEST_ROOT / "data"))
os.environ.setdefault("EMAIL_TRACKER_LOG_DIR", str(_TEST_ROOT / "logs"))
os.environ.setdefault("EMAIL_TRACKER_STORE_BACKEND", "memory")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from email_tracker.config import TrackerConfig  # noqa: E402
from email_tracker.domain.models import EmailDraft  # noqa: E402
from email_tracker.main import create_app  # noqa: E402
from email_tracker.repositories.memory_impl import (  # noqa: E402
    JsonFileSessionStore,
    MemorySessionStore,
)
from email_tracker.repositories.sqlalchemy_impl import SQLAlchemySessionStore  # noqa: E402
from email_tracker.services.notifications import NotificationTrigger  # noqa: E402
from tests.helpers.tracking import FakeClock, RecordingSink  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def draft() -> EmailDraft:
    return EmailDraft(subject="Quarterly report", recipients=["alice@example.com"])


@pytest.fixture
def memory_store(clock) -> MemorySessionStore:
    return MemorySessionStore(clock=clock)


@pytest.fixture
def json_store(tmp_path, clock) -> JsonFileSessionStore:
    return JsonFileSessionStore(tmp_path / "tracking_data.json", clock=clock)


@pytest.fixture
def sqlite_store(tmp_path, clock) -> Generator[SQLAlchemySessionStore, None, None]:
    """File-backed SQLite store so that worker threads share one database."""
    store = SQLAlchemySessionStore.from_url(
        f"sqlite:///{tmp_path / 'aggregator.db'}", clock=clock
    )
    yield store
    store._engine.dispose()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def notifier(sink) -> NotificationTrigger:
    return NotificationTrigger(sinks=[sink])


@pytest.fixture
def aggregator_store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def app(aggregator_store, notifier):
    """Aggregator app wired to an in-memory store."""
    return create_app(
        config=TrackerConfig(), session_store=aggregator_store, notifier=notifier
    )


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client
