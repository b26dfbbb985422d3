"""Shared fixtures for all tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from illustra.api.schemas import LOCAL_ID_PREFIX, Message, Session
from illustra.core.persistence import LocalCache
from illustra.core.remote_client import RemoteClient
from illustra.core.stores import MessageStore, SessionStore
from illustra.core.sync_engine import SyncEngine

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock that advances one second per call."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture
def cache() -> LocalCache:
    """Fresh in-memory cache for each test."""
    return LocalCache("sqlite:///:memory:")


@pytest.fixture
def remote() -> MagicMock:
    """RemoteClient double; every call succeeds with empty data unless a test says otherwise."""
    client = MagicMock(spec=RemoteClient)
    client.list_sessions.return_value = []
    client.fetch_history.return_value = []
    return client


@pytest.fixture
def token_holder() -> dict:
    return {"token": "test-token"}


@pytest.fixture
def engine(cache, remote, token_holder) -> SyncEngine:
    return SyncEngine(
        cache=cache,
        remote=remote,
        sessions=SessionStore(),
        messages=MessageStore(),
        token_provider=lambda: token_holder["token"],
        clock=FakeClock(),
    )


@pytest.fixture
def server_session() -> Session:
    return Session(id="srv-1", title="Plan", created_at=T0, updated_at=T0)


def make_message(msg_id: str, role: str = "user", content: str = "hello", **kwargs) -> Message:
    return Message(id=msg_id, role=role, content=content, timestamp=kwargs.pop("timestamp", T0), **kwargs)


def is_local_id(record_id: str) -> bool:
    return record_id.startswith(LOCAL_ID_PREFIX)
