"""SQLAlchemy + SQLite key-value cache for sessions, messages and the auth token.

Every entry is a text value under a string key; lists are stored as JSON.
Reads and writes never raise: a missing, unreadable or corrupt entry comes
back empty, and a failed write is logged and reported as False.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path

import structlog
from pydantic import TypeAdapter, ValidationError
from sqlalchemy import Column, DateTime, String, Text, create_engine, delete, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from illustra.api.schemas import Message, Session

logger = structlog.get_logger(__name__)

Base = declarative_base()

KEY_LAST_SELECTED = "last_selected_session"
KEY_SESSIONS = "chat_sessions"
KEY_MESSAGES_PREFIX = "chat_messages_"
KEY_AUTH_TOKEN = "auth_token"

_sessions_adapter = TypeAdapter(list[Session])
_messages_adapter = TypeAdapter(list[Message])


class CacheEntry(Base):
    """One cached value."""
    __tablename__ = "cache_entries"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))


def messages_key(session_id: str) -> str:
    return f"{KEY_MESSAGES_PREFIX}{session_id}"


class LocalCache:
    """Durable, synchronous key-value store scoped to one local profile."""

    def __init__(self, database_url: str | None = None):
        url = database_url or os.environ.get(
            "CACHE_DATABASE_URL", "sqlite:///data/illustra_cache.sqlite"
        )
        self._engine = None
        self._Session = None

        try:
            _ensure_sqlite_dir(url)
            self._engine = create_engine(url, echo=False)
            self._Session = sessionmaker(bind=self._engine)
            Base.metadata.create_all(self._engine)
            logger.info("cache.initialized", url=url.split("///")[0] + "///***")
        except (SQLAlchemyError, OSError) as e:
            logger.error("cache.init_failed", error=str(e))
            self._engine = None
            self._Session = None

    def is_healthy(self) -> bool:
        return self._Session is not None

    # Raw entries

    def _read(self, key: str) -> str | None:
        if self._Session is None:
            return None
        try:
            with self._Session() as db:
                row = db.get(CacheEntry, key)
                return row.value if row is not None else None
        except SQLAlchemyError as e:
            logger.error("cache.read_failed", key=key, error=str(e))
            return None

    def _write(self, key: str, value: str) -> bool:
        if self._Session is None:
            return False
        try:
            with self._Session() as db:
                row = db.get(CacheEntry, key)
                now = datetime.now(timezone.utc)
                if row is None:
                    db.add(CacheEntry(key=key, value=value, updated_at=now))
                else:
                    row.value = value
                    row.updated_at = now
                db.commit()
            logger.debug("cache.written", key=key)
            return True
        except SQLAlchemyError as e:
            logger.error("cache.write_failed", key=key, error=str(e))
            return False

    def _delete(self, key: str) -> bool:
        if self._Session is None:
            return False
        try:
            with self._Session() as db:
                db.execute(delete(CacheEntry).where(CacheEntry.key == key))
                db.commit()
            return True
        except SQLAlchemyError as e:
            logger.error("cache.delete_failed", key=key, error=str(e))
            return False

    def _read_list(self, key: str, adapter: TypeAdapter) -> list:
        raw = self._read(key)
        if raw is None:
            return []
        try:
            return adapter.validate_python(json.loads(raw))
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning("cache.corrupt_entry", key=key, error=str(e))
            return []

    def _write_list(self, key: str, adapter: TypeAdapter, items: list) -> bool:
        try:
            payload = adapter.dump_json(list(items)).decode("utf-8")
        except (ValueError, ValidationError) as e:
            logger.error("cache.serialize_failed", key=key, error=str(e))
            return False
        return self._write(key, payload)

    # Sessions

    def read_sessions(self) -> list[Session]:
        return self._read_list(KEY_SESSIONS, _sessions_adapter)

    def write_sessions(self, sessions: list[Session]) -> bool:
        return self._write_list(KEY_SESSIONS, _sessions_adapter, sessions)

    # Messages

    def read_messages(self, session_id: str) -> list[Message]:
        return self._read_list(messages_key(session_id), _messages_adapter)

    def write_messages(self, session_id: str, messages: list[Message]) -> bool:
        return self._write_list(messages_key(session_id), _messages_adapter, messages)

    def move_messages(self, old_session_id: str, new_session_id: str) -> bool:
        """Re-key a cached conversation after its session got a canonical id."""
        messages = self.read_messages(old_session_id)
        if messages and not self.write_messages(new_session_id, messages):
            return False
        return self._delete(messages_key(old_session_id))

    # Selection pointer

    def read_last_selected(self) -> str | None:
        raw = self._read(KEY_LAST_SELECTED)
        return raw or None

    def write_last_selected(self, session_id: str) -> bool:
        return self._write(KEY_LAST_SELECTED, session_id)

    # Auth token

    def read_token(self) -> str | None:
        raw = self._read(KEY_AUTH_TOKEN)
        return raw or None

    def write_token(self, token: str) -> bool:
        return self._write(KEY_AUTH_TOKEN, token)

    def delete_token(self) -> bool:
        return self._delete(KEY_AUTH_TOKEN)

    # Maintenance

    def keys(self) -> list[str]:
        if self._Session is None:
            return []
        try:
            with self._Session() as db:
                return list(db.scalars(select(CacheEntry.key).order_by(CacheEntry.key)))
        except SQLAlchemyError as e:
            logger.error("cache.keys_failed", error=str(e))
            return []

    def clear(self, keep_auth: bool = False) -> int:
        """Drop every cached entry. Returns how many were removed."""
        if self._Session is None:
            return 0
        try:
            with self._Session() as db:
                stmt = delete(CacheEntry)
                if keep_auth:
                    stmt = stmt.where(CacheEntry.key != KEY_AUTH_TOKEN)
                removed = db.execute(stmt).rowcount
                db.commit()
            logger.info("cache.cleared", removed=removed, keep_auth=keep_auth)
            return removed
        except SQLAlchemyError as e:
            logger.error("cache.clear_failed", error=str(e))
            return 0


def _ensure_sqlite_dir(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    parsed = make_url(url)
    if not parsed.drivername.startswith("sqlite"):
        return
    database = parsed.database
    if database and database != ":memory:" and not database.startswith("file:"):
        Path(database).parent.mkdir(parents=True, exist_ok=True)
