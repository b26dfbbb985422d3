"""Pydantic models for the chat API and the local cache.

Sessions and messages share one shape on the wire and on disk; the
`status` field records how far a record got towards the server.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

LOCAL_ID_PREFIX = "local-"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_local_id(kind: str) -> str:
    """Issue a client-side identifier, e.g. ``local-session-3f2a...``.

    The server never hands out ids starting with ``local-``, so a local id
    cannot collide with a canonical one.
    """
    return f"{LOCAL_ID_PREFIX}{kind}-{uuid4().hex}"


class SyncStatus(str, Enum):
    """Where a session or message stands relative to the server."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    OFFLINE_ACCEPTED = "offline_accepted"
    LOCAL_ONLY = "local_only"


UNSYNCED = (SyncStatus.OFFLINE_ACCEPTED, SyncStatus.LOCAL_ONLY)


def _as_utc(value: datetime) -> datetime:
    # Naive values from the API or an old cache entry are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


class Diagram(BaseModel):
    """Illustration attached to an assistant message."""
    url: str
    caption: str = "Diagram"


class Session(BaseModel):
    """A named conversation thread."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str = Field(..., min_length=1)
    title: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    status: SyncStatus = SyncStatus.CONFIRMED

    @field_validator("created_at", "updated_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Message(BaseModel):
    """Single message in a conversation."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str = Field(..., min_length=1)
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    diagram: Diagram | None = None
    status: SyncStatus = SyncStatus.CONFIRMED

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class User(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    username: str = ""
    email: str = ""


class AuthResult(BaseModel):
    """Response of POST /auth/signin and /auth/signup."""
    access_token: str = Field(..., min_length=1)
    user: User


class CreateSessionRequest(BaseModel):
    title: str


class ChatRequest(BaseModel):
    """Outgoing chat turn."""
    session_id: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)


class PairedTurn(BaseModel):
    """Turn answered with fully formed user and assistant messages."""
    kind: Literal["paired"] = "paired"
    user_message: Message | None = None
    assistant_message: Message | None = None


class SingleResponseTurn(BaseModel):
    """Turn answered with a bare response string and an optional diagram path."""
    kind: Literal["single"] = "single"
    response: str
    diagram_path: str | None = None


Turn = PairedTurn | SingleResponseTurn


class Notice(BaseModel):
    """User-visible outcome of an engine operation."""
    level: NoticeLevel
    text: str
