"""In-memory working state: the session list and the open conversation.

Both stores are plain objects owned by whoever builds the SyncEngine. They
reject mutations that would break their invariants (duplicate ids, a current
session missing from the list) with ValueError instead of drifting silently.
"""

from datetime import datetime

from illustra.api.schemas import Message, Session


def _check_unique(items, kind: str) -> None:
    seen = set()
    for item in items:
        if item.id in seen:
            raise ValueError(f"duplicate {kind} id: {item.id}")
        seen.add(item.id)


class SessionStore:
    """Ordered sessions (most recent first) plus the current selection."""

    def __init__(self):
        self._sessions: list[Session] = []
        self._current_id: str | None = None

    @property
    def sessions(self) -> list[Session]:
        return list(self._sessions)

    @property
    def current(self) -> Session | None:
        if self._current_id is None:
            return None
        return self.get(self._current_id)

    def get(self, session_id: str) -> Session | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def index_of(self, session_id: str) -> int:
        for i, session in enumerate(self._sessions):
            if session.id == session_id:
                return i
        return -1

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return self.index_of(session_id) >= 0

    def replace_all(self, sessions: list[Session]) -> None:
        """Swap in a new list. Drops the selection if it is no longer present."""
        _check_unique(sessions, "session")
        self._sessions = list(sessions)
        if self._current_id is not None and self._current_id not in self:
            self._current_id = None

    def prepend(self, session: Session) -> None:
        if session.id in self:
            raise ValueError(f"duplicate session id: {session.id}")
        self._sessions.insert(0, session)

    def swap(self, old_id: str, session: Session) -> None:
        """Replace a session in place, keeping its position and the selection."""
        i = self.index_of(old_id)
        if i < 0:
            raise ValueError(f"unknown session id: {old_id}")
        if session.id != old_id and session.id in self:
            raise ValueError(f"duplicate session id: {session.id}")
        self._sessions[i] = session
        if self._current_id == old_id:
            self._current_id = session.id

    def touch(self, session_id: str, when: datetime) -> Session | None:
        """Refresh `updated_at` and move the session to the front."""
        i = self.index_of(session_id)
        if i < 0:
            return None
        session = self._sessions.pop(i).model_copy(update={"updated_at": when})
        self._sessions.insert(0, session)
        return session

    def set_current(self, session_id: str | None) -> None:
        if session_id is not None and session_id not in self:
            raise ValueError(f"unknown session id: {session_id}")
        self._current_id = session_id


class MessageStore:
    """Messages of the currently open session, in conversation order."""

    def __init__(self):
        self.session_id: str | None = None
        self._messages: list[Message] = []

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def replace(self, session_id: str | None, messages: list[Message]) -> None:
        _check_unique(messages, "message")
        self.session_id = session_id
        self._messages = list(messages)

    def clear(self, session_id: str | None = None) -> None:
        self.session_id = session_id
        self._messages = []
