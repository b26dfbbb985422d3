"""Session/message synchronization engine.

Every user intent goes through here. Each mutating operation follows the same
sequence: update the in-memory stores optimistically, write through to the
local cache, call the API, then reconcile (canonical ids, confirmed status) or
demote (offline-accepted / local-only) depending on the outcome.

Remote failures never escape: they become a Notice for the presentation layer
and the engine keeps serving cached or optimistic state.
"""

from collections.abc import Callable

import structlog

from illustra.api.schemas import (
    Message,
    Notice,
    NoticeLevel,
    Session,
    SyncStatus,
    new_local_id,
    utc_now,
)
from illustra.core.persistence import LocalCache
from illustra.core.reconciler import (
    apply_turn,
    demote_stale_pending,
    merge_history,
    merge_sessions,
    normalize_turn,
    relabel,
    unique_by_id,
)
from illustra.core.remote_client import RemoteClient, RemoteError, SoftFailure
from illustra.core.stores import MessageStore, SessionStore

logger = structlog.get_logger(__name__)

DEFAULT_SESSION_TITLE = "New Conversation"

# Notice texts shown to the user
MSG_SESSIONS_SOFT = "API connection issue. Using locally stored data."
MSG_SESSIONS_FAILED = "Failed to load chat sessions. Using locally stored data."
MSG_SESSION_CREATED = "New chat session created"
MSG_SESSION_SOFT = "Working in offline mode. Session will be synced when connection is restored."
MSG_SESSION_OFFLINE = "Session created in offline mode."
MSG_HISTORY_LOCAL = "Using locally stored messages."
MSG_SEND_SOFT = "Message saved locally. Will sync when connection is restored."
MSG_SEND_FAILED = "Failed to send message. Message saved locally."


class SyncEngine:
    """Keeps SessionStore/MessageStore, the LocalCache and the API consistent."""

    def __init__(
        self,
        cache: LocalCache,
        remote: RemoteClient,
        sessions: SessionStore,
        messages: MessageStore,
        token_provider: Callable[[], str | None],
        on_notice: Callable[[Notice], None] | None = None,
        clock: Callable = utc_now,
    ):
        self.cache = cache
        self.remote = remote
        self.sessions = sessions
        self.messages = messages
        self._token_provider = token_provider
        self._on_notice = on_notice
        self._clock = clock
        self._sending: set[str] = set()
        self.notices: list[Notice] = []

    # Notices

    def _notify(self, level: NoticeLevel, text: str) -> None:
        notice = Notice(level=level, text=text)
        self.notices.append(notice)
        if self._on_notice is not None:
            self._on_notice(notice)

    def drain_notices(self) -> list[Notice]:
        """Hand pending notices to the caller and forget them."""
        notices, self.notices = self.notices, []
        return notices

    def is_sending(self, session_id: str | None = None) -> bool:
        """Whether a send is in flight for `session_id` (any session if None)."""
        if session_id is None:
            return bool(self._sending)
        return session_id in self._sending

    def _token(self) -> str | None:
        return self._token_provider() or None

    # Write-through helpers

    def _messages_for(self, session_id: str) -> list[Message]:
        if self.messages.session_id == session_id:
            return self.messages.messages
        return self.cache.read_messages(session_id)

    def _store_messages(self, session_id: str, messages: list[Message]) -> None:
        if self.messages.session_id == session_id:
            self.messages.replace(session_id, messages)
        self.cache.write_messages(session_id, messages)

    def _store_sessions(self) -> None:
        self.cache.write_sessions(self.sessions.sessions)

    # Startup

    def start(self) -> None:
        """Hydrate from the cache, sync with the server, then restore the selection."""
        cached = unique_by_id(self.cache.read_sessions())
        self.sessions.replace_all(cached)
        logger.info("sync.hydrated", sessions=len(cached))

        if self._token():
            self.refresh_sessions()

        if self.sessions.current is None and len(self.sessions):
            last_id = self.cache.read_last_selected()
            if last_id and last_id in self.sessions:
                self.select_session(last_id)
            else:
                self.select_session(self.sessions.sessions[0].id)

    # Sessions

    def refresh_sessions(self) -> bool:
        """Replace the session list with the server's, keeping never-synced sessions.

        Returns:
            True if the server list was applied.
        """
        token = self._token()
        if not token:
            return False

        try:
            server_sessions = self.remote.list_sessions(token)
        except SoftFailure as e:
            logger.info("sync.sessions_soft_failure", error=str(e))
            self._notify(NoticeLevel.INFO, MSG_SESSIONS_SOFT)
            return False
        except RemoteError as e:
            logger.error("sync.sessions_failed", error=str(e))
            self._notify(NoticeLevel.ERROR, MSG_SESSIONS_FAILED)
            return False

        current = self.sessions.current
        merged = merge_sessions(server_sessions, self.sessions.sessions)
        self.sessions.replace_all(merged)
        if current is not None and self.sessions.current is None:
            logger.warning("sync.current_session_vanished", session_id=current.id)
            self.messages.clear()
        self._store_sessions()

        logger.info("sync.sessions_refreshed", server=len(server_sessions), total=len(merged))
        return True

    def create_session(self, title: str) -> Session | None:
        """Create a session optimistically, then reconcile it with the server.

        Returns:
            The resulting session (canonical, offline-accepted or local-only),
            or None when the precondition fails.
        """
        token = self._token()
        if not token or not title or not title.strip():
            return None

        now = self._clock()
        temp = Session(
            id=new_local_id("session"),
            title=title,
            created_at=now,
            updated_at=now,
            status=SyncStatus.PENDING,
        )
        self.sessions.prepend(temp)
        self.sessions.set_current(temp.id)
        self.messages.clear(temp.id)
        self._store_sessions()
        self.cache.write_messages(temp.id, [])
        self.cache.write_last_selected(temp.id)
        logger.info("sync.session_pending", session_id=temp.id)

        try:
            created = self.remote.create_session(token, title)
        except SoftFailure as e:
            logger.info("sync.session_soft_failure", session_id=temp.id, error=str(e))
            return self._settle_session(temp, SyncStatus.OFFLINE_ACCEPTED, NoticeLevel.INFO, MSG_SESSION_SOFT)
        except RemoteError as e:
            logger.warning("sync.session_local_only", session_id=temp.id, error=str(e))
            return self._settle_session(temp, SyncStatus.LOCAL_ONLY, NoticeLevel.INFO, MSG_SESSION_OFFLINE)

        canonical = created.model_copy(update={"status": SyncStatus.CONFIRMED})
        if canonical.id in self.sessions:
            # Server reused an id we already list; the fresh copy wins.
            self.sessions.replace_all([s for s in self.sessions.sessions if s.id != canonical.id])
        self.sessions.swap(temp.id, canonical)
        if self.messages.session_id == temp.id:
            self.messages.replace(canonical.id, self.messages.messages)
        self.cache.move_messages(temp.id, canonical.id)
        self._store_sessions()
        if self.cache.read_last_selected() == temp.id:
            self.cache.write_last_selected(canonical.id)

        logger.info("sync.session_created", temp_id=temp.id, session_id=canonical.id)
        self._notify(NoticeLevel.SUCCESS, MSG_SESSION_CREATED)
        return canonical

    def _settle_session(self, temp: Session, status: SyncStatus, level: NoticeLevel, text: str) -> Session:
        settled = temp.model_copy(update={"status": status})
        self.sessions.swap(temp.id, settled)
        self._store_sessions()
        self._notify(level, text)
        return settled

    def select_session(self, session_id: str) -> bool:
        """Make a known session current and load its messages. Unknown ids are ignored."""
        if session_id not in self.sessions:
            logger.debug("sync.select_unknown", session_id=session_id)
            return False

        self.sessions.set_current(session_id)
        self.cache.write_last_selected(session_id)
        self.load_messages(session_id)
        return True

    # Messages

    def load_messages(self, session_id: str) -> list[Message]:
        """Show cached history immediately, then replace it with the server's."""
        cached = self.cache.read_messages(session_id)
        if session_id not in self._sending:
            settled = demote_stale_pending(cached)
            if settled != cached:
                logger.info("sync.stale_pending_demoted", session_id=session_id)
                self.cache.write_messages(session_id, settled)
            cached = settled
        cached = unique_by_id(cached)
        self.messages.replace(session_id, cached)

        token = self._token()
        if not token:
            return cached

        try:
            server_messages = self.remote.fetch_history(token, session_id)
        except SoftFailure as e:
            logger.info("sync.history_soft_failure", session_id=session_id, error=str(e))
            self._notify(NoticeLevel.INFO, MSG_HISTORY_LOCAL)
            return cached
        except RemoteError as e:
            logger.warning("sync.history_failed", session_id=session_id, error=str(e))
            self._notify(NoticeLevel.INFO, MSG_HISTORY_LOCAL)
            return cached

        merged = merge_history(server_messages, cached)
        self._store_messages(session_id, merged)
        logger.info("sync.history_loaded", session_id=session_id, count=len(merged))
        return merged

    def send_message(self, content: str) -> SyncStatus | None:
        """Send one user turn with an optimistic echo.

        Returns:
            Final status of the user message, or None if nothing was sent
            (empty content, no token, or a send already in flight for the
            session).
        """
        token = self._token()
        if not token or not content or not content.strip():
            return None

        if self.sessions.current is None:
            self.create_session(DEFAULT_SESSION_TITLE)
            if self.sessions.current is None:
                return None
        session_id = self.sessions.current.id

        if session_id in self._sending:
            logger.info("sync.send_dropped", session_id=session_id)
            return None

        self._sending.add(session_id)
        try:
            return self._send(token, session_id, content)
        finally:
            self._sending.discard(session_id)

    def _send(self, token: str, session_id: str, content: str) -> SyncStatus:
        pending = Message(
            id=new_local_id("message"),
            role="user",
            content=content,
            timestamp=self._clock(),
            status=SyncStatus.PENDING,
        )
        self._store_messages(session_id, self._messages_for(session_id) + [pending])
        logger.info("sync.send_pending", session_id=session_id, message_id=pending.id)

        try:
            turn = self.remote.post_turn(token, session_id, content)
        except SoftFailure as e:
            logger.info("sync.send_soft_failure", session_id=session_id, error=str(e))
            self._settle_message(session_id, pending.id, SyncStatus.OFFLINE_ACCEPTED)
            self._notify(NoticeLevel.INFO, MSG_SEND_SOFT)
            return SyncStatus.OFFLINE_ACCEPTED
        except RemoteError as e:
            logger.warning("sync.send_failed", session_id=session_id, error=str(e))
            self._settle_message(session_id, pending.id, SyncStatus.LOCAL_ONLY)
            self._notify(NoticeLevel.ERROR, MSG_SEND_FAILED)
            return SyncStatus.LOCAL_ONLY

        user, assistant = normalize_turn(pending, turn, self._clock())
        self._store_messages(
            session_id,
            apply_turn(self._messages_for(session_id), pending.id, user, assistant),
        )
        if self.sessions.touch(session_id, self._clock()) is not None:
            self._store_sessions()
        logger.info("sync.send_confirmed", session_id=session_id, kind=turn.kind,
                    has_assistant=assistant is not None)

        self.refresh_sessions()
        return SyncStatus.CONFIRMED

    def _settle_message(self, session_id: str, message_id: str, status: SyncStatus) -> None:
        self._store_messages(session_id, relabel(self._messages_for(session_id), message_id, status))
