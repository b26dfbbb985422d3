"""Pure helpers that fold remote outcomes into message and session lists.

Nothing here does I/O; the SyncEngine decides when to call them and writes the
results through to the stores and the cache.
"""

from datetime import datetime
from pathlib import PurePosixPath

from illustra.api.schemas import (
    UNSYNCED,
    Diagram,
    Message,
    PairedTurn,
    Session,
    SingleResponseTurn,
    SyncStatus,
    Turn,
)


def reply_id(pending_id: str) -> str:
    """Id of the assistant message synthesized for a pending user message."""
    return f"{pending_id}-reply"


def diagram_caption(path: str) -> str:
    """Last path segment, e.g. ``/img/a.png`` -> ``a.png``."""
    name = PurePosixPath(path.split("?", 1)[0].rstrip("/")).name
    return name or "Diagram"


def normalize_turn(pending: Message, turn: Turn, now: datetime) -> tuple[Message | None, Message | None]:
    """Turn either payload variant into a (user, assistant) pair.

    Args:
        pending: The optimistic user message that was sent.
        turn: Classified server answer.
        now: Timestamp for synthesized messages.

    Returns:
        Tuple of (user_message, assistant_message). A paired payload may leave
        either side as None; a single response always yields both.
    """
    if isinstance(turn, PairedTurn):
        user = turn.user_message
        assistant = turn.assistant_message
        if user is not None:
            user = user.model_copy(update={"status": SyncStatus.CONFIRMED})
        if assistant is not None:
            assistant = assistant.model_copy(update={"status": SyncStatus.CONFIRMED})
        return user, assistant

    if isinstance(turn, SingleResponseTurn):
        user = pending.model_copy(update={"status": SyncStatus.CONFIRMED})
        diagram = None
        if turn.diagram_path:
            diagram = Diagram(url=turn.diagram_path, caption=diagram_caption(turn.diagram_path))
        assistant = Message(
            id=reply_id(pending.id),
            role="assistant",
            content=turn.response,
            timestamp=now,
            diagram=diagram,
            status=SyncStatus.CONFIRMED,
        )
        return user, assistant

    raise TypeError(f"unsupported turn payload: {type(turn).__name__}")


def apply_turn(
    messages: list[Message],
    pending_id: str,
    user: Message | None,
    assistant: Message | None,
) -> list[Message]:
    """Drop the pending entry and append the confirmed ones, user first.

    Any existing entry that already carries one of the incoming ids is dropped
    too, so applying the same turn twice leaves a single copy.
    """
    incoming = [m for m in (user, assistant) if m is not None]
    drop = {pending_id} | {m.id for m in incoming}
    kept = [m for m in messages if m.id not in drop]
    return kept + incoming


def relabel(messages: list[Message], message_id: str, status: SyncStatus) -> list[Message]:
    return [
        m.model_copy(update={"status": status}) if m.id == message_id else m
        for m in messages
    ]


def demote_stale_pending(messages: list[Message]) -> list[Message]:
    """Cached `pending` messages with no send in flight can never resolve."""
    return [
        m.model_copy(update={"status": SyncStatus.LOCAL_ONLY}) if m.status == SyncStatus.PENDING else m
        for m in messages
    ]


def unique_by_id(items: list) -> list:
    """First occurrence of every id, order preserved."""
    seen = set()
    out = []
    for item in items:
        if item.id not in seen:
            seen.add(item.id)
            out.append(item)
    return out


def merge_history(server: list[Message], cached: list[Message]) -> list[Message]:
    """Server history followed by cached messages the server never received."""
    known = {m.id for m in server}
    unsynced = [m for m in cached if m.status in UNSYNCED and m.id not in known]
    return unique_by_id(list(server) + unsynced)


def merge_sessions(server: list[Session], local: list[Session]) -> list[Session]:
    """Server sessions plus local ones that never reached the server, newest first."""
    known = {s.id for s in server}
    unsynced = [
        s for s in local
        if s.status != SyncStatus.CONFIRMED and s.id not in known
    ]
    merged = unique_by_id(unsynced + list(server))
    # stable: equal timestamps keep the server's order
    return sorted(merged, key=lambda s: s.updated_at, reverse=True)
