"""Unit tests for the in-memory session and message stores."""

from datetime import timedelta

import pytest

from conftest import T0, make_message
from illustra.api.schemas import Session
from illustra.core.stores import MessageStore, SessionStore


def _session(session_id, minutes=0):
    when = T0 + timedelta(minutes=minutes)
    return Session(id=session_id, title=session_id, created_at=when, updated_at=when)


@pytest.fixture
def store():
    s = SessionStore()
    s.replace_all([_session("a", 2), _session("b", 1), _session("c", 0)])
    return s


class TestSessionStore:

    def test_prepend_puts_newest_first(self, store):
        store.prepend(_session("d", 3))
        assert [s.id for s in store.sessions] == ["d", "a", "b", "c"]

    def test_duplicate_prepend_rejected(self, store):
        with pytest.raises(ValueError):
            store.prepend(_session("a"))

    def test_duplicate_replace_rejected(self):
        with pytest.raises(ValueError):
            SessionStore().replace_all([_session("a"), _session("a")])

    def test_swap_keeps_position_and_selection(self, store):
        store.set_current("b")
        store.swap("b", _session("b2"))
        assert [s.id for s in store.sessions] == ["a", "b2", "c"]
        assert store.current.id == "b2"

    def test_swap_unknown_rejected(self, store):
        with pytest.raises(ValueError):
            store.swap("zzz", _session("y"))

    def test_current_must_exist(self, store):
        with pytest.raises(ValueError):
            store.set_current("zzz")

    def test_replace_drops_missing_current(self, store):
        store.set_current("c")
        store.replace_all([_session("a")])
        assert store.current is None

    def test_touch_moves_to_front(self, store):
        later = T0 + timedelta(hours=1)
        touched = store.touch("c", later)
        assert touched.updated_at == later
        assert [s.id for s in store.sessions] == ["c", "a", "b"]

    def test_touch_unknown_is_none(self, store):
        assert store.touch("zzz", T0) is None

    def test_sessions_is_a_copy(self, store):
        store.sessions.clear()
        assert len(store) == 3


class TestMessageStore:

    def test_replace(self):
        store = MessageStore()
        store.replace("s1", [make_message("m1"), make_message("m2")])
        assert store.session_id == "s1"
        assert len(store) == 2

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            MessageStore().replace("s1", [make_message("m1"), make_message("m1")])

    def test_clear(self):
        store = MessageStore()
        store.replace("s1", [make_message("m1")])
        store.clear("s2")
        assert store.session_id == "s2"
        assert store.messages == []
