"""Illustra - Streamlit Chat Interface.

Thin presentation layer over the sync engine. This file handles:
  - Building one engine per browser session (st.session_state)
  - Sign in / sign up forms while unauthenticated
  - Session sidebar with sync status badges
  - Rendering messages and diagrams, and forwarding chat input
All sync, caching and offline behaviour lives in illustra.core.
"""

from dotenv import load_dotenv
import streamlit as st

from illustra.api.schemas import NoticeLevel, SyncStatus
from illustra.core.auth import AuthError, AuthState
from illustra.core.persistence import LocalCache
from illustra.core.remote_client import RemoteClient
from illustra.core.stores import MessageStore, SessionStore
from illustra.core.sync_engine import DEFAULT_SESSION_TITLE, SyncEngine

load_dotenv()

st.set_page_config(
    page_title="Illustra",
    layout="centered",
)

st.markdown("""
<style>
    .stApp {
        max-width: 900px;
        margin: 0 auto;
    }
    .stChatMessage {
        padding: 0.75rem 1rem;
    }
    .status-badge {
        display: inline-block;
        padding: 2px 8px;
        border-radius: 12px;
        font-size: 0.75rem;
        font-weight: 600;
    }
    .status-local { background: #fff3cd; color: #856404; }
    .status-err { background: #f8d7da; color: #721c24; }
</style>
""", unsafe_allow_html=True)

_BADGES = {
    SyncStatus.PENDING: ("sending", "status-local"),
    SyncStatus.OFFLINE_ACCEPTED: ("offline", "status-local"),
    SyncStatus.LOCAL_ONLY: ("local only", "status-err"),
}

_TOAST_ICONS = {
    NoticeLevel.SUCCESS: "✅",
    NoticeLevel.INFO: "ℹ️",
    NoticeLevel.ERROR: "⚠️",
}


def init_session():
    """Build the client objects once per browser session."""
    if "engine" in st.session_state:
        return

    cache = LocalCache()
    remote = RemoteClient()
    auth = AuthState(remote, cache)
    auth.check()

    engine = SyncEngine(
        cache=cache,
        remote=remote,
        sessions=SessionStore(),
        messages=MessageStore(),
        token_provider=lambda: auth.token if auth.is_authenticated else None,
    )
    st.session_state.auth = auth
    st.session_state.engine = engine
    st.session_state.started = False


def start_engine():
    """Hydrate and sync once the user is signed in."""
    if not st.session_state.started and st.session_state.auth.is_authenticated:
        st.session_state.engine.start()
        st.session_state.started = True


def show_notices():
    for notice in st.session_state.engine.drain_notices():
        st.toast(notice.text, icon=_TOAST_ICONS.get(notice.level))


def badge(status: SyncStatus) -> str:
    if status not in _BADGES:
        return ""
    label, css = _BADGES[status]
    return f' <span class="status-badge {css}">{label}</span>'


def render_auth():
    """Sign in / sign up tabs."""
    auth: AuthState = st.session_state.auth
    st.title("Illustra")
    signin_tab, signup_tab = st.tabs(["Sign in", "Sign up"])

    with signin_tab:
        with st.form("signin"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            if st.form_submit_button("Sign in", use_container_width=True):
                try:
                    auth.login(email, password)
                    st.rerun()
                except AuthError as e:
                    st.error(f"[ERROR] {e}")

    with signup_tab:
        with st.form("signup"):
            username = st.text_input("Username")
            email = st.text_input("Email", key="signup_email")
            password = st.text_input("Password", type="password", key="signup_password")
            if st.form_submit_button("Create account", use_container_width=True):
                try:
                    auth.signup(username, email, password)
                    st.rerun()
                except AuthError as e:
                    st.error(f"[ERROR] {e}")


def render_sidebar():
    engine: SyncEngine = st.session_state.engine
    auth: AuthState = st.session_state.auth

    with st.sidebar:
        st.markdown("### Illustra")
        if auth.user is not None:
            st.caption(auth.user.username or auth.user.email)

        with st.form("new_session", clear_on_submit=True):
            title = st.text_input("Title", placeholder="Enter chat title (optional)")
            if st.form_submit_button("New chat", use_container_width=True):
                engine.create_session(title.strip() or DEFAULT_SESSION_TITLE)
                st.rerun()

        st.divider()
        current = engine.sessions.current
        for session in engine.sessions.sessions:
            label = session.title or DEFAULT_SESSION_TITLE
            is_current = current is not None and current.id == session.id
            if st.button(
                f"{label} · {session.updated_at:%b %d}",
                key=f"session_{session.id}",
                use_container_width=True,
                type="primary" if is_current else "secondary",
            ):
                engine.select_session(session.id)
                st.rerun()
            if session.status in _BADGES:
                st.markdown(badge(session.status), unsafe_allow_html=True)

        st.divider()
        if st.button("Refresh", use_container_width=True):
            engine.refresh_sessions()
            st.rerun()
        if st.button("Log out", use_container_width=True):
            auth.logout()
            st.session_state.clear()
            st.rerun()


def render_messages():
    engine: SyncEngine = st.session_state.engine
    for msg in engine.messages.messages:
        with st.chat_message(msg.role):
            st.markdown(msg.content)
            if msg.status in _BADGES:
                st.markdown(badge(msg.status), unsafe_allow_html=True)
            if msg.diagram is not None:
                st.image(engine.remote.asset_url(msg.diagram.url), caption=msg.diagram.caption,
                         use_container_width=True)


def main():
    """Run the Streamlit chat application."""
    init_session()

    if not st.session_state.auth.is_authenticated:
        render_auth()
        return

    start_engine()
    engine: SyncEngine = st.session_state.engine

    current = engine.sessions.current
    st.title(current.title if current is not None else "Illustra")

    render_sidebar()
    render_messages()

    if user_input := st.chat_input("Ask Illustra...", disabled=engine.is_sending()):
        with st.spinner("Thinking..."):
            engine.send_message(user_input)
        st.rerun()

    show_notices()


if __name__ == "__main__":
    main()
