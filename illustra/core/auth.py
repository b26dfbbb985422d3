"""Bearer-token holder for the chat client.

Issues and validates tokens through the API and keeps the current one in the
local cache so a restart stays signed in. The SyncEngine only ever sees
`AuthState.token` through its token provider.
"""

import structlog

from illustra.api.schemas import AuthResult, User
from illustra.core.persistence import LocalCache
from illustra.core.remote_client import HttpFailure, RemoteClient, RemoteError

logger = structlog.get_logger(__name__)


class AuthError(Exception):
    """Sign-in or sign-up was rejected or could not be completed."""
    pass


class AuthState:
    """Current token and user, persisted across restarts."""

    def __init__(self, remote: RemoteClient, cache: LocalCache):
        self.remote = remote
        self.cache = cache
        self.token: str | None = cache.read_token()
        self.user: User | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def check(self) -> bool:
        """Resolve the stored token to a user; drop it if the server refuses.

        Returns:
            True if the token is valid.
        """
        if not self.token:
            return False
        try:
            self.user = self.remote.resolve_identity(self.token)
        except RemoteError as e:
            logger.warning("auth.check_failed", error=str(e))
            self.logout()
            return False
        logger.info("auth.checked", user_id=self.user.id)
        return True

    def login(self, email: str, password: str) -> User:
        result = self._issue(lambda: self.remote.sign_in(email, password), "Login failed")
        logger.info("auth.logged_in", user_id=result.user.id)
        return result.user

    def signup(self, username: str, email: str, password: str) -> User:
        result = self._issue(lambda: self.remote.sign_up(username, email, password), "Signup failed")
        logger.info("auth.signed_up", user_id=result.user.id)
        return result.user

    def logout(self) -> None:
        self.token = None
        self.user = None
        self.cache.delete_token()
        logger.info("auth.logged_out")

    def _issue(self, call, fallback: str) -> AuthResult:
        try:
            result = call()
        except HttpFailure as e:
            raise AuthError(e.detail or fallback) from e
        except RemoteError as e:
            raise AuthError(fallback) from e

        self.token = result.access_token
        self.user = result.user
        self.cache.write_token(result.access_token)
        return result
