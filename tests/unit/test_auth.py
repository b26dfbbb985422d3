"""Unit tests for the auth token holder."""

import pytest

from illustra.api.schemas import AuthResult, User
from illustra.core.auth import AuthError, AuthState
from illustra.core.remote_client import HttpFailure, NetworkFailure


@pytest.fixture
def user():
    return User(id="u1", username="ada", email="ada@example.com")


class TestCheck:

    def test_no_token(self, cache, remote):
        auth = AuthState(remote, cache)
        assert not auth.check()
        remote.resolve_identity.assert_not_called()

    def test_valid_stored_token(self, cache, remote, user):
        cache.write_token("tok")
        remote.resolve_identity.return_value = user
        auth = AuthState(remote, cache)
        assert auth.check()
        assert auth.is_authenticated
        remote.resolve_identity.assert_called_once_with("tok")

    @pytest.mark.parametrize("failure", [HttpFailure(401, "expired"), NetworkFailure("down")])
    def test_rejected_token_logs_out(self, cache, remote, failure):
        cache.write_token("tok")
        remote.resolve_identity.side_effect = failure
        auth = AuthState(remote, cache)
        assert not auth.check()
        assert auth.token is None
        assert cache.read_token() is None


class TestLogin:

    def test_login_persists_token(self, cache, remote, user):
        remote.sign_in.return_value = AuthResult(access_token="tok", user=user)
        auth = AuthState(remote, cache)
        assert auth.login("ada@example.com", "pw") == user
        assert auth.token == "tok"
        assert cache.read_token() == "tok"

    def test_login_error_uses_server_detail(self, cache, remote):
        remote.sign_in.side_effect = HttpFailure(400, '{"detail": "Invalid credentials"}')
        auth = AuthState(remote, cache)
        with pytest.raises(AuthError, match="Invalid credentials"):
            auth.login("ada@example.com", "wrong")
        assert not auth.is_authenticated

    def test_signup_network_error(self, cache, remote):
        remote.sign_up.side_effect = NetworkFailure("down")
        auth = AuthState(remote, cache)
        with pytest.raises(AuthError, match="Signup failed"):
            auth.signup("ada", "ada@example.com", "pw")

    def test_logout_clears_everything(self, cache, remote, user):
        remote.sign_in.return_value = AuthResult(access_token="tok", user=user)
        auth = AuthState(remote, cache)
        auth.login("ada@example.com", "pw")
        auth.logout()
        assert not auth.is_authenticated
        assert cache.read_token() is None
