"""HTTP client for the Illustra chat API.

Wraps a `requests.Session` and turns every response into either a parsed
pydantic payload or one of three failures:

- NetworkFailure: the request never completed (DNS, refused, timeout).
- HttpFailure: the server answered with a non-2xx status.
- SoftFailure: 2xx, but the body is an HTML page, not JSON, or JSON of an
  unexpected shape. This is what a misrouted deployment serving its SPA
  fallback page looks like, so callers treat it as "offline", not as an error.
"""

import json
import os
from urllib.parse import urljoin

import requests
import structlog
from pydantic import ValidationError

from illustra.api.schemas import (
    AuthResult,
    ChatRequest,
    CreateSessionRequest,
    Message,
    PairedTurn,
    Session,
    SingleResponseTurn,
    Turn,
    User,
    new_local_id,
    utc_now,
)

logger = structlog.get_logger(__name__)


class RemoteError(Exception):
    """Base class for every failure of a remote call."""
    pass


class NetworkFailure(RemoteError):
    """The request could not complete."""
    pass


class HttpFailure(RemoteError):
    """Non-2xx response."""

    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {body[:200]}")

    @property
    def detail(self) -> str:
        """Server-provided `detail` text if the body is a JSON error object."""
        try:
            data = json.loads(self.body)
        except ValueError:
            return self.body
        if isinstance(data, dict) and isinstance(data.get("detail"), str):
            return data["detail"]
        return self.body


class SoftFailure(RemoteError):
    """2xx response that is not the JSON the API promises."""
    pass


class RemoteClient:
    """Synchronous client for the chat API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or os.environ.get("API_URL", "http://localhost:8000")).rstrip("/")
        self.timeout = timeout if timeout is not None else float(os.environ.get("API_TIMEOUT", "30"))
        self._http = session or requests.Session()

    def asset_url(self, path: str) -> str:
        """Resolve a server-relative asset path (e.g. a diagram) to an absolute URL."""
        if _is_absolute(path):
            return path
        return urljoin(self.base_url + "/", path.lstrip("/"))

    # Transport

    def _request(self, method: str, path: str, token: str | None = None, json_body: dict | None = None):
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.debug("remote.request", method=method, path=path)
        try:
            resp = self._http.request(method, url, headers=headers, json=json_body, timeout=self.timeout)
        except requests.Timeout as e:
            logger.warning("remote.timeout", path=path, timeout=self.timeout)
            raise NetworkFailure(f"Request to {path} timed out") from e
        except requests.RequestException as e:
            logger.warning("remote.network_failure", path=path, error=str(e))
            raise NetworkFailure(f"Request to {path} failed: {e}") from e

        if not resp.ok:
            logger.warning("remote.http_failure", path=path, status=resp.status_code)
            raise HttpFailure(resp.status_code, resp.text)

        content_type = resp.headers.get("Content-Type", "")
        if "text/html" in content_type:
            logger.info("remote.soft_failure", path=path, reason="html_response")
            raise SoftFailure(f"{path} answered with HTML instead of JSON")

        try:
            return resp.json()
        except ValueError as e:
            logger.info("remote.soft_failure", path=path, reason="non_json_response")
            raise SoftFailure(f"{path} answered with a non-JSON body") from e

    # Auth

    def sign_in(self, email: str, password: str) -> AuthResult:
        data = self._request("POST", "/auth/signin", json_body={"email": email, "password": password})
        return _parse(AuthResult, data, "/auth/signin")

    def sign_up(self, username: str, email: str, password: str) -> AuthResult:
        data = self._request(
            "POST", "/auth/signup",
            json_body={"username": username, "email": email, "password": password},
        )
        return _parse(AuthResult, data, "/auth/signup")

    def resolve_identity(self, token: str) -> User:
        data = self._request("GET", "/auth/me", token=token)
        return _parse(User, data, "/auth/me")

    # Sessions

    def list_sessions(self, token: str) -> list[Session]:
        data = self._request("GET", "/chat/sessions", token=token)
        if not isinstance(data, list):
            raise SoftFailure("/chat/sessions did not return a list")
        return [_parse(Session, item, "/chat/sessions") for item in data]

    def create_session(self, token: str, title: str) -> Session:
        body = CreateSessionRequest(title=title).model_dump()
        data = self._request("POST", "/chat/sessions", token=token, json_body=body)
        return _parse(Session, data, "/chat/sessions")

    # Messages

    def fetch_history(self, token: str, session_id: str) -> list[Message]:
        """Fetch a session's messages, keeping only entries with a role and content."""
        path = f"/chat/history/{session_id}"
        data = self._request("GET", path, token=token)
        if not isinstance(data, list):
            raise SoftFailure(f"{path} did not return a list")

        messages = []
        for item in data:
            if not isinstance(item, dict) or not item.get("role") or not item.get("content"):
                continue
            try:
                messages.append(Message.model_validate(_with_message_defaults(item)))
            except ValidationError as e:
                logger.warning("remote.history_entry_skipped", session_id=session_id, error=str(e))
        return messages

    def post_turn(self, token: str, session_id: str, prompt: str) -> Turn:
        """Send one user prompt and classify the answer into a turn variant."""
        body = ChatRequest(session_id=session_id, prompt=prompt).model_dump()
        data = self._request("POST", "/chat", token=token, json_body=body)
        if not isinstance(data, dict):
            raise SoftFailure("/chat did not return an object")

        if data.get("user_message") or data.get("assistant_message"):
            return _parse(PairedTurn, {
                "user_message": _with_message_defaults(data.get("user_message") or None),
                "assistant_message": _with_message_defaults(data.get("assistant_message") or None),
            }, "/chat")
        if isinstance(data.get("response"), str) and data["response"]:
            return _parse(SingleResponseTurn, {
                "response": data["response"],
                "diagram_path": data.get("diagram_path") or None,
            }, "/chat")

        logger.info("remote.soft_failure", path="/chat", reason="unknown_turn_shape",
                    keys=sorted(data.keys()))
        raise SoftFailure("/chat answered with an unrecognised payload")


def _with_message_defaults(item):
    """Give a wire message a client id and a receive time when the server omits them."""
    if not isinstance(item, dict):
        return item
    return {"id": new_local_id("message"), "timestamp": utc_now(), **item}


def _parse(model, data, path: str):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.info("remote.soft_failure", path=path, reason="invalid_payload", error=str(e))
        raise SoftFailure(f"{path} answered with an invalid payload") from e


def _is_absolute(path: str) -> bool:
    return path.startswith(("http://", "https://", "data:"))
