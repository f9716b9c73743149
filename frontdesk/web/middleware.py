"""FastAPI middleware: request ID injection and signed browser identity cookies."""

from __future__ import annotations

import hashlib
import hmac
import secrets
import uuid
from typing import TYPE_CHECKING

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

logger = structlog.get_logger(__name__)

CLIENT_COOKIE = "fd_client"
SESSION_COOKIE = "fd_session"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Adds a unique X-Request-ID header to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response


class CookieSigner:
    """HMAC signing for opaque cookie ids: ``"<id>.<signature>"``."""

    def __init__(self, secret_key: str) -> None:
        self._secret = secret_key.encode()

    def _sign(self, data: str) -> str:
        return hmac.new(self._secret, data.encode(), hashlib.sha256).hexdigest()[:32]

    def sign(self, value: str) -> str:
        return f"{value}.{self._sign(value)}"

    def unsign(self, token: str | None) -> str | None:
        """Return the id inside a signed token, or None if missing or tampered."""
        if not token or "." not in token:
            return None
        value, signature = token.rsplit(".", 1)
        if not value or not hmac.compare_digest(signature, self._sign(value)):
            return None
        return value


class BrowserIdentityMiddleware(BaseHTTPMiddleware):
    """Attach a device id and a browser-session id to every request.

    ``fd_client`` is long-lived and scopes the persisted business selection;
    ``fd_session`` lasts for the browser session and selects the live
    session context. Missing or tampered cookies are replaced.
    """

    def __init__(
        self,
        app: object,
        secret_key: str,
        client_max_age: int = 60 * 60 * 24 * 365,
        secure: bool = False,
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._signer = CookieSigner(secret_key)
        self._client_max_age = client_max_age
        self._secure = secure

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        client_id = self._signer.unsign(request.cookies.get(CLIENT_COOKIE))
        session_id = self._signer.unsign(request.cookies.get(SESSION_COOKIE))
        new_client = client_id is None
        new_session = session_id is None
        if client_id is None:
            client_id = secrets.token_urlsafe(16)
        if session_id is None:
            session_id = secrets.token_urlsafe(16)

        request.state.client_id = client_id
        request.state.session_id = session_id
        structlog.contextvars.bind_contextvars(client_id=client_id)

        response = await call_next(request)

        if new_client:
            response.set_cookie(
                key=CLIENT_COOKIE,
                value=self._signer.sign(client_id),
                httponly=True,
                secure=self._secure,
                samesite="lax",
                max_age=self._client_max_age,
            )
        if new_session:
            # No max_age: expires with the browser session
            response.set_cookie(
                key=SESSION_COOKIE,
                value=self._signer.sign(session_id),
                httponly=True,
                secure=self._secure,
                samesite="lax",
            )
        return response
