from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Request, WebSocket, status
from pydantic import SecretStr

from pawtrack.config import Settings, get_settings

SESSION_USER_KEY = "user"


def _extract_bearer_token(headers) -> Optional[str]:
    header = headers.get("authorization") or ""
    if not header.lower().startswith("bearer "):
        return None
    token = header.split(" ", 1)[1].strip()
    return token or None


def _token_matches(token: Optional[str], expected: SecretStr | None) -> bool:
    if not token or expected is None:
        return False
    value = expected.get_secret_value().strip()
    return bool(value) and hmac.compare_digest(token.encode(), value.encode())


def check_credentials(settings: Settings, username: str, password: str) -> bool:
    user_ok = hmac.compare_digest(username.encode(), settings.admin_username.encode())
    password_ok = hmac.compare_digest(password.encode(), settings.admin_password.get_secret_value().encode())
    return user_ok and password_ok


def session_user(connection: Request | WebSocket) -> Optional[str]:
    if "session" not in connection.scope:
        return None
    return connection.session.get(SESSION_USER_KEY)


def require_viewer_auth(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> None:
    """Dashboard endpoints accept a logged-in session or the configured API token."""

    if session_user(request):
        return
    if _token_matches(_extract_bearer_token(request.headers), settings.api_token):
        return
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def require_station_auth(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> None:
    """Station endpoints are open unless an ingest token is configured."""

    if settings.ingest_token is None:
        return
    token = _extract_bearer_token(request.headers)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    if not _token_matches(token, settings.ingest_token):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")


def viewer_authorized(websocket: WebSocket, settings: Settings) -> bool:
    if not settings.ws_require_auth:
        return True
    if session_user(websocket):
        return True
    token = _extract_bearer_token(websocket.headers) or websocket.query_params.get("token")
    return _token_matches(token, settings.api_token)
