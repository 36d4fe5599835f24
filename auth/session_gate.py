import logging
import urllib.parse
from collections.abc import Mapping
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from config import FRONTEND_URL

logger = logging.getLogger(__name__)

# Session keys that together make up a signed-in identity
IDENTITY_KEYS = ("user_id", "email", "google_id", "name", "google_credentials")

LOGIN_PATH = "/auth/login"
DASHBOARD_URL = urllib.parse.urljoin(FRONTEND_URL, "dashboard")

PROTECTED_PREFIXES = (
    "/dashboard",
    "/profile",
    "/classroom",
    "/api/classroom",
    "/api/upload",
    "/api/notes",
    "/api/logs",
    "/api/user",
)


class SessionIdentity(BaseModel):
    """The signed-in teacher as seen by every protected operation."""

    user_id: str
    email: str
    google_id: str
    name: str = ""
    access_token: str = ""


def _non_empty(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def normalize_session(raw: Mapping[str, Any] | None) -> SessionIdentity | None:
    """Returns the identity held by a session, or None.

    A session counts only when user id, email and Google id are all present;
    anything less is treated exactly like no session at all.
    """
    if not raw:
        return None
    user_id, email, google_id = raw.get("user_id"), raw.get("email"), raw.get("google_id")
    if not (_non_empty(user_id) and _non_empty(email) and _non_empty(google_id)):
        return None

    creds = raw.get("google_credentials")
    access_token = creds.get("token") if isinstance(creds, Mapping) else None
    return SessionIdentity(
        user_id=user_id,
        email=email,
        google_id=google_id,
        name=raw.get("name") or "",
        access_token=access_token or "",
    )


def discard_identity(session: dict) -> None:
    for key in IDENTITY_KEYS:
        session.pop(key, None)


def is_protected(path: str) -> bool:
    return path.startswith(PROTECTED_PREFIXES)


class SessionGateMiddleware(BaseHTTPMiddleware):
    """Resolves the session identity once per request and guards protected routes.

    Must sit inside SessionMiddleware so that ``request.session`` is available.
    """

    async def dispatch(self, request: Request, call_next):
        session = request.session
        identity = normalize_session(session)
        if identity is None and any(key in session for key in IDENTITY_KEYS):
            logger.warning("Discarding incomplete session for %s", request.url.path)
            discard_identity(session)
        request.state.identity = identity

        path = request.url.path
        if identity is None and is_protected(path):
            if path.startswith("/api/"):
                return JSONResponse({"error": "Unauthorized"}, status_code=status.HTTP_401_UNAUTHORIZED)
            login_url = f"{LOGIN_PATH}?{urllib.parse.urlencode({'callbackUrl': path})}"
            logger.info("Redirecting unauthenticated request from %s to login", path)
            return RedirectResponse(login_url)

        if identity is not None and path == LOGIN_PATH:
            return RedirectResponse(DASHBOARD_URL)

        return await call_next(request)


async def require_identity(request: Request) -> SessionIdentity:
    """Dependency returning the signed-in identity, 401 otherwise."""
    identity = getattr(request.state, "identity", None)
    if identity is None:
        identity = normalize_session(request.scope.get("session"))
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return identity
