import asyncio
import logging
import urllib.parse
from datetime import datetime

import google.auth.transport.requests
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from auth.session_gate import SessionIdentity, discard_identity, require_identity
from config import CLIENT_SECRETS_FILE, FRONTEND_URL, GOOGLE_CLIENT_ID, REDIRECT_URI, SCOPES
from services.audit_log import AuditLog, get_audit_log
from services.teacher_store import TeacherStore, get_teacher_store

logger = logging.getLogger(__name__)

router = APIRouter()


def _frontend_redirect(path: str = "", **params) -> RedirectResponse:
    url = urllib.parse.urljoin(FRONTEND_URL, path.lstrip("/"))
    if params:
        url = f"{url}#{urllib.parse.urlencode(params)}"
    return RedirectResponse(url)


def credentials_to_session(creds: Credentials) -> dict:
    """Essential, serializable credential info for the signed session cookie."""
    return {
        "token": creds.token,
        "refresh_token": creds.refresh_token,
        "token_uri": creds.token_uri,
        "client_id": creds.client_id,
        "client_secret": creds.client_secret,
        "scopes": creds.scopes,
        # Store expiry as ISO format string for JSON serialization
        "expiry": creds.expiry.isoformat() if creds.expiry else None,
    }


def credentials_from_session(session_creds: dict) -> Credentials:
    session_creds = dict(session_creds)
    expiry = session_creds.pop("expiry", None)
    creds = Credentials(**session_creds)
    if expiry:
        # google-auth compares expiry against a naive UTC datetime
        creds.expiry = datetime.fromisoformat(expiry).replace(tzinfo=None)
    return creds


async def get_google_credentials(
    request: Request, identity: SessionIdentity = Depends(require_identity)
) -> Credentials:
    """Dependency returning the caller's Google credentials, refreshed if expired."""
    session_creds = request.session.get("google_credentials")
    if not session_creds:
        raise HTTPException(status_code=401, detail="Not authenticated")

    creds = credentials_from_session(session_creds)
    if creds.expired and creds.refresh_token:
        logger.info("Token expired for user %s, attempting refresh...", identity.user_id)
        try:
            await asyncio.to_thread(creds.refresh, google.auth.transport.requests.Request())
        except Exception as refresh_error:
            logger.error("Error refreshing token for user %s: %s", identity.user_id, refresh_error)
            # If refresh fails, force re-authentication
            discard_identity(request.session)
            raise HTTPException(status_code=401, detail="Token expired, refresh failed. Please login again.")
        request.session["google_credentials"] = credentials_to_session(creds)
        logger.info("Token refreshed successfully for user %s.", identity.user_id)
    return creds


async def get_optional_google_credentials(
    request: Request, identity: SessionIdentity = Depends(require_identity)
) -> Credentials | None:
    """Like get_google_credentials, but None instead of 401 when Google access is unavailable."""
    if not request.session.get("google_credentials"):
        return None
    try:
        return await get_google_credentials(request, identity)
    except HTTPException:
        return None


def _build_flow(state: str | None = None) -> Flow:
    return Flow.from_client_secrets_file(
        CLIENT_SECRETS_FILE,
        scopes=SCOPES,
        redirect_uri=REDIRECT_URI,
        state=state,
    )


# --- Start OAuth2 Login ---
@router.get("/login")
async def login(request: Request, callbackUrl: str | None = None):
    if not GOOGLE_CLIENT_ID or not REDIRECT_URI:
        raise HTTPException(status_code=500, detail="Google Client ID or Redirect URI not configured.")

    flow = _build_flow()
    authorization_url, state = flow.authorization_url(
        access_type="offline",
        include_granted_scopes="true",
        prompt="consent",
    )
    request.session["oauth_state"] = state
    # Only relative paths are honoured after login
    if callbackUrl and callbackUrl.startswith("/") and not callbackUrl.startswith("//"):
        request.session["post_login_path"] = callbackUrl
    return RedirectResponse(authorization_url)


# --- Handle OAuth2 Callback ---
@router.get("/oauth2callback")
async def oauth2callback(
    request: Request,
    teachers: TeacherStore = Depends(get_teacher_store),
    audit: AuditLog = Depends(get_audit_log),
):
    """Handles the redirect from Google after user authentication."""
    if not GOOGLE_CLIENT_ID or not REDIRECT_URI:
        raise HTTPException(status_code=500, detail="Google Client ID or Redirect URI not configured.")

    code = request.query_params.get("code")
    state = request.session.pop("oauth_state", None)
    if not code or not state or request.query_params.get("state") != state:
        return _frontend_redirect("auth/error", error="invalid_callback", error_description="Missing code or state.")

    flow = _build_flow(state=state)
    try:
        await asyncio.to_thread(flow.fetch_token, code=code)
    except Exception as e:
        error_detail = str(e)
        if getattr(e, "response", None) is not None:
            try:
                error_detail = e.response.json().get("error_description", error_detail)
            except ValueError:
                pass
        logger.error("❌ Error fetching token: %s", error_detail)
        return _frontend_redirect("auth/error", error="token_fetch_failed", error_description=error_detail)

    credentials = flow.credentials
    id_token_value = getattr(credentials, "id_token", None)
    if not credentials.token or not id_token_value:
        return _frontend_redirect(
            "auth/error", error="missing_tokens", error_description="Failed to retrieve access or ID token after fetch."
        )

    # Verify ID Token and get the Google account id (sub)
    try:
        id_info = await asyncio.to_thread(
            id_token.verify_oauth2_token, id_token_value, google_requests.Request(), GOOGLE_CLIENT_ID
        )
    except ValueError as e:
        logger.error("❌ ID Token verification failed: %s", e)
        return _frontend_redirect("auth/error", error="id_token_verify_failed", error_description=str(e))

    google_id, email = id_info.get("sub"), id_info.get("email")
    if not google_id or not email:
        return _frontend_redirect("auth/error", error="incomplete_profile", error_description="Google account has no id or email.")

    teacher_id, created = await teachers.upsert_teacher(
        google_id=google_id,
        email=email,
        name=id_info.get("name", ""),
        access_token=credentials.token,
        refresh_token=credentials.refresh_token,
    )

    request.session.update({
        "user_id": teacher_id,
        "email": email.lower(),
        "google_id": google_id,
        "name": id_info.get("name", ""),
        "google_credentials": credentials_to_session(credentials),
    })
    await audit.record(
        teacher_id,
        "auth_signup" if created else "auth_login",
        "success",
        metadata={"isNewUser": created, "provider": "google"},
    )
    logger.info("✅ Signed in teacher %s", teacher_id)

    return _frontend_redirect(request.session.pop("post_login_path", "dashboard"))


@router.post("/logout")
async def logout(
    request: Request,
    identity: SessionIdentity = Depends(require_identity),
    audit: AuditLog = Depends(get_audit_log),
):
    await audit.record(identity.user_id, "auth_logout", "success")
    request.session.clear()
    return {"message": "Successfully logged out"}
