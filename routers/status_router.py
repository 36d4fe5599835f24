from fastapi import APIRouter, Request

from auth.session_gate import normalize_session

router = APIRouter()


@router.get("/api/session")
async def get_session_status(request: Request):
    """Shows what the server considers the current session. Tokens are never included."""
    identity = getattr(request.state, "identity", None) or normalize_session(request.session)
    if identity is None:
        return {"hasSession": False, "user": None}
    return {
        "hasSession": True,
        "user": {
            "userId": identity.user_id,
            "email": identity.email,
            "googleId": identity.google_id,
            "name": identity.name,
        },
    }
