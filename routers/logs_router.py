import math

from fastapi import APIRouter, Depends, Query

from auth.session_gate import SessionIdentity, require_identity
from services.audit_log import AuditLog, get_audit_log

router = APIRouter()


@router.get("/api/logs")
async def get_logs(
    action: str | None = None,
    status: str | None = None,
    limit: int = Query(50, ge=1, le=100),
    page: int = Query(1, ge=1),
    identity: SessionIdentity = Depends(require_identity),
    audit: AuditLog = Depends(get_audit_log),
):
    """The caller's audit trail, newest first."""
    entries, total = await audit.list_logs(identity.user_id, action=action, status=status, limit=limit, page=page)
    return {
        "logs": [entry.model_dump(mode="json", by_alias=True) for entry in entries],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }
