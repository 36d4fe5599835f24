import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from auth.session_gate import SessionIdentity, require_identity
from services import upload_service
from services.audit_log import AuditLog, get_audit_log
from services.errors import (
    ExtractionFailure,
    GenerationFailure,
    MalformedResponse,
    PipelineError,
    UnsupportedFileKind,
)

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_BY_ERROR = (
    (UnsupportedFileKind, 400),
    (ExtractionFailure, 422),
    (GenerationFailure, 502),
    (MalformedResponse, 502),
)


@router.post("/api/notes/generate")
async def generate_notes(
    file: UploadFile | None = File(None),
    identity: SessionIdentity = Depends(require_identity),
    audit: AuditLog = Depends(get_audit_log),
):
    """Notes preview for one document. Nothing is stored except the audit entry of a failure."""
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    data = await file.read()
    try:
        notes = await upload_service.preview_notes(file.filename, file.content_type, data)
    except PipelineError as e:
        status_code = next((code for error, code in STATUS_BY_ERROR if isinstance(e, error)), None)
        if status_code is None:
            raise
        logger.warning("Notes preview of %s for %s failed: %s", file.filename, identity.user_id, e.message)
        await audit.record(
            identity.user_id, "ai_processing", "failure",
            error=e.message,
            metadata={"fileName": file.filename, "preview": True, "errorKind": e.kind},
        )
        raise HTTPException(status_code=status_code, detail=e.message)

    return {"success": True, "notes": notes.model_dump()}
