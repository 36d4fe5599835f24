import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from google.oauth2.credentials import Credentials

from auth.auth import get_optional_google_credentials
from auth.session_gate import SessionIdentity, require_identity
from config import ALLOWED_UPLOAD_MIME_TYPES
from schemas.upload import UploadJob
from services import upload_service
from services.audit_log import AuditLog, get_audit_log
from services.errors import UnsupportedFileKind
from services.upload_store import UploadStore, get_upload_store

logger = logging.getLogger(__name__)

router = APIRouter()


def _declared_type(file: UploadFile) -> str | None:
    if not file.content_type:
        return None
    return file.content_type.split(";")[0].strip().lower()


async def load_owned_upload(upload_id: str, store: UploadStore, identity: SessionIdentity) -> UploadJob:
    job = await store.get_upload(upload_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Upload not found")
    if job.teacher != identity.user_id:
        raise HTTPException(status_code=403, detail="Not allowed to access this upload")
    return job


# --- Process an uploaded document ---
@router.post("/api/upload/process")
async def process_upload(
    file: UploadFile | None = File(None),
    classroomId: str | None = Form(None),
    identity: SessionIdentity = Depends(require_identity),
    creds: Credentials | None = Depends(get_optional_google_credentials),
    store: UploadStore = Depends(get_upload_store),
    audit: AuditLog = Depends(get_audit_log),
):
    """Stores the upload, then runs extraction, notes and quiz generation in the request."""
    if file is None or not file.filename or not classroomId:
        raise HTTPException(status_code=400, detail="File and classroom ID are required")

    content_type = _declared_type(file)
    if content_type not in ALLOWED_UPLOAD_MIME_TYPES:
        raise HTTPException(status_code=400, detail="Invalid file type. Only PDF and PowerPoint files are allowed.")

    data = await file.read()
    logger.info("Processing '%s' (%d bytes) for classroom %s", file.filename, len(data), classroomId)
    try:
        outcome = await upload_service.process_upload(
            store, audit, identity, classroomId, file.filename, content_type, data, creds=creds
        )
    except UnsupportedFileKind as e:
        raise HTTPException(status_code=400, detail=e.message)
    except Exception:
        raise HTTPException(status_code=500, detail="Failed to process file")

    job = outcome.job
    if not outcome.succeeded:
        return {
            "success": False,
            "uploadId": job.id,
            "status": job.status.value,
            "errorKind": outcome.error.kind,
            "error": outcome.error.message,
        }
    return {
        "success": True,
        "uploadId": job.id,
        "status": job.status.value,
        "notes": job.notes.model_dump() if job.notes else None,
        "questions": [question.model_dump(by_alias=True) for question in job.questions],
        "job": job.to_response(),
    }


# --- Read back uploads ---
@router.get("/api/uploads")
async def list_uploads(
    limit: int = 50,
    identity: SessionIdentity = Depends(require_identity),
    store: UploadStore = Depends(get_upload_store),
):
    limit = max(1, min(limit, 100))
    jobs = await store.list_uploads(identity.user_id, limit=limit)
    return {"uploads": [job.to_response() for job in jobs]}


@router.get("/api/uploads/{upload_id}")
async def get_upload(
    upload_id: str,
    identity: SessionIdentity = Depends(require_identity),
    store: UploadStore = Depends(get_upload_store),
):
    job = await load_owned_upload(upload_id, store, identity)
    return {"upload": job.to_response()}
