import logging

from fastapi import APIRouter, Depends, HTTPException
from google.oauth2.credentials import Credentials
from googleapiclient.errors import HttpError
from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.auth import get_google_credentials
from auth.session_gate import SessionIdentity, require_identity
from services import google_service, publish_service
from services.audit_log import AuditLog, get_audit_log
from services.upload_store import UploadStore, get_upload_store

logger = logging.getLogger(__name__)

router = APIRouter()


class PublishRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    upload_id: str = Field(alias="uploadId", min_length=1)
    due_date: str | None = Field(default=None, alias="dueDate")

    @field_validator("due_date")
    @classmethod
    def check_due_date(cls, value: str | None) -> str | None:
        google_service.due_date_fields(value)
        return value or None


# --- List Classrooms ---
@router.get("/api/classroom/list")
async def list_classrooms(
    identity: SessionIdentity = Depends(require_identity),
    creds: Credentials = Depends(get_google_credentials),
    audit: AuditLog = Depends(get_audit_log),
):
    try:
        courses = await google_service.list_active_courses(creds)
    except HttpError as e:
        logger.error("Error fetching classrooms for %s: %s", identity.user_id, e)
        await audit.record(identity.user_id, "classroom_fetch", "failure", error=str(e))
        raise HTTPException(status_code=502, detail="Failed to fetch classrooms")

    await audit.record(identity.user_id, "classroom_fetch", "success", metadata={"count": len(courses)})
    return {
        "courses": [
            {
                "id": course.get("id"),
                "name": course.get("name"),
                "section": course.get("section"),
                "alternateLink": course.get("alternateLink"),
            }
            for course in courses
        ]
    }


# --- Post to Classroom ---
@router.post("/api/classroom/post")
async def post_to_classroom(
    payload: PublishRequest,
    identity: SessionIdentity = Depends(require_identity),
    creds: Credentials = Depends(get_google_credentials),
    store: UploadStore = Depends(get_upload_store),
    audit: AuditLog = Depends(get_audit_log),
):
    """Posts notes as material and the quiz as an assignment. Each side succeeds or fails on its own."""
    try:
        result = await publish_service.publish_upload(
            store, audit, identity, creds, payload.upload_id, payload.due_date
        )
    except publish_service.UploadNotFound:
        raise HTTPException(status_code=404, detail="Upload not found")
    except publish_service.UploadAccessDenied:
        raise HTTPException(status_code=403, detail="Not allowed to publish this upload")
    except publish_service.UploadNotPublishable as e:
        raise HTTPException(status_code=409, detail=str(e))

    return result.model_dump(by_alias=True)
