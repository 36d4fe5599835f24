import asyncio
import io
import logging
from datetime import datetime

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from schemas.upload import UploadJob
from services.errors import PublishFailure

logger = logging.getLogger(__name__)

# Assignments are due at the end of the chosen day
DUE_TIME = {"hours": 23, "minutes": 59}
POINTS_PER_QUESTION = 2
QUIZ_DESCRIPTION = "AI-generated quiz questions based on the uploaded material"


def get_google_drive_url(file_id: str | None) -> str:
    """Generates the web URL for a Drive file."""
    if not file_id:
        return ""
    return f"https://drive.google.com/file/d/{file_id}/view"


def _describe_http_error(error: HttpError) -> str:
    status = getattr(error.resp, "status", "?")
    return f"Google API error {status}: {error._get_reason()}"


# --- Drive ---

async def upload_source_file(creds: Credentials, file_name: str, content_type: str | None, data: bytes) -> dict:
    """Copies the uploaded document into the teacher's Drive.

    Returns the Drive file resource (id, name, webViewLink).
    """
    service = build("drive", "v3", credentials=creds, cache_discovery=False)
    media = MediaIoBaseUpload(io.BytesIO(data), mimetype=content_type or "application/octet-stream", resumable=False)
    request = service.files().create(
        body={"name": file_name},
        media_body=media,
        fields="id, name, webViewLink",
    )
    drive_file = await asyncio.to_thread(request.execute)
    logger.info("Stored source file '%s' in Drive as %s.", file_name, drive_file.get("id"))
    return drive_file


# --- Classroom request bodies ---

def due_date_fields(due_date: str | None) -> dict:
    """Translates an ISO date (or datetime) into Classroom dueDate/dueTime fields."""
    if not due_date:
        return {}
    try:
        parsed = datetime.fromisoformat(due_date.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid due date: {due_date}") from e
    return {
        "dueDate": {"year": parsed.year, "month": parsed.month, "day": parsed.day},
        "dueTime": dict(DUE_TIME),
    }


def drive_attachments(job: UploadJob) -> list[dict]:
    if not job.drive_file_id:
        return []
    return [{
        "driveFile": {
            "driveFile": {"id": job.drive_file_id, "title": job.file_name},
            "shareMode": "VIEW",
        }
    }]


def build_material_body(job: UploadJob, description: str) -> dict:
    body = {
        "title": f"Notes: {job.file_name}",
        "description": description,
        "state": "PUBLISHED",
    }
    materials = drive_attachments(job)
    if materials:
        body["materials"] = materials
    return body


def build_assignment_body(job: UploadJob, description: str, due_date: str | None = None) -> dict:
    body = {
        "title": f"Quiz: {job.file_name}",
        "description": f"{QUIZ_DESCRIPTION}\n\n{description}".strip(),
        "workType": "ASSIGNMENT",
        "state": "PUBLISHED",
        "maxPoints": len(job.questions) * POINTS_PER_QUESTION,
        "submissionModificationMode": "MODIFIABLE_UNTIL_TURNED_IN",
        **due_date_fields(due_date),
    }
    materials = drive_attachments(job)
    if materials:
        body["materials"] = materials
    return body


# --- Classroom calls ---

async def list_active_courses(creds: Credentials) -> list[dict]:
    """Lists the ACTIVE courses the signed-in teacher teaches."""
    service = build("classroom", "v1", credentials=creds, cache_discovery=False)
    courses, page_token = [], None
    while True:
        request = service.courses().list(
            courseStates=["ACTIVE"],
            teacherId="me",
            pageSize=100,
            pageToken=page_token,
        )
        resp = await asyncio.to_thread(request.execute)
        courses.extend(resp.get("courses", []))
        page_token = resp.get("nextPageToken")
        if not page_token:
            break
    return courses


async def create_course_material(creds: Credentials, course_id: str, body: dict) -> str:
    """Posts a courseWorkMaterial and returns its id."""
    service = build("classroom", "v1", credentials=creds, cache_discovery=False)
    request = service.courses().courseWorkMaterials().create(courseId=course_id, body=body)
    try:
        material = await asyncio.to_thread(request.execute)
    except HttpError as error:
        logger.error("❌ Failed to post notes to course %s: %s", course_id, error)
        raise PublishFailure("notes", _describe_http_error(error)) from error
    logger.info("✅ Posted notes material %s to course %s.", material.get("id"), course_id)
    return material["id"]


async def create_course_assignment(creds: Credentials, course_id: str, body: dict) -> str:
    """Posts an ASSIGNMENT courseWork item and returns its id."""
    service = build("classroom", "v1", credentials=creds, cache_discovery=False)
    request = service.courses().courseWork().create(courseId=course_id, body=body)
    try:
        coursework = await asyncio.to_thread(request.execute)
    except HttpError as error:
        logger.error("❌ Failed to post quiz to course %s: %s", course_id, error)
        raise PublishFailure("questions", _describe_http_error(error)) from error
    logger.info("✅ Posted quiz assignment %s to course %s.", coursework.get("id"), course_id)
    return coursework["id"]
