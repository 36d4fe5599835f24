import asyncio
import logging
from dataclasses import dataclass

from google.oauth2.credentials import Credentials

from auth.session_gate import SessionIdentity
from config import DRIVE_UPLOADS_ENABLED
from schemas.upload import FileKind, UploadJob
from services import gemini_service, google_service, quiz_service
from services.audit_log import AuditLog
from services.errors import PipelineError, UnsupportedFileKind
from services.parsers import detect_file_kind, extract_text
from services.upload_store import UploadStore

logger = logging.getLogger(__name__)


@dataclass
class ProcessOutcome:
    job: UploadJob
    error: PipelineError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def stored_file_type(kind: FileKind) -> str:
    return "pdf" if kind == FileKind.PDF else "pptx"


async def _store_source_file(
    creds: Credentials | None, file_name: str, content_type: str | None, data: bytes
) -> tuple[str, str | None]:
    """Best-effort copy of the source into Drive. Returns (file_url, drive_file_id)."""
    if creds is None or not DRIVE_UPLOADS_ENABLED:
        return "", None
    try:
        drive_file = await google_service.upload_source_file(creds, file_name, content_type, data)
    except Exception as e:
        logger.warning("Could not store '%s' in Drive, continuing without it: %s", file_name, e)
        return "", None
    drive_file_id = drive_file.get("id")
    return drive_file.get("webViewLink") or google_service.get_google_drive_url(drive_file_id), drive_file_id


async def process_upload(
    store: UploadStore,
    audit: AuditLog,
    identity: SessionIdentity,
    classroom_id: str,
    file_name: str,
    content_type: str | None,
    data: bytes,
    creds: Credentials | None = None,
) -> ProcessOutcome:
    """Runs one upload through extraction, notes, quiz and persistence.

    The job starts in ``processing`` and ends in exactly one of ``completed``
    (notes and questions stored) or ``failed`` (error stored, nothing partial).

    Raises:
        UnsupportedFileKind: before any record is created.
    """
    kind = detect_file_kind(file_name, content_type)
    if kind == FileKind.UNKNOWN:
        error = UnsupportedFileKind("Unsupported file type. Upload a PDF or PPTX.")
        await audit.record(
            identity.user_id, "file_upload", "failure",
            classroom_id=classroom_id, error=error.message, metadata={"fileName": file_name},
        )
        raise error

    file_url, drive_file_id = await _store_source_file(creds, file_name, content_type, data)
    job = await store.create_upload(
        teacher_id=identity.user_id,
        classroom_id=classroom_id,
        file_name=file_name,
        file_type=stored_file_type(kind),
        file_url=file_url,
        drive_file_id=drive_file_id,
    )
    await audit.record(
        identity.user_id, "file_upload", "success",
        classroom_id=classroom_id, metadata={"uploadId": job.id, "fileName": file_name},
    )

    try:
        text = await asyncio.to_thread(extract_text, kind, data)
        notes = await gemini_service.generate_structured_notes(text)
        quiz_text = await quiz_service.generate_quiz_text(text)
        questions = quiz_service.parse_questions(quiz_text)
    except PipelineError as e:
        logger.warning("Upload %s failed with %s: %s", job.id, e.kind, e.message)
        failed = await store.fail_upload(job.id, e.message, e.kind)
        await audit.record(
            identity.user_id, "ai_processing", "failure",
            classroom_id=classroom_id, error=e.message, metadata={"uploadId": job.id, "errorKind": e.kind},
        )
        return ProcessOutcome(job=failed or job, error=e)
    except Exception as e:
        logger.exception("Unexpected error processing upload %s", job.id)
        await store.fail_upload(job.id, str(e) or e.__class__.__name__, "InternalError")
        await audit.record(
            identity.user_id, "ai_processing", "failure",
            classroom_id=classroom_id, error=str(e), metadata={"uploadId": job.id},
        )
        raise

    completed = await store.complete_upload(job.id, notes, questions)
    if completed is None:
        # Another request already moved the job to a terminal state
        logger.warning("Upload %s left processing before it could be completed.", job.id)
        completed = await store.get_upload(job.id) or job
    await audit.record(
        identity.user_id, "ai_processing", "success",
        classroom_id=classroom_id, metadata={"uploadId": job.id, "questionCount": len(questions)},
    )
    logger.info("Upload %s completed with %d questions.", job.id, len(questions))
    return ProcessOutcome(job=completed)


async def preview_notes(file_name: str, content_type: str | None, data: bytes):
    """Stateless notes generation: detect, extract, generate. Nothing is persisted."""
    kind = detect_file_kind(file_name, content_type)
    if kind == FileKind.UNKNOWN:
        raise UnsupportedFileKind("Unsupported file type. Upload a PDF or PPTX.")
    text = await asyncio.to_thread(extract_text, kind, data)
    return await gemini_service.generate_structured_notes(text)
