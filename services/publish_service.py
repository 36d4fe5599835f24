import logging
from typing import Awaitable, Callable

from google.oauth2.credentials import Credentials

from auth.session_gate import SessionIdentity
from schemas.notes import render_notes_text, render_quiz_text
from schemas.upload import PublishResult, UploadJob, UploadStatus
from services import google_service
from services.audit_log import AuditLog
from services.errors import PublishFailure
from services.upload_store import UploadStore

logger = logging.getLogger(__name__)

AUDIT_ACTIONS = {
    "notes": "post_notes_to_classroom",
    "questions": "post_questions_to_classroom",
}


class UploadNotFound(Exception):
    pass


class UploadAccessDenied(Exception):
    pass


class UploadNotPublishable(Exception):
    pass


async def _publish_artifact(
    store: UploadStore,
    audit: AuditLog,
    identity: SessionIdentity,
    job: UploadJob,
    artifact: str,
    post: Callable[[], Awaitable[str]],
) -> tuple[bool, str | None, str | None]:
    """Claims, posts and records one artifact. Returns (posted, post_id, error).

    Store errors are reported for this artifact only, so the other artifact
    still gets its turn.
    """
    try:
        claimed_at = await store.claim_publish(job.id, artifact)
        if claimed_at is None:
            current = await store.get_upload(job.id) or job
    except Exception as e:
        logger.error("Could not claim %s of upload %s for publishing: %s", artifact, job.id, e)
        return False, None, f"Could not reserve {artifact} for publishing: {e}"

    if claimed_at is None:
        state = current.posted_to_classroom
        if getattr(state, artifact):
            return True, getattr(state, f"{artifact}_post_id"), None
        logger.info("Publishing %s for upload %s is already in progress elsewhere.", artifact, job.id)
        return False, None, "Publishing already in progress"

    try:
        post_id = await post()
    except Exception as e:
        failure = e if isinstance(e, PublishFailure) else PublishFailure(artifact, str(e) or e.__class__.__name__)
        try:
            await store.release_publish(job.id, artifact, claimed_at)
        except Exception as release_error:
            # The claim expires after its TTL
            logger.error("Could not release %s claim on upload %s: %s", artifact, job.id, release_error)
        await audit.record(
            identity.user_id, AUDIT_ACTIONS[artifact], "failure",
            classroom_id=job.classroom_id, error=failure.message, metadata={"uploadId": job.id},
        )
        logger.warning("Publishing %s for upload %s failed: %s", artifact, job.id, failure.message)
        return False, None, failure.message

    try:
        await store.finish_publish(job.id, artifact, post_id)
    except Exception as e:
        message = f"Posted to Classroom but could not record it: {e}"
        logger.error("Publishing %s for upload %s: %s", artifact, job.id, message)
        await audit.record(
            identity.user_id, AUDIT_ACTIONS[artifact], "failure",
            classroom_id=job.classroom_id, error=message, metadata={"uploadId": job.id, "postId": post_id},
        )
        return True, post_id, message

    await audit.record(
        identity.user_id, AUDIT_ACTIONS[artifact], "success",
        classroom_id=job.classroom_id, metadata={"uploadId": job.id, "postId": post_id},
    )
    return True, post_id, None


async def publish_upload(
    store: UploadStore,
    audit: AuditLog,
    identity: SessionIdentity,
    creds: Credentials,
    upload_id: str,
    due_date: str | None = None,
) -> PublishResult:
    """Publishes an upload's notes (as material) and quiz (as assignment) to its classroom.

    The two posts are independent: either can fail without stopping the
    other, and a side that is already posted is never posted again.
    """
    job = await store.get_upload(upload_id)
    if job is None:
        raise UploadNotFound(upload_id)
    if job.teacher != identity.user_id:
        raise UploadAccessDenied(upload_id)
    if job.status != UploadStatus.COMPLETED:
        raise UploadNotPublishable(f"Upload is {job.status.value}, only completed uploads can be posted")

    state = job.posted_to_classroom
    result = PublishResult(
        notes_posted=state.notes,
        questions_posted=state.questions,
        notes_post_id=state.notes_post_id,
        questions_post_id=state.questions_post_id,
    )

    if job.notes is not None and not state.notes:
        body = google_service.build_material_body(job, render_notes_text(job.notes))
        posted, post_id, error = await _publish_artifact(
            store, audit, identity, job, "notes",
            lambda: google_service.create_course_material(creds, job.classroom_id, body),
        )
        result.notes_posted, result.notes_post_id = posted, post_id
        if error:
            result.errors["notes"] = error

    if job.questions and not state.questions:
        body = google_service.build_assignment_body(job, render_quiz_text(job.questions), due_date)
        posted, post_id, error = await _publish_artifact(
            store, audit, identity, job, "questions",
            lambda: google_service.create_course_assignment(creds, job.classroom_id, body),
        )
        result.questions_posted, result.questions_post_id = posted, post_id
        if error:
            result.errors["questions"] = error

    result.success = not result.errors
    return result
