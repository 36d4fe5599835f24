import logging
from datetime import datetime
from typing import Any, Callable

from google.cloud.firestore import Query, async_transactional
from google.cloud.firestore_v1.base_query import FieldFilter

from config import PUBLISH_CLAIM_TTL_SECONDS
from schemas.notes import QuizQuestion, StructuredNotes
from schemas.upload import PUBLISH_ARTIFACTS, UploadJob, UploadStatus
from services.firestore_client import get_firestore, utcnow

logger = logging.getLogger(__name__)

UPLOADS_COLLECTION = "uploads"

Predicate = Callable[[dict[str, Any]], bool]


def apply_field_paths(data: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """Applies Firestore-style dotted field paths ("a.b") to a plain dict copy."""
    updated = {key: (dict(value) if isinstance(value, dict) else value) for key, value in data.items()}
    for path, value in changes.items():
        *parents, leaf = path.split(".")
        target = updated
        for part in parents:
            target = target.setdefault(part, {})
        target[leaf] = value
    return updated


def _check_artifact(artifact: str) -> None:
    if artifact not in PUBLISH_ARTIFACTS:
        raise ValueError(f"Unknown publish artifact: {artifact}")


def _is_processing(data: dict[str, Any]) -> bool:
    return data.get("status") == UploadStatus.PROCESSING.value


def _posted(data: dict[str, Any]) -> dict[str, Any]:
    return data.get("postedToClassroom") or {}


class UploadStore:
    """Upload records in Firestore.

    Every state change goes through ``update_if``, a read-check-write done
    inside one Firestore transaction, so lifecycle rules (no exit from a
    terminal state, publish flags never reset, one publisher per artifact)
    hold even when two requests touch the same upload.
    """

    def __init__(self, db):
        self.db = db

    # --- Storage primitives ---

    async def _insert(self, data: dict[str, Any]) -> str:
        doc_ref = self.db.collection(UPLOADS_COLLECTION).document()
        await doc_ref.set(data)
        return doc_ref.id

    async def _fetch(self, upload_id: str) -> dict[str, Any] | None:
        snapshot = await self.db.collection(UPLOADS_COLLECTION).document(upload_id).get()
        return snapshot.to_dict() if snapshot.exists else None

    async def _find_by_teacher(self, teacher_id: str, limit: int) -> list[tuple[str, dict[str, Any]]]:
        query = (
            self.db.collection(UPLOADS_COLLECTION)
            .where(filter=FieldFilter("teacher", "==", teacher_id))
            .order_by("createdAt", direction=Query.DESCENDING)
            .limit(limit)
        )
        return [(snapshot.id, snapshot.to_dict()) async for snapshot in query.stream()]

    async def update_if(self, upload_id: str, predicate: Predicate, changes: dict[str, Any]) -> dict[str, Any] | None:
        """Applies ``changes`` only if ``predicate`` holds for the current document.

        Returns the updated document, or None when the upload is missing or
        the predicate rejected it.
        """
        doc_ref = self.db.collection(UPLOADS_COLLECTION).document(upload_id)
        transaction = self.db.transaction()

        @async_transactional
        async def _update_in_transaction(transaction):
            snapshot = await doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                return None
            data = snapshot.to_dict()
            if not predicate(data):
                return None
            transaction.update(doc_ref, changes)
            return apply_field_paths(data, changes)

        return await _update_in_transaction(transaction)

    # --- Upload lifecycle ---

    async def create_upload(
        self,
        teacher_id: str,
        classroom_id: str,
        file_name: str,
        file_type: str,
        file_url: str = "",
        drive_file_id: str | None = None,
    ) -> UploadJob:
        now = utcnow()
        data = {
            "teacher": teacher_id,
            "classroomId": classroom_id,
            "fileName": file_name,
            "fileType": file_type,
            "fileUrl": file_url,
            "driveFileId": drive_file_id,
            "notes": {},
            "questions": [],
            "postedToClassroom": {
                "notes": False,
                "questions": False,
                "notesPostId": None,
                "questionsPostId": None,
                "notesClaimedAt": None,
                "questionsClaimedAt": None,
            },
            "status": UploadStatus.PROCESSING.value,
            "error": None,
            "errorKind": None,
            "createdAt": now,
            "updatedAt": now,
        }
        upload_id = await self._insert(data)
        logger.info("Created upload %s (%s) for teacher %s.", upload_id, file_name, teacher_id)
        return UploadJob.from_document(upload_id, data)

    async def get_upload(self, upload_id: str) -> UploadJob | None:
        data = await self._fetch(upload_id)
        return UploadJob.from_document(upload_id, data) if data is not None else None

    async def list_uploads(self, teacher_id: str, limit: int = 50) -> list[UploadJob]:
        rows = await self._find_by_teacher(teacher_id, limit)
        return [UploadJob.from_document(upload_id, data) for upload_id, data in rows]

    async def complete_upload(
        self, upload_id: str, notes: StructuredNotes, questions: list[QuizQuestion]
    ) -> UploadJob | None:
        """processing -> completed. Returns None if the upload already left processing."""
        updated = await self.update_if(
            upload_id,
            _is_processing,
            {
                "status": UploadStatus.COMPLETED.value,
                "notes": notes.model_dump(),
                "questions": [question.model_dump(by_alias=True) for question in questions],
                "error": None,
                "errorKind": None,
                "updatedAt": utcnow(),
            },
        )
        return UploadJob.from_document(upload_id, updated) if updated is not None else None

    async def fail_upload(self, upload_id: str, error: str, error_kind: str) -> UploadJob | None:
        """processing -> failed. Notes and questions are left untouched."""
        updated = await self.update_if(
            upload_id,
            _is_processing,
            {
                "status": UploadStatus.FAILED.value,
                "error": error or "Unknown error",
                "errorKind": error_kind,
                "updatedAt": utcnow(),
            },
        )
        return UploadJob.from_document(upload_id, updated) if updated is not None else None

    # --- Publish bookkeeping ---

    async def claim_publish(
        self, upload_id: str, artifact: str, ttl_seconds: int = PUBLISH_CLAIM_TTL_SECONDS
    ) -> datetime | None:
        """Reserves one artifact for publishing.

        Succeeds only for a completed upload whose artifact is not posted yet
        and not claimed by another request within the last ``ttl_seconds``.
        Returns the claim timestamp, which identifies this claim when it is
        released, or None if the artifact could not be claimed.
        """
        _check_artifact(artifact)
        now = utcnow()

        def _claimable(data: dict[str, Any]) -> bool:
            if data.get("status") != UploadStatus.COMPLETED.value:
                return False
            posted = _posted(data)
            if posted.get(artifact):
                return False
            claimed_at = posted.get(f"{artifact}ClaimedAt")
            return claimed_at is None or (now - claimed_at).total_seconds() >= ttl_seconds

        updated = await self.update_if(
            upload_id,
            _claimable,
            {f"postedToClassroom.{artifact}ClaimedAt": now, "updatedAt": now},
        )
        return now if updated is not None else None

    async def finish_publish(self, upload_id: str, artifact: str, post_id: str) -> UploadJob | None:
        _check_artifact(artifact)
        updated = await self.update_if(
            upload_id,
            lambda data: not _posted(data).get(artifact),
            {
                f"postedToClassroom.{artifact}": True,
                f"postedToClassroom.{artifact}PostId": post_id,
                f"postedToClassroom.{artifact}ClaimedAt": None,
                "updatedAt": utcnow(),
            },
        )
        return UploadJob.from_document(upload_id, updated) if updated is not None else None

    async def release_publish(self, upload_id: str, artifact: str, claimed_at: datetime) -> bool:
        """Drops a claim, but only the one taken at ``claimed_at``.

        A claim that went stale and was taken over by another request stays
        with that request.
        """
        _check_artifact(artifact)

        def _still_ours(data: dict[str, Any]) -> bool:
            posted = _posted(data)
            return not posted.get(artifact) and posted.get(f"{artifact}ClaimedAt") == claimed_at

        updated = await self.update_if(
            upload_id,
            _still_ours,
            {f"postedToClassroom.{artifact}ClaimedAt": None, "updatedAt": utcnow()},
        )
        return updated is not None


def get_upload_store() -> UploadStore:
    return UploadStore(get_firestore())
