import logging
from typing import Any

from google.cloud.firestore import Query
from google.cloud.firestore_v1.base_query import FieldFilter

from schemas.upload import AuditLogEntry
from services.firestore_client import get_firestore, utcnow

logger = logging.getLogger(__name__)

LOGS_COLLECTION = "logs"

ACTIONS = {
    "file_upload",
    "ai_processing",
    "post_notes_to_classroom",
    "post_questions_to_classroom",
    "classroom_fetch",
    "auth_login",
    "auth_signup",
    "auth_logout",
}
STATUSES = {"success", "failure"}


class AuditLog:
    """Audit trail of teacher-visible actions, stored in the ``logs`` collection."""

    def __init__(self, db):
        self.db = db

    async def _insert(self, data: dict[str, Any]) -> str:
        doc_ref = self.db.collection(LOGS_COLLECTION).document()
        await doc_ref.set(data)
        return doc_ref.id

    async def _find(self, filters: dict[str, str], limit: int, offset: int) -> tuple[list[tuple[str, dict[str, Any]]], int]:
        query = self.db.collection(LOGS_COLLECTION)
        for field, value in filters.items():
            query = query.where(filter=FieldFilter(field, "==", value))

        count_result = await query.count().get()
        total = int(count_result[0][0].value)

        page = query.order_by("createdAt", direction=Query.DESCENDING).offset(offset).limit(limit)
        rows = [(snapshot.id, snapshot.to_dict()) async for snapshot in page.stream()]
        return rows, total

    async def record(
        self,
        teacher_id: str | None,
        action: str,
        status: str,
        classroom_id: str | None = None,
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Writes one audit entry. Best-effort: a failed write is logged, never raised."""
        if action not in ACTIONS or status not in STATUSES:
            logger.warning("Refusing audit entry with action=%s status=%s", action, status)
            return

        entry = {
            "teacher": teacher_id,
            "classroomId": classroom_id,
            "action": action,
            "status": status,
            "error": error,
            "metadata": metadata or {},
            "createdAt": utcnow(),
        }
        try:
            await self._insert(entry)
        except Exception as e:
            logger.error("Error logging %s/%s: %s", action, status, e)

    async def list_logs(
        self,
        teacher_id: str,
        action: str | None = None,
        status: str | None = None,
        limit: int = 50,
        page: int = 1,
    ) -> tuple[list[AuditLogEntry], int]:
        filters = {"teacher": teacher_id}
        if action:
            filters["action"] = action
        if status:
            filters["status"] = status

        rows, total = await self._find(filters, limit, (page - 1) * limit)
        return [AuditLogEntry.model_validate({**data, "id": log_id}) for log_id, data in rows], total


def get_audit_log() -> AuditLog:
    return AuditLog(get_firestore())
