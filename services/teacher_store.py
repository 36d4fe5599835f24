import logging
from typing import Any

from google.cloud.firestore_v1.base_query import FieldFilter

from services.firestore_client import get_firestore, utcnow

logger = logging.getLogger(__name__)

TEACHERS_COLLECTION = "teachers"


class TeacherStore:
    """Teacher accounts, keyed internally by Firestore id and externally by Google id."""

    def __init__(self, db):
        self.db = db

    async def _find_by_google_id(self, google_id: str) -> tuple[str, dict[str, Any]] | None:
        query = (
            self.db.collection(TEACHERS_COLLECTION)
            .where(filter=FieldFilter("googleId", "==", google_id))
            .limit(1)
        )
        async for snapshot in query.stream():
            return snapshot.id, snapshot.to_dict()
        return None

    async def _insert(self, data: dict[str, Any]) -> str:
        doc_ref = self.db.collection(TEACHERS_COLLECTION).document()
        await doc_ref.set(data)
        return doc_ref.id

    async def _update(self, teacher_id: str, changes: dict[str, Any]) -> None:
        await self.db.collection(TEACHERS_COLLECTION).document(teacher_id).update(changes)

    async def upsert_teacher(
        self,
        google_id: str,
        email: str,
        name: str,
        access_token: str | None,
        refresh_token: str | None,
    ) -> tuple[str, bool]:
        """Creates the teacher on first sign-in, refreshes stored tokens afterwards.

        Returns (teacher_id, created).
        """
        now = utcnow()
        existing = await self._find_by_google_id(google_id)
        if existing is None:
            teacher_id = await self._insert({
                "name": name or "",
                "email": email.lower(),
                "googleId": google_id,
                "accessToken": access_token or "",
                "refreshToken": refresh_token or "",
                "classrooms": [],
                "createdAt": now,
                "updatedAt": now,
            })
            logger.info("New teacher created: %s", teacher_id)
            return teacher_id, True

        teacher_id, data = existing
        changes = {
            "accessToken": access_token or "",
            "name": name or data.get("name", ""),
            "email": email.lower(),
            "updatedAt": now,
        }
        # Google only returns a refresh token on the consent screen
        if refresh_token:
            changes["refreshToken"] = refresh_token
        await self._update(teacher_id, changes)
        logger.info("Existing teacher updated: %s", teacher_id)
        return teacher_id, False


def get_teacher_store() -> TeacherStore:
    return TeacherStore(get_firestore())
