from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from schemas.notes import QuizQuestion, StructuredNotes


class FileKind(str, Enum):
    PDF = "pdf"
    PPTX = "pptx"
    UNKNOWN = "unknown"


class UploadStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {UploadStatus.COMPLETED, UploadStatus.FAILED}

PUBLISH_ARTIFACTS = ("notes", "questions")


class PublishState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    notes: bool = False
    questions: bool = False
    notes_post_id: str | None = Field(default=None, alias="notesPostId")
    questions_post_id: str | None = Field(default=None, alias="questionsPostId")
    notes_claimed_at: datetime | None = Field(default=None, alias="notesClaimedAt")
    questions_claimed_at: datetime | None = Field(default=None, alias="questionsClaimedAt")


class UploadJob(BaseModel):
    """One uploaded document and everything derived from it."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    teacher: str
    classroom_id: str = Field(alias="classroomId")
    file_name: str = Field(alias="fileName")
    file_type: str = Field(alias="fileType")
    file_url: str = Field(default="", alias="fileUrl")
    drive_file_id: str | None = Field(default=None, alias="driveFileId")
    notes: StructuredNotes | None = None
    questions: list[QuizQuestion] = Field(default_factory=list)
    posted_to_classroom: PublishState = Field(default_factory=PublishState, alias="postedToClassroom")
    status: UploadStatus = UploadStatus.PROCESSING
    error: str | None = None
    error_kind: str | None = Field(default=None, alias="errorKind")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "UploadJob":
        data = dict(data)
        # An unprocessed job stores notes as an empty map
        if not data.get("notes"):
            data["notes"] = None
        return cls.model_validate({**data, "id": doc_id})

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    teacher: str | None = None
    classroom_id: str | None = Field(default=None, alias="classroomId")
    action: str
    status: str
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = Field(default=None, alias="createdAt")


class PublishResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    notes_posted: bool = Field(default=False, alias="notesPosted")
    questions_posted: bool = Field(default=False, alias="questionsPosted")
    notes_post_id: str | None = Field(default=None, alias="notesPostId")
    questions_post_id: str | None = Field(default=None, alias="questionsPostId")
    errors: dict[str, str] = Field(default_factory=dict)
