from datetime import timedelta

import pytest

from config import PUBLISH_CLAIM_TTL_SECONDS
from fakes import FakeAuditLog, sample_notes
from services.firestore_client import utcnow
from services.upload_store import apply_field_paths


def test_apply_field_paths_updates_nested_copy():
    original = {"status": "completed", "postedToClassroom": {"notes": False, "questions": False}}

    updated = apply_field_paths(original, {"postedToClassroom.notes": True, "updatedAt": "now"})

    assert updated == {"status": "completed", "postedToClassroom": {"notes": True, "questions": False}, "updatedAt": "now"}
    assert original["postedToClassroom"]["notes"] is False


@pytest.mark.anyio
async def test_new_upload_starts_processing(store):
    job = await store.create_upload("teacher-1", "course-42", "deck.pptx", "pptx")

    assert job.status.value == "processing"
    assert job.notes is None
    assert job.questions == []
    assert not job.posted_to_classroom.notes and not job.posted_to_classroom.questions
    assert (await store.get_upload(job.id)) == job


@pytest.mark.anyio
async def test_list_uploads_is_newest_first_and_per_teacher(store):
    first = await store.create_upload("teacher-1", "c", "a.pdf", "pdf")
    await store.create_upload("teacher-2", "c", "b.pdf", "pdf")
    third = await store.create_upload("teacher-1", "c", "c.pdf", "pdf")

    assert [job.id for job in await store.list_uploads("teacher-1")] == [third.id, first.id]


@pytest.mark.anyio
async def test_publish_claims(store):
    job = await store.create_upload("teacher-1", "course-42", "deck.pptx", "pptx")
    # Nothing to publish until the job is completed
    assert not await store.claim_publish(job.id, "notes")

    await store.complete_upload(job.id, sample_notes(), [])
    assert await store.claim_publish(job.id, "notes")
    assert not await store.claim_publish(job.id, "notes")
    questions_claim = await store.claim_publish(job.id, "questions")
    assert questions_claim

    await store.finish_publish(job.id, "notes", "material-1")
    assert not await store.claim_publish(job.id, "notes", ttl_seconds=0)
    # Posted flags never go back to false
    assert await store.finish_publish(job.id, "notes", "material-2") is None
    assert store.docs[job.id]["postedToClassroom"]["notesPostId"] == "material-1"

    assert await store.release_publish(job.id, "questions", questions_claim)
    assert await store.claim_publish(job.id, "questions")


@pytest.mark.anyio
async def test_release_leaves_a_taken_over_claim_alone(store):
    job = await store.create_upload("teacher-1", "course-42", "deck.pptx", "pptx")
    await store.complete_upload(job.id, sample_notes(), [])

    # A first request claimed notes long enough ago for the claim to be stale
    first = utcnow() - timedelta(seconds=PUBLISH_CLAIM_TTL_SECONDS + 1)
    store.docs[job.id]["postedToClassroom"]["notesClaimedAt"] = first
    second = await store.claim_publish(job.id, "notes")
    assert second

    # The first request gives up late, after its claim was taken over
    assert not await store.release_publish(job.id, "notes", first)
    assert store.docs[job.id]["postedToClassroom"]["notesClaimedAt"] == second
    assert not await store.claim_publish(job.id, "notes")


def test_timestamps_are_timezone_aware():
    assert utcnow().tzinfo is not None


@pytest.mark.anyio
async def test_unknown_artifact_is_rejected(store):
    job = await store.create_upload("teacher-1", "course-42", "deck.pptx", "pptx")
    with pytest.raises(ValueError):
        await store.claim_publish(job.id, "slides")


@pytest.mark.anyio
async def test_missing_upload(store):
    assert await store.get_upload("nope") is None
    assert await store.fail_upload("nope", "boom", "ExtractionFailure") is None
    assert not await store.claim_publish("nope", "notes")


@pytest.mark.anyio
async def test_teacher_is_created_then_updated(teachers):
    teacher_id, created = await teachers.upsert_teacher("google-123", "Ada@School.edu", "Ada", "token-1", "refresh-1")
    assert created
    assert teachers.docs[teacher_id]["email"] == "ada@school.edu"

    same_id, created_again = await teachers.upsert_teacher("google-123", "ada@school.edu", "Ada L.", "token-2", None)
    assert same_id == teacher_id
    assert not created_again
    stored = teachers.docs[teacher_id]
    assert stored["accessToken"] == "token-2"
    assert stored["refreshToken"] == "refresh-1"
    assert stored["name"] == "Ada L."


@pytest.mark.anyio
async def test_audit_record_and_listing(audit):
    await audit.record("teacher-1", "file_upload", "success", classroom_id="course-42")
    await audit.record("teacher-1", "ai_processing", "failure", error="Could not extract meaningful text")
    await audit.record("teacher-1", "auth_login", "success")
    await audit.record("teacher-2", "auth_login", "success")

    entries, total = await audit.list_logs("teacher-1")
    assert total == 3
    assert [entry.action for entry in entries] == ["auth_login", "ai_processing", "file_upload"]

    failures, failure_total = await audit.list_logs("teacher-1", status="failure")
    assert failure_total == 1
    assert failures[0].error == "Could not extract meaningful text"

    page_two, _ = await audit.list_logs("teacher-1", limit=2, page=2)
    assert [entry.action for entry in page_two] == ["file_upload"]
    assert page_two[0].classroom_id == "course-42"


@pytest.mark.anyio
async def test_audit_rejects_unknown_actions(audit):
    await audit.record("teacher-1", "delete_everything", "success")
    await audit.record("teacher-1", "file_upload", "maybe")
    assert audit.entries == []


@pytest.mark.anyio
async def test_audit_write_failure_is_swallowed():
    audit = FakeAuditLog(fail_writes=True)
    await audit.record("teacher-1", "file_upload", "success")
    assert audit.entries == []
