import pytest
from fastapi.testclient import TestClient

from auth.auth import get_google_credentials, get_optional_google_credentials
from fakes import PPTX_MIME, make_pptx, quiz_block, sample_notes, session_cookie, signed_in_session, text_runs
from main import app
from services import gemini_service, google_service, quiz_service
from services.audit_log import get_audit_log
from services.errors import GenerationFailure
from services.upload_store import get_upload_store

LECTURE = make_pptx({1: text_runs("Mitochondria are the powerhouse of the cell", "They produce ATP")})
QUIZ_TEXT = "\n\n".join(quiz_block(n) for n in range(1, 6))


@pytest.fixture
def client(store, audit):
    app.dependency_overrides[get_upload_store] = lambda: store
    app.dependency_overrides[get_audit_log] = lambda: audit
    app.dependency_overrides[get_google_credentials] = lambda: object()
    app.dependency_overrides[get_optional_google_credentials] = lambda: None
    with TestClient(app, cookies={"session": session_cookie(signed_in_session())}) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def ai_ok(monkeypatch):
    async def fake_notes(text):
        return sample_notes()

    async def fake_quiz(text):
        return QUIZ_TEXT

    monkeypatch.setattr(gemini_service, "generate_structured_notes", fake_notes)
    monkeypatch.setattr(quiz_service, "generate_quiz_text", fake_quiz)


def upload(client, data=LECTURE, name="lecture.pptx", content_type=PPTX_MIME, classroom_id="course-42"):
    form = {"classroomId": classroom_id} if classroom_id else {}
    return client.post("/api/upload/process", files={"file": (name, data, content_type)}, data=form)


def test_root(client):
    assert client.get("/").json() == {"message": "Classroom Notes Backend"}


def test_process_upload_success(client, store, audit, ai_ok):
    response = upload(client)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["status"] == "completed"
    assert body["notes"]["title"] == "Photosynthesis"
    assert len(body["questions"]) == 5
    assert body["questions"][0]["correctAnswer"] == "B"
    assert body["job"]["postedToClassroom"] == {
        "notes": False,
        "questions": False,
        "notesPostId": None,
        "questionsPostId": None,
        "notesClaimedAt": None,
        "questionsClaimedAt": None,
    }
    assert store.docs[body["uploadId"]]["teacher"] == "teacher-1"


def test_process_upload_reports_extraction_failure(client, store, ai_ok):
    response = upload(client, data=make_pptx({1: text_runs("tiny")}))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["status"] == "failed"
    assert body["errorKind"] == "ExtractionFailure"
    assert body["error"]
    assert store.docs[body["uploadId"]]["status"] == "failed"


def test_process_upload_reports_generation_failure(client, monkeypatch):
    async def unavailable(text):
        raise GenerationFailure("Failed to get notes from AI: 503")

    monkeypatch.setattr(gemini_service, "generate_structured_notes", unavailable)

    body = upload(client).json()

    assert body["success"] is False
    assert body["errorKind"] == "GenerationFailure"


def test_process_upload_requires_file_and_classroom(client, store):
    assert upload(client, classroom_id=None).status_code == 400
    assert client.post("/api/upload/process", data={"classroomId": "course-42"}).status_code == 400
    assert store.docs == {}


def test_process_upload_rejects_disallowed_mime_type(client, store):
    response = upload(client, data=b"hello", name="notes.txt", content_type="text/plain")
    assert response.status_code == 400
    assert store.docs == {}


def test_process_upload_rejects_legacy_powerpoint(client, store, audit):
    response = upload(client, data=b"\xd0\xcf\x11\xe0", name="deck.ppt", content_type="application/vnd.ms-powerpoint")

    assert response.status_code == 400
    assert store.docs == {}
    assert audit.actions("failure") == ["file_upload"]


def test_uploads_are_owner_only(client, store, ai_ok):
    mine = upload(client).json()["uploadId"]

    listing = client.get("/api/uploads").json()["uploads"]
    assert [item["id"] for item in listing] == [mine]
    assert client.get(f"/api/uploads/{mine}").json()["upload"]["fileName"] == "lecture.pptx"
    assert client.get("/api/uploads/missing").status_code == 404

    store.docs[mine]["teacher"] = "teacher-2"
    assert client.get(f"/api/uploads/{mine}").status_code == 403


def test_notes_preview(client, store, ai_ok):
    response = client.post("/api/notes/generate", files={"file": ("lecture.pptx", LECTURE, PPTX_MIME)})

    assert response.status_code == 200
    assert response.json()["notes"]["title"] == "Photosynthesis"
    assert store.docs == {}


def test_notes_preview_error_codes(client, audit, monkeypatch):
    unsupported = client.post("/api/notes/generate", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert unsupported.status_code == 400

    unreadable = client.post("/api/notes/generate", files={"file": ("deck.pptx", b"not a zip", PPTX_MIME)})
    assert unreadable.status_code == 422

    async def unavailable(text):
        raise GenerationFailure("Failed to get notes from AI: 503")

    monkeypatch.setattr(gemini_service, "generate_structured_notes", unavailable)
    failed = client.post("/api/notes/generate", files={"file": ("lecture.pptx", LECTURE, PPTX_MIME)})
    assert failed.status_code == 502

    assert audit.actions("failure") == ["ai_processing"] * 3
    assert [entry["metadata"]["errorKind"] for entry in audit.entries] == [
        "UnsupportedFileKind",
        "ExtractionFailure",
        "GenerationFailure",
    ]
    assert all(entry["metadata"]["preview"] for entry in audit.entries)
    assert audit.entries[2]["error"] == "Failed to get notes from AI: 503"


def test_classroom_list(client, audit, monkeypatch):
    async def fake_courses(creds):
        return [{"id": "course-42", "name": "Biology", "section": "Period 2", "ownerId": "x"}]

    monkeypatch.setattr(google_service, "list_active_courses", fake_courses)

    body = client.get("/api/classroom/list").json()

    assert body["courses"] == [{"id": "course-42", "name": "Biology", "section": "Period 2", "alternateLink": None}]
    assert audit.actions("success") == ["classroom_fetch"]


def test_post_to_classroom(client, store, audit, ai_ok, monkeypatch):
    posted = []

    async def fake_material(creds, course_id, body):
        posted.append(("material", course_id, body))
        return "material-1"

    async def fake_assignment(creds, course_id, body):
        posted.append(("assignment", course_id, body))
        return "coursework-1"

    monkeypatch.setattr(google_service, "create_course_material", fake_material)
    monkeypatch.setattr(google_service, "create_course_assignment", fake_assignment)
    upload_id = upload(client).json()["uploadId"]

    response = client.post("/api/classroom/post", json={"uploadId": upload_id, "dueDate": "2025-03-14"})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "notesPosted": True,
        "questionsPosted": True,
        "notesPostId": "material-1",
        "questionsPostId": "coursework-1",
        "errors": {},
    }
    assert [(kind, course) for kind, course, _ in posted] == [("material", "course-42"), ("assignment", "course-42")]


def test_post_to_classroom_status_codes(client, store, ai_ok):
    assert client.post("/api/classroom/post", json={"uploadId": "missing"}).status_code == 404
    assert client.post("/api/classroom/post", json={}).status_code == 422

    failed_id = upload(client, data=make_pptx({1: text_runs("tiny")})).json()["uploadId"]
    assert client.post("/api/classroom/post", json={"uploadId": failed_id}).status_code == 409

    completed_id = upload(client).json()["uploadId"]
    bad_date = client.post("/api/classroom/post", json={"uploadId": completed_id, "dueDate": "someday"})
    assert bad_date.status_code == 422

    store.docs[completed_id]["teacher"] = "teacher-2"
    assert client.post("/api/classroom/post", json={"uploadId": completed_id}).status_code == 403


def test_logs_pagination(client, audit):
    for action in ("auth_login", "file_upload", "ai_processing"):
        audit.entries.append({
            "teacher": "teacher-1",
            "classroomId": None,
            "action": action,
            "status": "success",
            "error": None,
            "metadata": {},
            "createdAt": None,
        })

    body = client.get("/api/logs", params={"limit": 2}).json()
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert [entry["action"] for entry in body["logs"]] == ["ai_processing", "file_upload"]

    filtered = client.get("/api/logs", params={"action": "auth_login"}).json()
    assert filtered["pagination"]["total"] == 1

    assert client.get("/api/logs", params={"limit": 0}).status_code == 422


def test_logout_clears_the_session(client, audit):
    response = client.post("/auth/logout")

    assert response.status_code == 200
    assert audit.actions() == ["auth_logout"]
    assert "session=null" in response.headers.get("set-cookie", "")
