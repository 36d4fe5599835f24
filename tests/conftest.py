import os
import sys

import pytest

# Ensure repo root on sys.path for imports like `services...`
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from auth.session_gate import SessionIdentity  # noqa: E402
from fakes import FakeAuditLog, FakeTeacherStore, FakeUploadStore  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store():
    return FakeUploadStore()


@pytest.fixture
def audit():
    return FakeAuditLog()


@pytest.fixture
def teachers():
    return FakeTeacherStore()


@pytest.fixture
def identity():
    return SessionIdentity(
        user_id="teacher-1",
        email="ada@school.edu",
        google_id="google-123",
        name="Ada Lovelace",
        access_token="ya29.token",
    )
