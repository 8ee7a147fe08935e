import os
import tempfile
import uuid

import pytest
from fastapi.testclient import TestClient

# Settings are read once at import time, so the environment must be in place
# before anything under app/ is imported.
_TEST_ROOT = tempfile.mkdtemp(prefix="study_assistant_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_ROOT, 'test_study_assistant.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_TEST_ROOT, "uploads")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_TO_FILE"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-for-the-pytest-suite-0123456789"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["ADMIN_EMAILS"] = "promoted-admin@test.com"

PASSWORD = "Password123!"


@pytest.fixture(scope="session")
def app():
    import main as main_module
    from app.db.database import Base, engine

    Base.metadata.create_all(bind=engine)
    return main_module.app


@pytest.fixture()
def db_session(app):
    from app.db.database import SessionLocal
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def upload_dir(app):
    from pathlib import Path
    from app.core.config import settings

    path = Path(settings.upload_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture()
def make_user(db_session):
    """Factory for users with unique emails; extra kwargs become column values."""
    from app.core.security import get_password_hash
    from app.models.user import User, UserRole

    hashed = get_password_hash(PASSWORD)

    def _make(prefix="user", role=UserRole.USER, **fields):
        user = User(
            email=f"{prefix}-{uuid.uuid4().hex[:8]}@test.com",
            full_name=fields.pop("full_name", f"{prefix.title()} Tester"),
            role=role,
            hashed_password=hashed,
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_document(db_session):
    """Factory for documents that also books their size against the owner, like an upload does."""
    from app.models.document import Document
    from app.services.quota_service import record_upload

    def _make(user, file_size=1000, **fields):
        document = Document(
            user_id=user.id,
            filename=f"{uuid.uuid4().hex}-notes.pdf",
            original_name=fields.pop("original_name", "notes.pdf"),
            file_type=fields.pop("file_type", "application/pdf"),
            file_size=file_size,
            language=fields.pop("language", "english"),
            summary=fields.pop("summary", "A summary."),
            flashcards=fields.pop("flashcards", [{"question": "Q1?", "answer": "A1"}, {"question": "Q2?", "answer": "A2"}]),
            exam_questions=fields.pop("exam_questions", [{
                "type": "short-answer", "question": "Why?", "options": [],
                "correctAnswer": "Because", "explanation": "",
            }]),
            **fields,
        )
        db_session.add(document)
        db_session.flush()
        record_upload(db_session, user.id, file_size)
        db_session.commit()
        db_session.refresh(document)
        db_session.refresh(user)
        return document

    return _make


@pytest.fixture()
def auth_headers(app):
    """Bearer headers for a user, minted directly so tests do not hit the login rate limit."""
    from app.core.security import create_access_token

    def _headers(user) -> dict:
        token = create_access_token(user.id)
        return {"Authorization": f"Bearer {token}"}

    return _headers
