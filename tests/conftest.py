import os
import sys

import pytest
from fastapi.testclient import TestClient

PASSWORD = "Password123!"


@pytest.fixture(scope="session")
def test_db_url(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("db") / "test_studyvault.db"
    return f"sqlite:///{db_path}"


@pytest.fixture(scope="session")
def storage_dir(tmp_path_factory):
    return tmp_path_factory.mktemp("storage")


@pytest.fixture(scope="session")
def app(test_db_url, storage_dir):
    os.environ["DATABASE_URL"] = test_db_url
    os.environ["STORAGE_BACKEND"] = "local"
    os.environ["STORAGE_DIR"] = str(storage_dir)
    os.environ["LOG_TO_FILE"] = "false"
    os.environ["RATE_LIMIT_ENABLED"] = "false"
    os.environ["ANTHROPIC_API_KEY"] = ""
    os.environ["SENDGRID_API_KEY"] = ""
    os.environ["SMTP_USER"] = ""

    # Settings, engine and limiter are built at import time; start from a clean slate
    for module_name in list(sys.modules):
        if module_name in ("app", "main") or module_name.startswith("app."):
            del sys.modules[module_name]

    import main as main_module
    from app.services.storage import get_storage

    get_storage.cache_clear()

    app_instance = main_module.app
    app_instance.router.on_startup.clear()
    app_instance.router.on_shutdown.clear()
    return app_instance


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
def make_user(db_session):
    """Create (or fetch) a user with the shared test password."""
    from app.core.security import get_password_hash
    from app.models.user import User, UserRole

    def _make(email, role=UserRole.STUDENT, full_name="Test User", is_active=True):
        user = db_session.query(User).filter(User.email == email).first()
        if user:
            return user
        user = User(
            email=email,
            full_name=full_name,
            role=role,
            is_active=is_active,
            hashed_password=get_password_hash(PASSWORD),
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def auth_headers(client):
    def _headers(email, password=PASSWORD):
        resp = client.post("/api/auth/login", data={"username": email, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _headers


@pytest.fixture()
def student(make_user):
    return make_user("student@test.com", full_name="Sam Student")


@pytest.fixture()
def admin_user(make_user):
    from app.models.user import UserRole
    return make_user("admin@test.com", role=UserRole.ADMIN, full_name="Ada Admin")


@pytest.fixture()
def make_resource(db_session, app):
    """Insert a resource row and store a file for it."""
    from app.models.resource import Resource
    from app.services.resource_service import build_object_key, get_or_create_course
    from app.services.storage import get_storage

    def _make(
        uploader,
        course_code="CS 201",
        title="Sample notes",
        resource_type="note",
        status="approved",
        year=None,
        semester=None,
        file_name="notes.pdf",
        data=b"%PDF-1.4 sample",
        verified=False,
    ):
        key = build_object_key(course_code, uploader.id, file_name)
        get_storage().put(key, data, "application/pdf")
        course = get_or_create_course(db_session, course_code)
        resource = Resource(
            course_id=course.id,
            title=title,
            resource_type=resource_type,
            year=year,
            semester=semester,
            file_path=key,
            file_name=file_name,
            file_size=len(data),
            content_type="application/pdf",
            status=status,
            verified=verified,
            uploaded_by_user_id=uploader.id,
        )
        db_session.add(resource)
        db_session.commit()
        db_session.refresh(resource)
        return resource

    return _make
