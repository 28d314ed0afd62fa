import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

TEST_DB_FILE = "test_classroom.db"
TEST_DB_URL = f"sqlite:///./{TEST_DB_FILE}"

# must be set before classroom.core.config is imported
os.environ.setdefault("DATABASE_URL", TEST_DB_URL)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from classroom.core.deps import get_blob_store, get_db, get_live_push  # noqa: E402
from classroom.core.security import create_access_token  # noqa: E402
from classroom.db.base import Base  # noqa: E402
from classroom.main import app  # noqa: E402
from classroom.models.task import Task  # noqa: E402
from classroom.models.team import Team, TeamMember  # noqa: E402
from classroom.models.user import User  # noqa: E402
from classroom.services.blob_store import LocalBlobStore  # noqa: E402

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

IDS = SimpleNamespace(
    student=f"{0x51:024x}",
    student2=f"{0x52:024x}",
    outsider=f"{0x53:024x}",
    faculty=f"{0xf1:024x}",
    faculty2=f"{0xf2:024x}",
    admin=f"{0xad:024x}",
    team=f"{0x7e:024x}",
    task=f"{0x7a:024x}",
)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class RecordingLivePush:
    def __init__(self):
        self.events = []

    def publish(self, recipient_id, event):
        self.events.append((recipient_id, event))
        return True


def auth_header(user_id: str) -> dict:
    token = create_access_token({"sub": user_id})
    return {"Authorization": f"Bearer {token}"}


def attachment(name: str = "essay.pdf", blob_id: str = "submission_0001") -> dict:
    return {
        "blob_id": blob_id,
        "url": f"http://testserver/blobs/{blob_id}",
        "secure_url": f"https://testserver/blobs/{blob_id}",
        "original_name": name,
        "size_bytes": 2048,
        "format": name.rpartition(".")[2],
        "status": "completed",
    }


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create a fresh schema once for the whole test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists(TEST_DB_FILE):
        os.remove(TEST_DB_FILE)


@pytest.fixture(autouse=True)
def seed_data():
    """Seed a clean minimal dataset for each test."""
    db = TestingSessionLocal()
    try:
        # Clear tables (child -> parent)
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()

        db.add_all(
            [
                User(id=IDS.student, email="sam.student@school.edu", full_name="Sam Student", role="student"),
                User(id=IDS.student2, email="kim.student@school.edu", full_name="Kim Student", role="student"),
                User(id=IDS.outsider, email="lee.outsider@school.edu", full_name="Lee Outsider", role="student"),
                User(id=IDS.faculty, email="pat.faculty@school.edu", full_name="Pat Faculty", role="faculty"),
                User(id=IDS.faculty2, email="alex.faculty@school.edu", full_name="Alex Faculty", role="faculty"),
                User(id=IDS.admin, email="root.admin@school.edu", full_name="Root Admin", role="admin"),
            ]
        )
        db.commit()

        team = Team(id=IDS.team, name="Team Alpha", faculty_id=IDS.faculty)
        team.members = [
            TeamMember(student_id=IDS.student),
            TeamMember(student_id=IDS.student2),
        ]
        db.add(team)
        db.commit()

        # future due date so submissions are on time
        db.add(
            Task(
                id=IDS.task,
                faculty_id=IDS.faculty,
                title="T1: Literature review",
                due_at=datetime.now(timezone.utc) + timedelta(days=1),
                max_points=100,
                max_attempts=1,
                teams=[team],
            )
        )
        db.commit()

        yield
    finally:
        db.close()


@pytest.fixture()
def ids():
    return IDS


@pytest.fixture()
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def live_push():
    return RecordingLivePush()


@pytest.fixture()
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs", "http://testserver/blobs")


@pytest.fixture()
def client(live_push, blob_store):
    """Test client that uses the test DB session and in-memory ports via dependency override."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_live_push] = lambda: live_push
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def update_task(**fields):
    db = TestingSessionLocal()
    try:
        task = db.get(Task, IDS.task)
        for key, value in fields.items():
            setattr(task, key, value)
        db.commit()
    finally:
        db.close()
