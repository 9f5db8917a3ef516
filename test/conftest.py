import os
import tempfile

# Set test settings BEFORE importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = os.path.join(tempfile.gettempdir(), "juku_admin_test_logs")
os.environ["API_RATE_LIMIT_PER_MINUTE"] = "10000"
os.environ["IMPORT_RATE_CAPACITY"] = "1000"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key"
os.environ["BASE_URL"] = "https://juku.example.com"

import pytest
from fastapi.testclient import TestClient

from juku_admin.database import Base, SessionLocal, engine
from juku_admin.main import api_limiter, app
from juku_admin.models.branch import Branch
from juku_admin.utils.auth import create_access_token
from juku_admin.utils.import_lock import reset_import_locks
from juku_admin.utils.import_session import import_sessions
from juku_admin.utils.rate_limit import reset_rate_buckets
from juku_admin.utils.users import create_user


@pytest.fixture(autouse=True)
def reset_state():
    """Fresh schema and empty in-memory stores for every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    import_sessions.clear()
    reset_import_locks()
    reset_rate_buckets()
    api_limiter.reset()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def _make_branch(db, name: str) -> Branch:
    b = Branch(name=name)
    db.add(b)
    db.commit()
    db.refresh(b)
    return b


def _make_user(db, username: str, role: str, branch_ids=(), password: str = "password123"):
    u = create_user(db, username=username, password=password, role=role, branch_ids=list(branch_ids))
    db.commit()
    db.refresh(u)
    return u


def _auth_headers(user, branch_id=None) -> dict:
    headers = {"Authorization": f"Bearer {create_access_token({'sub': user.username})}"}
    if branch_id:
        headers["X-Selected-Branch"] = branch_id
    return headers


@pytest.fixture
def branch(db):
    return _make_branch(db, "本校")


@pytest.fixture
def admin_user(db, branch):
    return _make_user(db, "admin", "ADMIN", [branch.branch_id])


@pytest.fixture
def staff_user(db, branch):
    return _make_user(db, "staff1", "STAFF", [branch.branch_id])


@pytest.fixture
def admin_headers(admin_user, branch):
    return _auth_headers(admin_user, branch.branch_id)


@pytest.fixture
def staff_headers(staff_user, branch):
    return _auth_headers(staff_user, branch.branch_id)


@pytest.fixture
def make_branch(db):
    return lambda name: _make_branch(db, name)


@pytest.fixture
def make_user(db):
    def factory(username, role, branch_ids=(), password="password123"):
        return _make_user(db, username, role, branch_ids, password)

    return factory


@pytest.fixture
def headers_for():
    return _auth_headers
