from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from fixly.config import settings
from fixly.database import get_db
from fixly.main import app
from fixly.services.auth_service import auth_service
from fixly.utils.cache import browse_cache
from fixly.utils.performance import performance_monitor


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SETUP_KEY = "test-setup-key"


def job_payload(**overrides):
    payload = {
        "title": "Fix leaking kitchen sink",
        "description": "The kitchen sink has been leaking under the cabinet for a week.",
        "skills_required": ["Plumbing"],
        "budget": {"type": "fixed", "amount": 1500},
        "location": {"address": "12 MG Road", "city": "Pune", "state": "Maharashtra", "pincode": "411001"},
        "deadline": (datetime.now(timezone.utc) + timedelta(days=5)).isoformat(),
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "Fixly"
    path.mkdir()
    return path


@pytest.fixture
def test_db(data_dir):
    db_path = data_dir / "fixly.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    TestSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    from fixly.database import init_db
    init_db(db_path)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestSession
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def db(test_db):
    session = test_db()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def fresh_process_state():
    """Reset tokens, cached listings and counters between tests."""
    original = auth_service._active_tokens
    original_key = settings.admin_setup_key
    auth_service._active_tokens = {}
    settings.admin_setup_key = SETUP_KEY
    browse_cache.clear()
    performance_monitor.clear()
    yield
    auth_service._active_tokens = original
    settings.admin_setup_key = original_key
    browse_cache.clear()
    performance_monitor.clear()


@pytest.fixture
def client(test_db):
    return TestClient(app)


class Api:
    """Thin helper around the test client for signing up and acting as users."""

    payload = staticmethod(job_payload)

    def __init__(self, client):
        self.client = client

    def signup(self, username, role="hirer", password="password-123", path="/api/v1/auth/signup", **extra):
        r = self.client.post(path, json={
            "username": username,
            "name": username.title(),
            "email": f"{username}@example.com",
            "password": password,
            "role": role,
            "city": "Pune",
            "skills": ["plumbing"] if role == "fixer" else [],
            **extra,
        })
        assert r.status_code == 201, r.text
        r = self.client.post("/api/v1/auth/login", json={"username": username, "password": password})
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['token']}"}

    def admin(self, username="admin"):
        return self.signup(username, role="admin", path="/api/v1/auth/admin-setup", setup_key=SETUP_KEY)

    def post_job(self, headers, **overrides):
        r = self.client.post("/api/v1/jobs/post", json=job_payload(**overrides), headers=headers)
        assert r.status_code == 201, r.text
        return r.json()["id"]

    def apply(self, job_id, headers, amount=1400):
        return self.client.post(f"/api/v1/jobs/{job_id}/apply", json={
            "proposed_amount": amount,
            "cover_letter": "I have ten years of plumbing experience.",
        }, headers=headers)

    def accept(self, job_id, application_id, headers):
        return self.client.put(f"/api/v1/jobs/{job_id}", json={
            "action": "accept_application",
            "data": {"application_id": application_id},
        }, headers=headers)

    def assigned_job(self, hirer, fixer):
        """Post a job, apply as ``fixer`` and accept; returns the job id."""
        job_id = self.post_job(hirer)
        application_id = self.apply(job_id, fixer).json()["id"]
        r = self.accept(job_id, application_id, hirer)
        assert r.status_code == 200, r.text
        return job_id


@pytest.fixture
def api(client):
    return Api(client)


@pytest.fixture
def hirer(api):
    return api.signup("hirer_one", role="hirer")


@pytest.fixture
def fixer(api):
    return api.signup("fixer_one", role="fixer")
