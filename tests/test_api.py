"""Tests for the operator queue API."""

from datetime import datetime, timedelta
from unittest.mock import Mock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from stream_notifier.api.deps import get_db_session, get_queue_store
from stream_notifier.main import app
from stream_notifier.services.queue_store import QueueStoreError


def draft_payload(**overrides) -> dict:
    payload = {
        "user_id": "user-1",
        "notification_type": "stream_online",
        "message": "<b>streamer</b> is live!",
        "destination_type": "telegram",
        "destination_id": "12345",
        "content": {"title": "Speedrun"},
    }
    payload.update(overrides)
    return payload


# ============================================================================
# Health
# ============================================================================

class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


# ============================================================================
# Queue Endpoints
# ============================================================================

class TestQueueEndpoints:
    """Tests for /api/queue endpoints."""

    def test_enqueue(self, client: TestClient):
        """POST creates a pending task with a default deadline."""
        response = client.post("/api/queue/tasks", json=draft_payload())

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["attempts"] == 0
        assert body["notification_type"] == "stream_online"
        created = datetime.fromisoformat(body["created_at"])
        expires = datetime.fromisoformat(body["expires_at"])
        assert expires - created == timedelta(seconds=300)

    def test_enqueue_validation(self, client: TestClient):
        """Invalid drafts are rejected."""
        assert client.post("/api/queue/tasks", json=draft_payload(max_attempts=0)).status_code == 422
        assert client.post("/api/queue/tasks", json=draft_payload(destination_type="slack")).status_code == 422
        assert client.post("/api/queue/tasks", json=draft_payload(message="")).status_code == 422

    def test_enqueue_deadline_before_first_attempt(self, client: TestClient):
        """A deadline before the first attempt is a bad request."""
        now = datetime(2026, 10, 19, 12, 0, 0)
        payload = draft_payload(
            next_attempt_at=now.isoformat(),
            expires_at=(now - timedelta(minutes=1)).isoformat(),
        )

        assert client.post("/api/queue/tasks", json=payload).status_code == 400

    def test_enqueue_mixed_naive_and_offset_times(self, client: TestClient):
        """Naive and offset timestamps are compared and stored as UTC."""
        payload = draft_payload(
            next_attempt_at="2026-10-19T12:00:00",
            expires_at="2026-10-19T12:05:00Z",
        )

        response = client.post("/api/queue/tasks", json=payload)

        assert response.status_code == 201
        body = response.json()
        assert datetime.fromisoformat(body["next_attempt_at"]) == datetime(2026, 10, 19, 12, 0, 0)
        assert datetime.fromisoformat(body["expires_at"]) == datetime(2026, 10, 19, 12, 5, 0)

    def test_enqueue_offset_deadline_before_first_attempt(self, client: TestClient):
        """13:59+02:00 is 11:59 UTC, before a 12:00 UTC first attempt."""
        payload = draft_payload(
            next_attempt_at="2026-10-19T12:00:00",
            expires_at="2026-10-19T13:59:00+02:00",
        )

        assert client.post("/api/queue/tasks", json=payload).status_code == 400

    def test_get_task(self, client: TestClient):
        """GET by id returns the task."""
        task_id = client.post("/api/queue/tasks", json=draft_payload()).json()["id"]

        response = client.get(f"/api/queue/tasks/{task_id}")

        assert response.status_code == 200
        assert response.json()["id"] == task_id

    def test_get_missing_task(self, client: TestClient):
        """Unknown ids are 404."""
        response = client.get(f"/api/queue/tasks/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["detail"] == "Task not found"

    def test_list_tasks(self, client: TestClient):
        """Listing filters by user and status."""
        client.post("/api/queue/tasks", json=draft_payload(user_id="a"))
        client.post("/api/queue/tasks", json=draft_payload(user_id="a"))
        client.post("/api/queue/tasks", json=draft_payload(user_id="b"))

        response = client.get("/api/queue/tasks", params={"user_id": "a", "status": "pending"})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert {t["user_id"] for t in body["tasks"]} == {"a"}

        assert client.get("/api/queue/tasks", params={"status": "dead"}).json()["total"] == 0

    def test_stats(self, client: TestClient):
        """Stats report counts per status."""
        client.post("/api/queue/tasks", json=draft_payload())
        client.post("/api/queue/tasks", json=draft_payload())

        response = client.get("/api/queue/stats")

        assert response.status_code == 200
        assert response.json() == {
            "pending": 2,
            "processing": 0,
            "succeeded": 0,
            "dead": 0,
            "total": 2,
        }

    def test_store_failure_is_503(self, client: TestClient):
        """Storage outages are reported as 503."""
        failing = Mock()
        failing.count_by_status.side_effect = QueueStoreError(
            "count_by_status", OperationalError("SELECT", {}, Exception("connection refused"))
        )
        app.dependency_overrides[get_queue_store] = lambda: failing

        response = client.get("/api/queue/stats")

        assert response.status_code == 503
        assert "count_by_status" in response.json()["detail"]


# ============================================================================
# Pytest Fixtures
# ============================================================================

@pytest.fixture
def db_session():
    """Create a test database session."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        yield session


@pytest.fixture
def client(db_session: Session):
    """Test client bound to the in-memory database."""
    app.dependency_overrides[get_db_session] = lambda: db_session
    yield TestClient(app)
    app.dependency_overrides.clear()
