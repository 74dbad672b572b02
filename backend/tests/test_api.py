"""
Tests for the HTTP surface: cron trigger, status, change feed and health.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from care_sync.api.dependencies import get_sync_orchestrator
from care_sync.core.config import Settings, get_settings
from care_sync.main import app
from care_sync.schemas.sync import ChangeEvent
from care_sync.services.member_sync import SyncOrchestrator
from care_sync.services.sync_status import SyncPhase, SyncStatusTracker

from conftest import NOW, FakeMemberStore, FakeSleep, make_tenant, member_payload


@pytest.fixture
def api(fake_api, client_factory):
    """TestClient with in-memory services on app.state."""
    tenant = make_tenant("Igreja", api_key="igreja")
    fake_api.members["igreja"] = [member_payload("m1", "Ana")]
    store = FakeMemberStore([tenant])
    tracker = SyncStatusTracker()
    session = AsyncMock()
    session_maker = MagicMock()
    session_maker.return_value.__aenter__.return_value = session

    app.state.member_store = store
    app.state.sync_status = tracker
    app.state.session_maker = session_maker

    api_settings = Settings(_env_file=None, APP_ENV="production", CRON_SECRET="s3cret")
    app.dependency_overrides[get_settings] = lambda: api_settings
    app.dependency_overrides[get_sync_orchestrator] = lambda: SyncOrchestrator(
        store=store,
        settings=api_settings,
        client_factory=client_factory,
        status_tracker=tracker,
        sleep=FakeSleep(),
    )

    client = TestClient(app)
    client.store = store
    client.tracker = tracker
    client.session = session
    yield client
    app.dependency_overrides.clear()


class TestCronSync:
    """Tests for POST /api/v1/cron/sync."""

    def test_requires_bearer_secret(self, api):
        assert api.post("/api/v1/cron/sync").status_code == 401
        assert api.post("/api/v1/cron/sync", headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_runs_sync_and_returns_result(self, api):
        response = api.post("/api/v1/cron/sync", headers={"Authorization": "Bearer s3cret"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["result"]["status"] == "completed"
        assert body["result"]["records_created"] == 1
        assert body["result"]["tenants"][0]["status"] == "completed"
        assert len(api.store.runs) == 1

    def test_rejects_concurrent_run(self, api):
        api.tracker.update_phase(SyncPhase.SYNCING, "busy")

        response = api.post("/api/v1/cron/sync", headers={"Authorization": "Bearer s3cret"})

        assert response.status_code == 409

    def test_unset_environment_without_secret_is_rejected(self, api, monkeypatch):
        monkeypatch.delenv("APP_ENV", raising=False)
        monkeypatch.delenv("CRON_SECRET", raising=False)
        app.dependency_overrides[get_settings] = lambda: Settings(_env_file=None)

        response = api.post("/api/v1/cron/sync")

        assert response.status_code == 401
        assert api.store.runs == []

    def test_development_mode_without_secret(self, api):
        app.dependency_overrides[get_settings] = lambda: Settings(_env_file=None, APP_ENV="development")

        response = api.post("/api/v1/cron/sync")

        assert response.status_code == 200


class TestSyncStatus:
    """Tests for GET /api/v1/sync-status."""

    def test_idle_status(self, api):
        body = api.get("/api/v1/sync-status").json()

        assert body["phase"] == "idle"
        assert body["is_running"] is False

    def test_status_after_run(self, api):
        api.post("/api/v1/cron/sync", headers={"Authorization": "Bearer s3cret"})

        body = api.get("/api/v1/sync-status").json()

        assert body["phase"] == "completed"
        assert body["result_status"] == "completed"
        assert body["progress"]["members_fetched"] == 1


class TestChangeFeed:
    """Tests for the change feed endpoints."""

    def test_list_and_acknowledge(self, api):
        api.post("/api/v1/cron/sync", headers={"Authorization": "Bearer s3cret"})

        pending = api.get("/api/v1/changes/unprocessed").json()
        assert [event["change_type"] for event in pending] == ["person.created"]

        event_id = pending[0]["id"]
        assert api.post(f"/api/v1/changes/{event_id}/processed").status_code == 204
        assert api.get("/api/v1/changes/unprocessed").json() == []

    def test_unknown_event_is_404(self, api):
        api.store.events.append(ChangeEvent(
            person_id=make_tenant("x").id,
            change_type="person.created",
            old_value=None,
            new_value=None,
            urgency_score=6,
            detected_at=NOW,
        ))

        response = api.post("/api/v1/changes/00000000-0000-0000-0000-000000000000/processed")

        assert response.status_code == 404

    def test_limit_is_validated(self, api):
        assert api.get("/api/v1/changes/unprocessed?limit=0").status_code == 422


class TestHealth:
    """Tests for GET /health."""

    def test_healthy(self, api):
        body = api.get("/health").json()

        assert body["status"] == "healthy"
        assert body["database_connected"] is True
        assert body["environment"] == "production"

    def test_database_down(self, api):
        api.session.execute.side_effect = RuntimeError("connection refused")

        body = api.get("/health").json()

        assert body["status"] == "unhealthy"
        assert body["database_connected"] is False
