from __future__ import annotations

import time
from datetime import datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mediabridge.api.routes import router
from mediabridge.config import Config, set_config
from mediabridge.core.models import CollectionSpec, LibraryRef, SyncPhase, SyncResult, SyncStatus
from mediabridge.core.orchestrator import SyncOrchestrator, get_orchestrator
from mediabridge.db.database import init_db
from mediabridge.db.history import record_sync_run

from fakes import FakeSource, FakeTarget, movie


@pytest.fixture()
def orchestrator(config: Config) -> SyncOrchestrator:
    set_config(config)
    source = FakeSource(
        libraries=[LibraryRef(id="1", title="Movies"), LibraryRef(id="2", title="Shows", kind="show")],
        collections={"1": [CollectionSpec(title="Sci-Fi", collection_id="c1")]},
        members={"c1": [movie("p1", "Matrix")]},
    )
    target = FakeTarget(catalog=[movie("j1", "The Matrix")])
    return SyncOrchestrator(source, target, config)


@pytest.fixture()
def app(orchestrator: SyncOrchestrator) -> FastAPI:
    init_db(db_url="sqlite://")
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return app


def _poll(client: TestClient, sync_id: str) -> dict:
    for _ in range(200):
        data = client.get(f"/api/sync/{sync_id}").json()
        if data["is_complete"]:
            return data
        time.sleep(0.01)
    raise AssertionError("sync did not complete")


def test_dry_run_endpoint_returns_diff(app: FastAPI, orchestrator: SyncOrchestrator) -> None:
    with TestClient(app) as client:
        r = client.post("/api/sync/dry-run")
        assert r.status_code == 200
        started = r.json()
        assert started["dry_run"] is True

        data = _poll(client, started["sync_id"])

    assert data["phase"] == "complete"
    assert data["progress"] == 100
    assert data["result"]["collections_added"] == 1
    assert data["result"]["details"]["collections_to_add"][0]["title"] == "Sci-Fi"
    assert orchestrator.target.calls == []


def test_live_sync_endpoint(app: FastAPI, orchestrator: SyncOrchestrator) -> None:
    with TestClient(app) as client:
        started = client.post("/api/sync").json()
        assert started["dry_run"] is False
        data = _poll(client, started["sync_id"])

    assert data["result"]["details"] is None
    assert orchestrator.target.mutations("create_collection") == [("create_collection", "Sci-Fi", ("j1",))]


def test_unknown_sync_is_404(app: FastAPI) -> None:
    with TestClient(app) as client:
        assert client.get("/api/sync/nope").status_code == 404
        assert client.post("/api/sync/nope/cancel").status_code == 404


def test_cancel_finished_sync(app: FastAPI, orchestrator: SyncOrchestrator) -> None:
    with TestClient(app) as client:
        sync_id = client.post("/api/sync/dry-run").json()["sync_id"]
        _poll(client, sync_id)
        r = client.post(f"/api/sync/{sync_id}/cancel")

    assert r.status_code == 200
    assert r.json()["cancelled"] is False


def test_libraries_are_flagged_by_selection(app: FastAPI, config: Config) -> None:
    config.sync.selected_libraries = ["2"]
    with TestClient(app) as client:
        data = client.get("/api/libraries").json()

    assert [(lib["id"], lib["selected"]) for lib in data] == [("1", False), ("2", True)]


def test_diagnostics_reports_both_catalogs(app: FastAPI) -> None:
    with TestClient(app) as client:
        data = client.get("/api/diagnostics").json()

    assert data["plex"] == {"connected": True, "error": None, "server_name": "Fake Plex"}
    assert data["jellyfin"]["connected"] is True


def test_config_endpoint_hides_secrets(app: FastAPI) -> None:
    with TestClient(app) as client:
        data = client.get("/api/config").json()

    assert data["plex"] == {"url": "http://plex:32400"}
    assert "api_key" not in data["jellyfin"]
    assert data["sync"]["watch_direction"] == "Bidirectional"


def test_history_lists_recorded_runs(app: FastAPI) -> None:
    status = SyncStatus(
        is_dry_run=True,
        is_complete=True,
        phase=SyncPhase.COMPLETE,
        message="Dry run completed. Found 0 changes.",
        end_time=datetime.utcnow(),
        result=SyncResult(errors=["Library 'Broken': unavailable"]),
    )
    record_sync_run(status)

    with TestClient(app) as client:
        data = client.get("/api/history").json()

    [run] = data
    assert run["id"] == status.id
    assert run["dry_run"] is True
    assert run["phase"] == "complete"
    assert run["summary"]["errors_count"] == 1
    assert run["errors"] == ["Library 'Broken': unavailable"]
