from __future__ import annotations

import asyncio

import pytest

from mediabridge import scheduler
from mediabridge.config import Config, set_config
from mediabridge.core.errors import CatalogError
from mediabridge.core.models import SyncResult


class RecordingOrchestrator:
    def __init__(self, error: Exception | None = None):
        self.calls: list[bool] = []
        self.error = error

    async def run_sync_once(self, dry_run: bool = False) -> SyncResult:
        self.calls.append(dry_run)
        if self.error:
            raise self.error
        return SyncResult(collections_added=2)


def test_scheduled_sync_runs_live(monkeypatch: pytest.MonkeyPatch) -> None:
    orchestrator = RecordingOrchestrator()
    monkeypatch.setattr(scheduler, "get_orchestrator", lambda: orchestrator)

    asyncio.run(scheduler.run_scheduled_sync())

    assert orchestrator.calls == [False]


def test_scheduled_sync_logs_catalog_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    orchestrator = RecordingOrchestrator(error=CatalogError("plex down"))
    monkeypatch.setattr(scheduler, "get_orchestrator", lambda: orchestrator)

    asyncio.run(scheduler.run_scheduled_sync())

    assert orchestrator.calls == [False]


def test_disabled_scheduler_does_not_start(config: Config) -> None:
    set_config(config)
    scheduler.start_scheduler()
    assert scheduler.scheduler is None


def test_enabled_scheduler_registers_interval_job(config: Config) -> None:
    config.scheduler.enabled = True
    config.scheduler.interval_hours = 6
    set_config(config)

    async def scenario():
        scheduler.start_scheduler()
        job = scheduler.scheduler.get_job(scheduler.JOB_ID)
        scheduler.stop_scheduler()
        return job

    job = asyncio.run(scenario())

    assert job is not None
    assert job.trigger.interval.total_seconds() == 6 * 3600
    assert scheduler.scheduler is None
