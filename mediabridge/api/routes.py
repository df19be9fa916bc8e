"""API routes."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
import logging

from mediabridge.db.database import get_db
from mediabridge.db.history import recent_sync_runs
from mediabridge.api.models import (
    SyncStartResponse, SyncStatusResponse, CancelResponse, SyncRunResponse,
    LibraryResponse, DiagnosticsResponse
)
from mediabridge.core.errors import CatalogError
from mediabridge.core.orchestrator import SyncOrchestrator, get_orchestrator
from mediabridge.config import get_config

logger = logging.getLogger(__name__)
router = APIRouter()


def _start(orchestrator: SyncOrchestrator, dry_run: bool) -> SyncStartResponse:
    sync_id = orchestrator.start_async(dry_run=dry_run)
    return SyncStartResponse(
        sync_id=sync_id,
        dry_run=dry_run,
        message="Dry run started" if dry_run else "Sync started",
    )


@router.post("/api/sync", response_model=SyncStartResponse)
async def start_sync(dry_run: bool = False, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Lance une synchronisation en tâche de fond."""
    logger.info(f"=== Starting {'dry run' if dry_run else 'sync'} ===")
    return _start(orchestrator, dry_run)


@router.post("/api/sync/dry-run", response_model=SyncStartResponse)
async def start_dry_run(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Lance un dry run (aucune modification)."""
    logger.info("=== Starting dry run ===")
    return _start(orchestrator, True)


@router.get("/api/sync/{sync_id}", response_model=SyncStatusResponse)
async def get_sync_status(sync_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Récupère le statut d'un run."""
    status = orchestrator.get_status(sync_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Sync not found")
    return SyncStatusResponse.from_status(status)


@router.post("/api/sync/{sync_id}/cancel", response_model=CancelResponse)
async def cancel_sync(sync_id: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Demande l'annulation d'un run en cours."""
    if orchestrator.get_status(sync_id) is None:
        raise HTTPException(status_code=404, detail="Sync not found")
    cancelled = orchestrator.cancel(sync_id)
    return CancelResponse(
        sync_id=sync_id,
        cancelled=cancelled,
        message="Cancellation requested" if cancelled else "Sync already finished",
    )


@router.get("/api/history", response_model=List[SyncRunResponse])
async def get_history(limit: int = 20, db: Session = Depends(get_db)):
    """Derniers runs terminés."""
    return [
        SyncRunResponse(
            id=run.id,
            started_at=run.started_at,
            finished_at=run.finished_at,
            dry_run=run.dry_run,
            phase=run.phase,
            message=run.message,
            error=run.error,
            summary=run.summary_json or {},
            errors=run.errors_json or [],
        )
        for run in recent_sync_runs(db, limit=limit)
    ]


@router.get("/api/libraries", response_model=List[LibraryResponse])
async def get_libraries(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Bibliothèques Plex, avec leur sélection pour la synchronisation."""
    if orchestrator.source is None:
        raise HTTPException(status_code=400, detail="Plex is not configured")
    try:
        libraries = await orchestrator.source.list_libraries()
    except CatalogError as e:
        raise HTTPException(status_code=502, detail=str(e))

    selected = set(orchestrator.config.sync.selected_libraries)
    return [
        LibraryResponse(
            id=library.id,
            title=library.title,
            type=library.kind,
            # Empty selection means every library
            selected=not selected or library.id in selected,
        )
        for library in libraries
    ]


@router.get("/api/diagnostics", response_model=DiagnosticsResponse)
async def diagnostics(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Vérifie les connexions aux APIs."""
    results = {
        "plex": {"connected": False, "error": None},
        "jellyfin": {"connected": False, "error": None},
    }

    for name, client in (("plex", orchestrator.source), ("jellyfin", orchestrator.target)):
        if client is None:
            results[name]["error"] = "Not configured"
            continue
        try:
            results[name]["server_name"] = await client.test_connection()
            results[name]["connected"] = True
        except CatalogError as e:
            results[name]["error"] = str(e)

    return DiagnosticsResponse(**results)


@router.get("/api/config")
async def get_config_endpoint():
    """Récupère la configuration actuelle (sans secrets)."""
    config = get_config()
    return {
        "plex": {"url": config.plex.url},
        "jellyfin": {"url": config.jellyfin.url, "user_id": config.jellyfin.user_id},
        "sync": config.sync.model_dump(mode="json"),
        "scheduler": config.scheduler.model_dump(),
        "app": config.app.model_dump(),
    }
