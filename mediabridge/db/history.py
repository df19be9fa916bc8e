"""Historique des runs terminés."""
from typing import List
import logging

from sqlalchemy.orm import Session

from mediabridge.core.models import SyncStatus
from mediabridge.db.database import get_db_sync
from mediabridge.db.models import SyncRun

logger = logging.getLogger(__name__)


def save_sync_run(db: Session, status: SyncStatus) -> SyncRun:
    """Insère (ou remplace) la ligne d'historique d'un run."""
    result = status.result
    run = db.get(SyncRun, status.id) or SyncRun(id=status.id)
    run.started_at = status.start_time
    run.finished_at = status.end_time
    run.dry_run = status.is_dry_run
    run.phase = status.phase.value
    run.message = status.message
    run.error = status.error
    run.summary_json = result.summary() if result else {}
    run.errors_json = list(result.errors) if result else []
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def record_sync_run(status: SyncStatus) -> None:
    """Completion hook of the orchestrator: persists the finished run."""
    db = get_db_sync()
    try:
        save_sync_run(db, status)
        logger.debug(f"Recorded sync run {status.id} ({status.phase.value})")
    finally:
        db.close()


def recent_sync_runs(db: Session, limit: int = 20) -> List[SyncRun]:
    return (
        db.query(SyncRun)
        .order_by(SyncRun.started_at.desc())
        .limit(limit)
        .all()
    )
