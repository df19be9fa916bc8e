"""Registre des runs en cours, partagé entre le run et les lecteurs qui interrogent son statut."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import asyncio
import copy
import logging
import threading

from mediabridge.core.models import SyncStatus

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(hours=1)


@dataclass
class RunHandle:
    status: SyncStatus
    cancel_event: threading.Event = field(default_factory=threading.Event)
    task: Optional["asyncio.Task[Any]"] = None


class RunRegistry:
    """Table des runs indexée par ID opaque.

    Un seul verrou couvre toutes les opérations (accès dict O(1)). Les runs
    terminés depuis plus de ``retention`` sont évincés par ``sweep``, appelé à
    chaque enregistrement.
    """

    def __init__(self, retention: timedelta = DEFAULT_RETENTION):
        self.retention = retention
        self._runs: Dict[str, RunHandle] = {}
        self._lock = threading.Lock()

    def register(self, status: SyncStatus, cancel_event: Optional[threading.Event] = None) -> RunHandle:
        self.sweep()
        handle = RunHandle(status=status, cancel_event=cancel_event or threading.Event())
        with self._lock:
            self._runs[status.id] = handle
        logger.debug(f"Registered sync run {status.id} (dry_run={status.is_dry_run})")
        return handle

    def attach_task(self, run_id: str, task: "asyncio.Task[Any]") -> None:
        with self._lock:
            handle = self._runs.get(run_id)
            if handle is not None:
                handle.task = task

    def get(self, run_id: str) -> Optional[SyncStatus]:
        """Copie du statut, sûre à lire pendant que le run continue."""
        with self._lock:
            handle = self._runs.get(run_id)
            if handle is None:
                return None
            return copy.copy(handle.status)

    def update(self, status: SyncStatus, **changes: Any) -> None:
        with self._lock:
            for name, value in changes.items():
                if not hasattr(status, name):
                    raise AttributeError(f"SyncStatus has no field '{name}'")
                setattr(status, name, value)

    def cancel(self, run_id: str) -> bool:
        with self._lock:
            handle = self._runs.get(run_id)
            if handle is None or handle.status.is_complete:
                return False
            handle.cancel_event.set()
        logger.info(f"Cancellation requested for sync run {run_id}")
        return True

    def sweep(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        with self._lock:
            expired = [
                run_id for run_id, handle in self._runs.items()
                if handle.status.is_complete
                and handle.status.end_time is not None
                and now - handle.status.end_time > self.retention
            ]
            for run_id in expired:
                del self._runs[run_id]
        if expired:
            logger.debug(f"Evicted {len(expired)} finished sync runs")
        return len(expired)

    def active(self) -> List[SyncStatus]:
        with self._lock:
            return [copy.copy(h.status) for h in self._runs.values() if not h.status.is_complete]

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)
