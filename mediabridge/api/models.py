"""Pydantic models for API requests/responses."""
from dataclasses import asdict
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime

from mediabridge.core.models import SyncResult, SyncStatus


class SyncStartResponse(BaseModel):
    sync_id: str
    dry_run: bool
    message: str


class SyncResultResponse(BaseModel):
    collections_added: int
    collections_updated: int
    items_artwork_updated: int
    watch_states_updated: int
    items_unmatched: int
    errors: List[str]
    details: Optional[Dict[str, Any]] = None  # dry run uniquement

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResultResponse":
        return cls(
            collections_added=result.collections_added,
            collections_updated=result.collections_updated,
            items_artwork_updated=result.items_artwork_updated,
            watch_states_updated=result.watch_states_updated,
            items_unmatched=result.items_unmatched,
            errors=list(result.errors),
            details=asdict(result.details) if result.details is not None else None,
        )


class SyncStatusResponse(BaseModel):
    id: str
    progress: int
    message: str
    phase: str
    is_complete: bool
    is_dry_run: bool
    start_time: datetime
    end_time: Optional[datetime]
    elapsed_seconds: float
    total_items: int
    processed_items: int
    remaining_items: int
    error: Optional[str]
    result: Optional[SyncResultResponse]

    @classmethod
    def from_status(cls, status: SyncStatus) -> "SyncStatusResponse":
        return cls(
            id=status.id,
            progress=status.progress,
            message=status.message,
            phase=status.phase.value,
            is_complete=status.is_complete,
            is_dry_run=status.is_dry_run,
            start_time=status.start_time,
            end_time=status.end_time,
            elapsed_seconds=status.elapsed_seconds,
            total_items=status.total_items,
            processed_items=status.processed_items,
            remaining_items=status.remaining_items,
            error=status.error,
            # Counters only once the run has finished
            result=SyncResultResponse.from_result(status.result)
            if status.is_complete and status.result is not None else None,
        )


class CancelResponse(BaseModel):
    sync_id: str
    cancelled: bool
    message: str


class SyncRunResponse(BaseModel):
    id: str
    started_at: datetime
    finished_at: Optional[datetime]
    dry_run: bool
    phase: str
    message: Optional[str]
    error: Optional[str]
    summary: Dict[str, Any]
    errors: List[str]


class LibraryResponse(BaseModel):
    id: str
    title: str
    type: str
    selected: bool


class DiagnosticsResponse(BaseModel):
    plex: Dict[str, Any]
    jellyfin: Dict[str, Any]
