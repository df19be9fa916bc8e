"""Orchestrateur d'un run de synchronisation (artwork, collections, état de lecture)."""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import asyncio
import logging
import threading

from mediabridge.config import Config
from mediabridge.core.artwork import ArtworkSynchronizer
from mediabridge.core.collections import CollectionReconciler
from mediabridge.core.errors import CatalogError, ConfigurationError, MediaBridgeError, SyncCancelled
from mediabridge.core.executor import MutationExecutor
from mediabridge.core.index import EntityIndex
from mediabridge.core.matcher import EntityMatcher
from mediabridge.core.models import (
    CatalogEntity,
    CollectionSpec,
    DryRunDetails,
    LibraryRef,
    MediaKind,
    SyncPhase,
    SyncResult,
    SyncStatus,
)
from mediabridge.core.registry import RunRegistry
from mediabridge.core.watch_state import WatchStateSynchronizer
from mediabridge.services.base import SourceCatalogClient, TargetCatalogClient

logger = logging.getLogger(__name__)

# Keys under which a target item may already carry its source ID
SOURCE_TAG_KEYS = ("plex", "plexid", "plex_id")

# (start, end) progress percentage of each phase
PROGRESS_BANDS: Dict[SyncPhase, Tuple[int, int]] = {
    SyncPhase.INITIALIZING: (0, 5),
    SyncPhase.INDEX_BUILDING: (5, 10),
    SyncPhase.ARTWORK: (10, 35),
    SyncPhase.COLLECTIONS: (35, 65),
    SyncPhase.WATCH_STATE: (65, 95),
    SyncPhase.FINALIZING: (95, 100),
}


class SyncOrchestrator:
    """Enchaîne les phases d'un run et publie sa progression dans le registre.

    Un run est séquentiel; plusieurs runs peuvent coexister. L'annulation est
    coopérative: l'événement est vérifié entre deux items, l'appel en cours se
    termine normalement.
    """

    def __init__(
        self,
        source: Optional[SourceCatalogClient],
        target: Optional[TargetCatalogClient],
        config: Config,
        registry: Optional[RunRegistry] = None,
        on_complete: Optional[Callable[[SyncStatus], None]] = None,
    ):
        self.source = source
        self.target = target
        self.config = config
        self.registry = registry or RunRegistry(
            retention=timedelta(minutes=config.app.status_retention_minutes)
        )
        self.on_complete = on_complete

    # Public entry points

    def start_async(self, dry_run: bool = False) -> str:
        """Lance un run en tâche de fond et retourne son ID de statut.

        Doit être appelé depuis une boucle asyncio active.
        """
        status = SyncStatus(
            is_dry_run=dry_run,
            message="Initializing dry run..." if dry_run else "Initializing sync...",
        )
        handle = self.registry.register(status)
        task = asyncio.get_running_loop().create_task(
            self._run_background(status, handle.cancel_event),
            name=f"sync-{status.id}",
        )
        self.registry.attach_task(status.id, task)
        logger.info(f"Started {'dry run' if dry_run else 'sync'} {status.id}")
        return status.id

    def get_status(self, status_id: str) -> Optional[SyncStatus]:
        return self.registry.get(status_id)

    def cancel(self, status_id: str) -> bool:
        return self.registry.cancel(status_id)

    async def run_sync_once(self, dry_run: bool = False) -> SyncResult:
        """Run synchrone (du point de vue de l'appelant), pour le scheduler."""
        return await self.run(dry_run)

    async def run(
        self,
        dry_run: bool = False,
        status: Optional[SyncStatus] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SyncResult:
        if status is None:
            status = SyncStatus(is_dry_run=dry_run)
            handle = self.registry.register(status, cancel_event)
            cancel_event = handle.cancel_event
        cancel_event = cancel_event or threading.Event()

        result = SyncResult(details=DryRunDetails() if dry_run else None)
        self._update(status, result=result)

        problems = self.config.validate_for_sync()
        if problems:
            message = "Configuration incomplete: " + "; ".join(problems)
            logger.warning(message)
            self._finish(status, SyncPhase.COMPLETE, message)
            return result

        def checkpoint() -> None:
            if cancel_event.is_set():
                raise SyncCancelled(f"Sync {status.id} cancelled")

        try:
            await self._run_phases(status, result, dry_run, checkpoint)
        except SyncCancelled:
            logger.info(f"Sync {status.id} cancelled after {status.processed_items} items")
            self._finish(status, SyncPhase.CANCELLED, "Sync cancelled.")
            return result
        except MediaBridgeError as e:
            # Known failure outside any smaller boundary: reported, not raised
            logger.error(f"Sync {status.id} failed: {e}")
            result.errors.append(f"Sync: {e}")
            self._finish(status, SyncPhase.FAILED, f"Error: {e}", error=str(e))
            return result
        except Exception as e:
            logger.exception(f"Sync {status.id} failed: {e}")
            self._finish(status, SyncPhase.FAILED, f"Error: {e}", error=str(e))
            raise

        if dry_run:
            message = f"Dry run completed. Found {result.details.total_changes} changes."
        else:
            message = (
                f"Sync completed. Added {result.collections_added} collections, "
                f"updated {result.collections_updated} collections, "
                f"updated artwork of {result.items_artwork_updated} items, "
                f"synced {result.watch_states_updated} watch states."
            )
        if result.errors:
            message += f" {len(result.errors)} errors."
        logger.info(f"{message} Summary: {result.summary()}")
        self._finish(status, SyncPhase.COMPLETE, message)
        return result

    # Phases

    async def _run_phases(
        self,
        status: SyncStatus,
        result: SyncResult,
        dry_run: bool,
        checkpoint: Callable[[], None],
    ) -> None:
        settings = self.config.sync
        executor = MutationExecutor(self.source, self.target, dry_run=dry_run)

        self._enter(status, SyncPhase.INITIALIZING, "Starting dry run - analyzing current state..."
                    if dry_run else "Starting sync operation...")
        libraries = await self._selected_libraries(result)
        checkpoint()
        self._update(status, progress=PROGRESS_BANDS[SyncPhase.INITIALIZING][1])
        if libraries is None:
            self._enter(status, SyncPhase.FINALIZING, "Finalizing...")
            return

        target_matcher = None
        if settings.collections or settings.item_artwork:
            self._enter(status, SyncPhase.INDEX_BUILDING, "Building target catalog index...")
            try:
                target_items = await self.target.list_catalog([MediaKind.MOVIE, MediaKind.SERIES])
            except CatalogError as e:
                logger.error(f"Could not build target catalog index, skipping artwork and collections: {e}")
                result.errors.append(f"Target index: {e}")
            else:
                target_matcher = EntityMatcher(
                    index=EntityIndex.build(target_items),
                    search=self.target.find_by_title,
                )
            checkpoint()

        library_items: Dict[str, List[CatalogEntity]] = {}

        if settings.item_artwork and target_matcher is not None:
            self._enter(status, SyncPhase.ARTWORK, "Syncing item artwork...")
            items = [
                item for item in await self._source_items(libraries, library_items, result)
                if item.kind in (MediaKind.MOVIE, MediaKind.SERIES)
            ]
            synchronizer = ArtworkSynchronizer(
                self.source,
                executor,
                matcher=target_matcher,
                progress=self._reporter(status, SyncPhase.ARTWORK, "Artwork"),
                checkpoint=checkpoint,
            )
            await synchronizer.run(items, result)

        if settings.collections and target_matcher is not None:
            self._enter(status, SyncPhase.COLLECTIONS, "Reading source collections...")
            specs = await self._collection_specs(libraries, result, checkpoint)
            reconciler = CollectionReconciler(
                self.target,
                executor,
                target_matcher,
                artwork=ArtworkSynchronizer(self.source, executor) if settings.artwork else None,
            )
            await reconciler.reconcile_all(
                specs,
                result,
                progress=self._reporter(status, SyncPhase.COLLECTIONS, "Collection"),
                checkpoint=checkpoint,
            )

        if settings.watch_state:
            self._enter(status, SyncPhase.WATCH_STATE, "Syncing watch states...")
            await self._sync_watch_state(status, result, executor, libraries, library_items, checkpoint)

        self._enter(status, SyncPhase.FINALIZING, "Finalizing...")
        if dry_run:
            logger.info(f"Dry run planned {len(executor.planned)} mutations")
        else:
            logger.info(f"Applied mutations: {executor.summary()}")

    async def _sync_watch_state(
        self,
        status: SyncStatus,
        result: SyncResult,
        executor: MutationExecutor,
        libraries: Sequence[LibraryRef],
        library_items: Dict[str, List[CatalogEntity]],
        checkpoint: Callable[[], None],
    ) -> None:
        user_id = self.config.jellyfin.user_id
        if not user_id:
            try:
                user_id = await self.target.default_user_id()
            except CatalogError as e:
                logger.error(f"Could not look up target user for watch state sync: {e}")
                result.errors.append(f"Watch state: {e}")
                return
        if not user_id:
            logger.warning("No target user available, watch state sync skipped")
            result.errors.append("Watch state: no target user available")
            return

        playable = (MediaKind.MOVIE, MediaKind.EPISODE)
        source_items = [
            item for item in await self._source_items(libraries, library_items, result)
            if item.kind in playable
        ]
        try:
            target_items = await self.target.list_catalog(list(playable))
        except CatalogError as e:
            logger.error(f"Could not list target items for watch state sync: {e}")
            result.errors.append(f"Watch state: {e}")
            return
        checkpoint()

        synchronizer = WatchStateSynchronizer(
            self.source,
            self.target,
            executor,
            EntityMatcher(
                index=EntityIndex.build(source_items),
                search=self.source.search_by_title,
                tag_keys=SOURCE_TAG_KEYS,
            ),
            user_id=user_id,
            direction=self.config.sync.watch_direction,
            threshold=self.config.sync.position_threshold_seconds,
            progress=self._reporter(status, SyncPhase.WATCH_STATE, "Processing"),
            checkpoint=checkpoint,
        )
        await synchronizer.run(target_items, result)

    async def _selected_libraries(self, result: SyncResult) -> Optional[List[LibraryRef]]:
        """None si la liste des bibliothèques est illisible: tout le run en dépend."""
        try:
            libraries = await self.source.list_libraries()
        except CatalogError as e:
            logger.error(f"Could not list source libraries, nothing to sync: {e}")
            result.errors.append(f"Libraries: {e}")
            return None
        selected = set(self.config.sync.selected_libraries)
        if selected:
            libraries = [lib for lib in libraries if lib.id in selected]
        logger.info(f"Syncing {len(libraries)} libraries: {', '.join(lib.title for lib in libraries)}")
        return libraries

    async def _source_items(
        self,
        libraries: Sequence[LibraryRef],
        cache: Dict[str, List[CatalogEntity]],
        result: SyncResult,
    ) -> List[CatalogEntity]:
        """Items de toutes les bibliothèques, chargés une fois par run; une bibliothèque en échec est ignorée."""
        items: List[CatalogEntity] = []
        for library in libraries:
            if library.id not in cache:
                try:
                    cache[library.id] = await self.source.list_library_items(library.id)
                except CatalogError as e:
                    logger.error(f"Error reading library '{library.title}': {e}")
                    result.errors.append(f"Library '{library.title}': {e}")
                    cache[library.id] = []
            items.extend(cache[library.id])
        return items

    async def _collection_specs(
        self,
        libraries: Sequence[LibraryRef],
        result: SyncResult,
        checkpoint: Callable[[], None],
    ) -> List[CollectionSpec]:
        specs: List[CollectionSpec] = []
        for library in libraries:
            checkpoint()
            try:
                collections = await self.source.list_collections(library.id)
            except CatalogError as e:
                logger.error(f"Error reading collections of library '{library.title}': {e}")
                result.errors.append(f"Library '{library.title}': {e}")
                continue
            logger.info(f"Found {len(collections)} collections in library '{library.title}'")

            for spec in collections:
                try:
                    members = await self.source.list_collection_members(spec.collection_id)
                except CatalogError as e:
                    logger.error(f"Error reading items of collection '{spec.title}': {e}")
                    result.errors.append(f"Collection '{spec.title}': {e}")
                    continue
                specs.append(spec.with_members(members))
        return specs

    # Status helpers

    def _update(self, status: SyncStatus, **changes: Any) -> None:
        self.registry.update(status, **changes)

    def _enter(self, status: SyncStatus, phase: SyncPhase, message: str) -> None:
        logger.info(message)
        self._update(status, phase=phase, message=message, progress=PROGRESS_BANDS[phase][0])

    def _reporter(self, status: SyncStatus, phase: SyncPhase, label: str) -> Callable[[int, int, Any], None]:
        start, end = PROGRESS_BANDS[phase]

        def report(processed: int, total: int, item: Any) -> None:
            progress = start + int((end - start) * processed / total) if total else end
            self._update(
                status,
                progress=progress,
                message=f"{label} {processed} of {total}: {getattr(item, 'display_title', None) or item.title}",
                total_items=total,
                processed_items=processed,
                remaining_items=total - processed,
            )

        return report

    def _finish(self, status: SyncStatus, phase: SyncPhase, message: str, error: Optional[str] = None) -> None:
        self._update(
            status,
            phase=phase,
            message=message,
            error=error,
            progress=100,
            is_complete=True,
            end_time=datetime.utcnow(),
        )
        if self.on_complete is not None:
            try:
                self.on_complete(self.registry.get(status.id) or status)
            except Exception as e:
                logger.error(f"Error in completion hook for sync {status.id}: {e}")

    async def _run_background(self, status: SyncStatus, cancel_event: threading.Event) -> None:
        try:
            await self.run(status.is_dry_run, status=status, cancel_event=cancel_event)
        except Exception as e:
            # run() has already recorded the failure in the status
            if not status.is_complete:
                self._finish(status, SyncPhase.FAILED, f"Error: {e}", error=str(e))
            logger.error(f"Background sync {status.id} failed: {e}")


def build_orchestrator(
    config: Config,
    registry: Optional[RunRegistry] = None,
    on_complete: Optional[Callable[[SyncStatus], None]] = None,
) -> SyncOrchestrator:
    """Orchestrateur branché sur Plex et Jellyfin.

    Avec une configuration incomplète les clients restent absents: chaque run
    se termine alors immédiatement avec l'explication.
    """
    from mediabridge.services.jellyfin import JellyfinService
    from mediabridge.services.plex import PlexService

    source = target = None
    try:
        config.ensure_valid_for_sync()
    except ConfigurationError as e:
        logger.warning(f"Catalog clients not created: {e}")
    else:
        source = PlexService(config.plex)
        target = JellyfinService(config.jellyfin)
    return SyncOrchestrator(source, target, config, registry=registry, on_complete=on_complete)


# Global orchestrator (created on first use from the global config)
_orchestrator: Optional[SyncOrchestrator] = None


def get_orchestrator() -> SyncOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        from mediabridge.config import get_config
        from mediabridge.db.history import record_sync_run
        _orchestrator = build_orchestrator(get_config(), on_complete=record_sync_run)
    return _orchestrator
