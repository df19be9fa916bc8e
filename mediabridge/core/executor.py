"""Frontière des mutations: applique (live) ou enregistre (dry run) chaque écriture."""
from typing import Dict, List, Optional, Sequence
from collections import Counter
import logging

from mediabridge.core.errors import CatalogError
from mediabridge.core.models import CollectionSpec, TargetCollection, WatchState
from mediabridge.services.base import SourceCatalogClient, TargetCatalogClient

logger = logging.getLogger(__name__)


def _state_text(state: WatchState) -> str:
    if state.watched:
        return "watched"
    return f"unwatched at {state.position_seconds:.0f}s"


class MutationExecutor:
    """Seul point de passage des appels mutants vers les catalogues.

    En dry run aucun appel client n'est fait: l'opération est ajoutée à
    ``planned`` et une valeur neutre est retournée. Le mode est fixé à la
    construction et vérifié à chaque appel, jamais déduit de l'état.
    """

    def __init__(self, source: SourceCatalogClient, target: TargetCatalogClient, dry_run: bool = False):
        self.source = source
        self.target = target
        self.dry_run = dry_run
        self.planned: List[str] = []
        self.applied: List[str] = []
        self._counts: Counter = Counter()

    @property
    def mutation_count(self) -> int:
        """Nombre d'appels mutants qui ont abouti."""
        return len(self.applied)

    def count(self, operation: str) -> int:
        return self._counts[operation]

    def _planned(self, description: str) -> bool:
        """True en dry run: l'appel est seulement enregistré."""
        if self.dry_run:
            self.planned.append(description)
            logger.debug(f"[dry-run] {description}")
        return self.dry_run

    def _applied(self, operation: str, description: str) -> None:
        # Only once the client call has returned
        self.applied.append(description)
        self._counts[operation] += 1

    async def create_collection(self, spec: CollectionSpec, item_ids: Sequence[str]) -> Optional[str]:
        description = f"Create collection '{spec.title}' with {len(item_ids)} items"
        if self._planned(description):
            return None
        collection_id = await self.target.create_collection(spec, list(item_ids))
        if not collection_id:
            raise CatalogError(f"Target returned no ID for new collection '{spec.title}'", service="target")
        self._applied("create_collection", description)
        return collection_id

    async def delete_collection(self, collection: TargetCollection) -> None:
        description = f"Delete collection '{collection.title}' ({collection.id})"
        if not self._planned(description):
            await self.target.delete_collection(collection.id)
            self._applied("delete_collection", description)

    async def rename_collection(self, collection: TargetCollection, new_title: str) -> None:
        description = f"Rename collection '{collection.title}' to '{new_title}'"
        if not self._planned(description):
            await self.target.rename_collection(collection.id, new_title)
            self._applied("rename_collection", description)

    async def update_collection_metadata(
        self, collection_id: str, summary: Optional[str], sort_title: Optional[str]
    ) -> None:
        description = f"Update metadata of collection {collection_id}"
        if not self._planned(description):
            await self.target.update_collection_metadata(collection_id, summary, sort_title)
            self._applied("update_collection_metadata", description)

    async def attach_artwork(self, item_id: str, image_bytes: Optional[bytes], slot: str, title: str = "") -> None:
        description = f"Attach {slot} image to '{title or item_id}'"
        if self._planned(description):
            return
        if not image_bytes:
            raise CatalogError(f"Empty {slot} image for '{title or item_id}'", service="source")
        await self.target.attach_artwork(item_id, image_bytes, slot)
        self._applied("attach_artwork", description)

    async def set_target_watch_state(self, user_id: str, item_id: str, state: WatchState, title: str = "") -> None:
        description = f"Set target state of '{title or item_id}' to {_state_text(state)}"
        if not self._planned(description):
            await self.target.set_user_watch_state(user_id, item_id, state)
            self._applied("set_target_watch_state", description)

    async def set_source_watch_state(self, item_id: str, state: WatchState, title: str = "") -> None:
        description = f"Set source state of '{title or item_id}' to {_state_text(state)}"
        if self._planned(description):
            return
        ok = await self.source.set_watch_state(item_id, state)
        if ok is False:
            raise CatalogError(f"Source rejected watch state update for '{title or item_id}'", service="source")
        self._applied("set_source_watch_state", description)

    def summary(self) -> Dict[str, int]:
        return dict(self._counts)
