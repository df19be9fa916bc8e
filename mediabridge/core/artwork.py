"""Artwork side channel: download from the source, attach on the target."""
from typing import Callable, List, Optional, Sequence, Tuple
import logging

from mediabridge.core.errors import CatalogError
from mediabridge.core.executor import MutationExecutor
from mediabridge.core.matcher import EntityMatcher
from mediabridge.core.models import ArtworkChange, ArtworkRefs, CatalogEntity, SyncResult
from mediabridge.services.base import SLOT_BACKDROP, SLOT_PRIMARY, SourceCatalogClient

logger = logging.getLogger(__name__)


def artwork_slots(refs: ArtworkRefs) -> List[Tuple[str, str]]:
    """(slot, locator) pairs: poster from thumb, backdrop from art."""
    slots = []
    if refs.thumb:
        slots.append((SLOT_PRIMARY, refs.thumb))
    if refs.art:
        slots.append((SLOT_BACKDROP, refs.art))
    return slots


class ArtworkSynchronizer:
    """Copies posters and backdrops from source items/collections to their target match."""

    def __init__(
        self,
        source: SourceCatalogClient,
        executor: MutationExecutor,
        matcher: Optional[EntityMatcher] = None,
        progress: Optional[Callable[[int, int, CatalogEntity], None]] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ):
        self.source = source
        self.executor = executor
        self.matcher = matcher
        self.progress = progress
        self.checkpoint = checkpoint

    async def apply(self, target_id: str, title: str, refs: ArtworkRefs) -> List[str]:
        """Attach every available image to ``target_id``; returns the slots handled."""
        handled = []
        for slot, locator in artwork_slots(refs):
            image_bytes = None
            if not self.executor.dry_run:
                image_bytes = await self.source.fetch_image(locator)
            await self.executor.attach_artwork(target_id, image_bytes, slot, title)
            handled.append(slot)
        return handled

    async def sync_item(self, item: CatalogEntity, result: SyncResult) -> bool:
        refs = ArtworkRefs(thumb=item.thumb, art=item.art)
        if refs.is_empty():
            return False
        if self.matcher is None:
            raise ValueError("Item artwork sync requires a matcher")

        target_id = await self.matcher.match(item)
        if not target_id:
            logger.debug(f"No target match for '{item.title}', artwork skipped")
            result.items_unmatched += 1
            return False

        slots = await self.apply(target_id, item.title, refs)
        if self.executor.dry_run and result.details is not None:
            result.details.items_artwork_to_update.append(ArtworkChange(title=item.title, slots=slots))
        result.items_artwork_updated += 1
        return True

    async def run(self, items: Sequence[CatalogEntity], result: SyncResult) -> int:
        total = len(items)
        updated = 0
        for processed, item in enumerate(items, start=1):
            if self.checkpoint:
                self.checkpoint()
            if self.progress and (processed == 1 or processed % 10 == 0 or processed == total):
                self.progress(processed, total, item)
            try:
                if await self.sync_item(item, result):
                    updated += 1
            except CatalogError as e:
                logger.error(f"Error syncing artwork for '{item.title}' ({item.internal_id}): {e}")
                result.errors.append(f"Artwork '{item.title}': {e}")
        logger.info(f"Item artwork sync completed: {updated}/{total} items")
        return updated
