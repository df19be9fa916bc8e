"""Réconciliation des collections: création, recréation ou saut, par collection."""
from typing import Callable, List, Optional, Sequence, Tuple
import logging

from mediabridge.core.artwork import ArtworkSynchronizer
from mediabridge.core.errors import CatalogError
from mediabridge.core.executor import MutationExecutor
from mediabridge.core.matcher import EntityMatcher
from mediabridge.core.models import CollectionChange, CollectionSpec, SyncResult, TargetCollection
from mediabridge.services.base import TargetCatalogClient

logger = logging.getLogger(__name__)

COLLISION_PREFIX = "[DELETED]"

# Outcomes returned by CollectionReconciler.reconcile
SKIPPED = "skipped"
CREATED = "created"
RECREATED = "recreated"
WOULD_CREATE = "would_create"
WOULD_UPDATE = "would_update"
FAILED = "failed"


class CollectionReconciler:
    """Décide et applique create / recreate / skip pour chaque CollectionSpec.

    L'existence d'une collection du même titre (et non son contenu) choisit la
    branche. En live une collection existante est supprimée puis recréée avec
    les membres fraîchement résolus; en dry run seul un diff est enregistré.
    """

    def __init__(
        self,
        target: TargetCatalogClient,
        executor: MutationExecutor,
        matcher: EntityMatcher,
        artwork: Optional[ArtworkSynchronizer] = None,
    ):
        self.target = target
        self.executor = executor
        self.matcher = matcher
        self.artwork = artwork

    async def resolve_members(self, spec: CollectionSpec) -> Tuple[List[str], List[str]]:
        """IDs cible (dédupliqués, dans l'ordre) et titres source des membres trouvés."""
        target_ids: List[str] = []
        titles: List[str] = []
        for member in spec.member_items:
            target_id = await self.matcher.match(member)
            if not target_id:
                logger.debug(f"Could not find matching target item for '{member.title}' in '{spec.title}'")
                continue
            if target_id in target_ids:
                continue
            target_ids.append(target_id)
            titles.append(member.title)
        return target_ids, titles

    async def find_existing(self, title: str) -> Optional[TargetCollection]:
        wanted = title.strip().lower()
        for collection in await self.target.find_collections(title):
            if collection.title.strip().lower() == wanted:
                return collection
        return None

    async def reconcile(self, spec: CollectionSpec, result: SyncResult) -> str:
        target_ids, titles = await self.resolve_members(spec)
        if not target_ids:
            logger.info(f"Skipping collection '{spec.title}': none of its {len(spec.member_items)} items matched")
            return SKIPPED

        change = CollectionChange(
            title=spec.title,
            sort_title=spec.sort_title,
            summary=spec.summary,
            items=titles,
        )
        existing = await self.find_existing(spec.title)

        if existing is None:
            logger.info(f"{'Would create' if self.executor.dry_run else 'Creating'} collection '{spec.title}' "
                        f"with {len(target_ids)}/{len(spec.member_items)} matched items")
            if self.executor.dry_run:
                if result.details is not None:
                    result.details.collections_to_add.append(change)
                result.collections_added += 1
                return WOULD_CREATE
            await self.create(spec, target_ids)
            result.collections_added += 1
            return CREATED

        if self.executor.dry_run:
            logger.info(f"Would update collection '{spec.title}' ({len(target_ids)} matched items)")
            if result.details is not None:
                result.details.collections_to_update.append(change)
            result.collections_updated += 1
            return WOULD_UPDATE

        logger.info(f"Recreating collection '{spec.title}' ({existing.id}) with {len(target_ids)} items")
        await self.executor.delete_collection(existing)
        await self.create(spec, target_ids)
        result.collections_updated += 1
        return RECREATED

    async def create(self, spec: CollectionSpec, target_ids: Sequence[str]) -> Optional[str]:
        # Anything still carrying the title would make creation fail on uniqueness
        for survivor in await self.target.find_collections(spec.title):
            if survivor.title.strip().lower() != spec.title.strip().lower():
                continue
            new_title = f"{COLLISION_PREFIX} {survivor.title}"
            logger.warning(f"Collection '{survivor.title}' ({survivor.id}) still exists, renaming to '{new_title}'")
            await self.executor.rename_collection(survivor, new_title)

        collection_id = await self.executor.create_collection(spec, target_ids)
        if not collection_id:
            return None

        if spec.summary or spec.sort_title:
            await self.executor.update_collection_metadata(collection_id, spec.summary, spec.sort_title)

        if self.artwork and not spec.artwork.is_empty():
            try:
                await self.artwork.apply(collection_id, spec.title, spec.artwork)
            except CatalogError as e:
                logger.error(f"Error syncing artwork for collection '{spec.title}': {e}")
        return collection_id

    async def reconcile_all(
        self,
        specs: Sequence[CollectionSpec],
        result: SyncResult,
        progress: Optional[Callable[[int, int, CollectionSpec], None]] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> List[str]:
        """Traite les collections dans l'ordre reçu; chaque collection est isolée des erreurs des autres."""
        outcomes = []
        total = len(specs)
        for processed, spec in enumerate(specs, start=1):
            if checkpoint:
                checkpoint()
            if progress:
                progress(processed, total, spec)
            try:
                outcomes.append(await self.reconcile(spec, result))
            except CatalogError as e:
                logger.error(f"Error syncing collection '{spec.title}': {e}")
                result.errors.append(f"Collection '{spec.title}': {e}")
                outcomes.append(FAILED)
        return outcomes
