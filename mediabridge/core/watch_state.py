"""Réconciliation de l'état de lecture (vu + position) entre source et cible."""
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union
import logging

from mediabridge.core.errors import CatalogError
from mediabridge.core.executor import MutationExecutor
from mediabridge.core.matcher import EntityMatcher
from mediabridge.core.models import (
    CatalogEntity,
    SyncDirection,
    SyncResult,
    WatchState,
    WatchStateChange,
)
from mediabridge.services.base import SourceCatalogClient, TargetCatalogClient

logger = logging.getLogger(__name__)

# Differences at or below this are seek/rounding jitter
POSITION_THRESHOLD_SECONDS = 10.0


@dataclass(frozen=True)
class WatchStateDecision:
    new_source: Optional[WatchState] = None
    new_target: Optional[WatchState] = None
    description: Optional[str] = None

    @property
    def has_changes(self) -> bool:
        return self.new_source is not None or self.new_target is not None


def describe_state(state: WatchState) -> str:
    if state.watched:
        return "Watched"
    if state.position_seconds > 0:
        return f"In Progress ({state.position_seconds:.0f} seconds)"
    return "Unwatched"


def _describe(parts: Sequence[str]) -> Optional[str]:
    if not parts:
        return None
    return "Would " + " and ".join(parts)


def _one_way(
    authority: WatchState, follower: WatchState, threshold: float, follower_label: str
) -> Tuple[Optional[WatchState], Optional[str]]:
    """Le follower adopte l'état de l'autorité. Un follower déjà vu n'est jamais dégradé."""
    if authority.watched != follower.watched:
        if authority.watched:
            return WatchState(watched=True, position_seconds=0.0), f"set {follower_label} watched state to watched"
        return None, None

    if (
        not authority.watched
        and authority.position_seconds > 0
        and abs(authority.position_seconds - follower.position_seconds) > threshold
    ):
        return (
            WatchState(watched=False, position_seconds=authority.position_seconds),
            f"update {follower_label} position to {authority.position_seconds:.0f} seconds",
        )
    return None, None


def _bidirectional(
    source: WatchState, target: WatchState, threshold: float, labels: Tuple[str, str]
) -> WatchStateDecision:
    source_label, target_label = labels
    new_source = None
    new_target = None
    parts: List[str] = []

    if source.watched or target.watched:
        if not source.watched:
            new_source = WatchState(watched=True, position_seconds=0.0)
            parts.append(f"set {source_label} watched state to watched")
        if not target.watched:
            new_target = WatchState(watched=True, position_seconds=0.0)
            parts.append(f"set {target_label} watched state to watched")
        return WatchStateDecision(new_source, new_target, _describe(parts))

    max_position = max(source.position_seconds, target.position_seconds)
    if max_position <= 0:
        return WatchStateDecision()

    if abs(source.position_seconds - max_position) > threshold:
        new_source = WatchState(watched=False, position_seconds=max_position)
        parts.append(f"update {source_label} position to {max_position:.0f} seconds")
    if abs(target.position_seconds - max_position) > threshold:
        new_target = WatchState(watched=False, position_seconds=max_position)
        parts.append(f"update {target_label} position to {max_position:.0f} seconds")
    return WatchStateDecision(new_source, new_target, _describe(parts))


def reconcile_watch_state(
    source: WatchState,
    target: WatchState,
    direction: Union[SyncDirection, str],
    threshold: float = POSITION_THRESHOLD_SECONDS,
    labels: Tuple[str, str] = ("source", "target"),
) -> WatchStateDecision:
    """Calcule les nouveaux états source/cible et la description du changement.

    Fonction pure: aucune écriture, aucun I/O.
    """
    if source is None or target is None:
        raise ValueError("Both source and target watch states are required")
    direction = SyncDirection(direction)
    source_label, target_label = labels

    if direction == SyncDirection.BIDIRECTIONAL:
        return _bidirectional(source, target, threshold, labels)

    if direction == SyncDirection.SOURCE_TO_TARGET:
        new_target, part = _one_way(source, target, threshold, target_label)
        return WatchStateDecision(new_target=new_target, description=_describe([part] if part else []))

    new_source, part = _one_way(target, source, threshold, source_label)
    return WatchStateDecision(new_source=new_source, description=_describe([part] if part else []))


ProgressFn = Callable[[int, int, CatalogEntity], None]


class WatchStateSynchronizer:
    """Applique la réconciliation à chaque item lisible de la cible.

    Les items cible sont associés au catalogue source via ``matcher``. Les
    échecs sont par item: ils sont journalisés et n'arrêtent jamais le lot.
    """

    def __init__(
        self,
        source: SourceCatalogClient,
        target: TargetCatalogClient,
        executor: MutationExecutor,
        matcher: EntityMatcher,
        user_id: str,
        direction: Union[SyncDirection, str],
        threshold: float = POSITION_THRESHOLD_SECONDS,
        progress: Optional[ProgressFn] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ):
        self.source = source
        self.target = target
        self.executor = executor
        self.matcher = matcher
        self.user_id = user_id
        self.direction = SyncDirection(direction)
        self.threshold = threshold
        self.progress = progress
        self.checkpoint = checkpoint

    @staticmethod
    def should_report(processed: int, total: int) -> bool:
        """Premiers 5, tous les 5, derniers 5."""
        remaining = total - processed
        return processed <= 5 or processed % 5 == 0 or remaining <= 5

    async def run(self, items: Sequence[CatalogEntity], result: SyncResult) -> int:
        """Retourne le nombre d'items modifiés (ou qui le seraient)."""
        total = len(items)
        changed = 0
        logger.info(f"Watch state sync ({self.direction.value}) over {total} items")

        for processed, item in enumerate(items, start=1):
            if self.checkpoint:
                self.checkpoint()
            if self.progress and self.should_report(processed, total):
                self.progress(processed, total, item)

            try:
                if await self.sync_item(item, result):
                    changed += 1
            except CatalogError as e:
                logger.error(f"Error syncing watch state for '{item.display_title}' ({item.internal_id}): {e}")
                result.errors.append(f"Watch state '{item.display_title}': {e}")

        logger.info(f"Watch state sync completed: {changed}/{total} items changed")
        return changed

    async def sync_item(self, item: CatalogEntity, result: SyncResult) -> bool:
        source_id = await self.matcher.match(item)
        if not source_id:
            logger.debug(f"Could not find matching source item for '{item.display_title}', skipping")
            result.items_unmatched += 1
            return False

        target_state = await self.target.get_user_watch_state(self.user_id, item.internal_id)
        if target_state is None:
            logger.warning(f"Could not read target watch state for '{item.display_title}', skipping")
            return False
        source_state = await self.source.get_watch_state(source_id)
        if source_state is None:
            logger.warning(f"Could not read source watch state for '{item.display_title}' ({source_id}), skipping")
            return False

        decision = reconcile_watch_state(source_state, target_state, self.direction, self.threshold)
        if not decision.has_changes:
            return False

        logger.info(f"Watch state change for '{item.display_title}': {decision.description}")
        if decision.new_target is not None:
            await self.executor.set_target_watch_state(
                self.user_id, item.internal_id, decision.new_target, item.display_title
            )
        if decision.new_source is not None:
            await self.executor.set_source_watch_state(source_id, decision.new_source, item.display_title)

        if self.executor.dry_run and result.details is not None:
            result.details.watch_states_changed.append(WatchStateChange(
                title=item.display_title,
                current_state=f"Source: {describe_state(source_state)}, Target: {describe_state(target_state)}",
                new_state=decision.description or "",
            ))
        result.watch_states_updated += 1
        return True
