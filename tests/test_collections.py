from __future__ import annotations

import asyncio

from mediabridge.core.artwork import ArtworkSynchronizer
from mediabridge.core.collections import (
    COLLISION_PREFIX,
    CREATED,
    FAILED,
    RECREATED,
    SKIPPED,
    WOULD_CREATE,
    WOULD_UPDATE,
    CollectionReconciler,
)
from mediabridge.core.executor import MutationExecutor
from mediabridge.core.index import EntityIndex
from mediabridge.core.matcher import EntityMatcher
from mediabridge.core.models import (
    ArtworkRefs,
    CollectionSpec,
    DryRunDetails,
    SyncResult,
    TargetCollection,
)

from fakes import FakeSource, FakeTarget, movie


def _reconciler(target: FakeTarget, dry_run: bool, source: FakeSource | None = None, artwork: bool = False):
    source = source or FakeSource()
    executor = MutationExecutor(source, target, dry_run=dry_run)
    matcher = EntityMatcher(index=EntityIndex.build(target.catalog), search=target.find_by_title)
    synchronizer = ArtworkSynchronizer(source, executor) if artwork else None
    return CollectionReconciler(target, executor, matcher, artwork=synchronizer), executor


def _spec(title: str = "Sci-Fi", *members) -> CollectionSpec:
    return CollectionSpec(title=title, summary="Space and robots", member_items=list(members))


def test_collection_with_no_matched_member_is_skipped() -> None:
    target = FakeTarget(catalog=[movie("j1", "Heat")])
    reconciler, executor = _reconciler(target, dry_run=False)
    result = SyncResult()

    outcome = asyncio.run(reconciler.reconcile(_spec("Empty", movie("p1", "Ronin")), result))

    assert outcome == SKIPPED
    assert target.calls == []
    assert result.collections_added == 0


def test_live_create_sets_metadata() -> None:
    target = FakeTarget(catalog=[movie("j1", "Alien"), movie("j2", "Aliens")])
    reconciler, executor = _reconciler(target, dry_run=False)
    result = SyncResult()

    outcome = asyncio.run(reconciler.reconcile(_spec("Sci-Fi", movie("p1", "Alien"), movie("p2", "Aliens")), result))

    assert outcome == CREATED
    assert target.mutations("create_collection") == [("create_collection", "Sci-Fi", ("j1", "j2"))]
    assert target.mutations("update_collection_metadata") == [
        ("update_collection_metadata", "col-1", "Space and robots", None)
    ]
    assert result.collections_added == 1


def test_duplicate_matches_are_collapsed() -> None:
    target = FakeTarget(catalog=[movie("j1", "Alien", imdb="tt0078748")])
    reconciler, _ = _reconciler(target, dry_run=False)

    members = [movie("p1", "Alien", imdb="tt0078748"), movie("p2", "Alien (Director's Cut)", imdb="tt0078748")]
    asyncio.run(reconciler.reconcile(_spec("Alien", *members), SyncResult()))

    assert target.collection_items["col-1"] == ["j1"]


def test_dry_run_is_idempotent_and_never_mutates() -> None:
    target = FakeTarget(
        catalog=[movie("j1", "Alien"), movie("j2", "Heat")],
        collections={"old": TargetCollection(id="old", title="crime")},
    )
    specs = [_spec("Sci-Fi", movie("p1", "Alien")), _spec("Crime", movie("p2", "Heat"))]

    runs = []
    for _ in range(2):
        reconciler, executor = _reconciler(target, dry_run=True)
        result = SyncResult(details=DryRunDetails())
        outcomes = asyncio.run(reconciler.reconcile_all(specs, result))
        runs.append((outcomes, result.details, executor.planned))
        assert executor.mutation_count == 0

    assert target.calls == []
    assert runs[0] == runs[1]
    outcomes, details, _ = runs[0]
    assert outcomes == [WOULD_CREATE, WOULD_UPDATE]
    assert [c.title for c in details.collections_to_add] == ["Sci-Fi"]
    assert [c.title for c in details.collections_to_update] == ["Crime"]
    assert details.collections_to_add[0].items == ["Alien"]


def test_existing_collection_is_deleted_then_recreated() -> None:
    target = FakeTarget(
        catalog=[movie("j1", "Alien")],
        collections={"old": TargetCollection(id="old", title="Sci-Fi")},
    )
    reconciler, _ = _reconciler(target, dry_run=False)
    result = SyncResult()

    outcome = asyncio.run(reconciler.reconcile(_spec("Sci-Fi", movie("p1", "Alien")), result))

    assert outcome == RECREATED
    assert [call[0] for call in target.calls[:2]] == ["delete_collection", "create_collection"]
    assert "old" not in target.collections
    assert result.collections_updated == 1


def test_surviving_collection_is_renamed_before_creation() -> None:
    class StickyTarget(FakeTarget):
        async def delete_collection(self, collection_id: str) -> None:
            # Server accepted the delete but the item is still listed
            self.calls.append(("delete_collection", collection_id))

    target = StickyTarget(
        catalog=[movie("j1", "Alien")],
        collections={"old": TargetCollection(id="old", title="Sci-Fi")},
    )
    reconciler, _ = _reconciler(target, dry_run=False)

    asyncio.run(reconciler.reconcile(_spec("Sci-Fi", movie("p1", "Alien")), SyncResult()))

    assert target.mutations("rename_collection") == [("rename_collection", "old", f"{COLLISION_PREFIX} Sci-Fi")]
    assert [call[0] for call in target.calls[:3]] == ["delete_collection", "rename_collection", "create_collection"]


def test_collection_artwork_is_attached() -> None:
    source = FakeSource(images={"/library/collections/9/thumb": b"poster"})
    target = FakeTarget(catalog=[movie("j1", "Alien")])
    reconciler, _ = _reconciler(target, dry_run=False, source=source, artwork=True)
    spec = CollectionSpec(
        title="Sci-Fi",
        member_items=[movie("p1", "Alien")],
        artwork=ArtworkRefs(thumb="/library/collections/9/thumb", art="/library/collections/9/art"),
    )

    asyncio.run(reconciler.reconcile(spec, SyncResult()))

    assert target.mutations("attach_artwork") == [
        ("attach_artwork", "col-1", "Primary", b"poster"),
        ("attach_artwork", "col-1", "Backdrop", b"image:/library/collections/9/art"),
    ]


def test_one_failing_collection_does_not_stop_the_others() -> None:
    target = FakeTarget(catalog=[movie("j1", "Alien"), movie("j2", "Heat")], failing_titles={"Sci-Fi"})
    reconciler, _ = _reconciler(target, dry_run=False)
    result = SyncResult()
    seen = []

    outcomes = asyncio.run(reconciler.reconcile_all(
        [_spec("Sci-Fi", movie("p1", "Alien")), _spec("Crime", movie("p2", "Heat"))],
        result,
        progress=lambda processed, total, spec: seen.append((processed, total, spec.title)),
    ))

    assert outcomes == [FAILED, CREATED]
    assert len(result.errors) == 1 and "Sci-Fi" in result.errors[0]
    assert result.collections_added == 1
    assert seen == [(1, 2, "Sci-Fi"), (2, 2, "Crime")]
