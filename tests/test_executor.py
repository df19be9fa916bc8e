from __future__ import annotations

import asyncio

import pytest

from mediabridge.core.errors import CatalogError
from mediabridge.core.executor import MutationExecutor
from mediabridge.core.models import CollectionSpec, TargetCollection, WatchState

from fakes import FakeSource, FakeTarget


def test_dry_run_plans_without_calling_clients() -> None:
    source, target = FakeSource(), FakeTarget()
    executor = MutationExecutor(source, target, dry_run=True)

    async def scenario():
        assert await executor.create_collection(CollectionSpec(title="Sci-Fi"), ["j1"]) is None
        await executor.delete_collection(TargetCollection(id="c1", title="Old"))
        await executor.attach_artwork("j1", None, "Primary", "Heat")
        await executor.set_source_watch_state("p1", WatchState(watched=True), "Heat")

    asyncio.run(scenario())

    assert target.calls == [] and source.set_calls == []
    assert executor.mutation_count == 0
    assert executor.planned == [
        "Create collection 'Sci-Fi' with 1 items",
        "Delete collection 'Old' (c1)",
        "Attach Primary image to 'Heat'",
        "Set source state of 'Heat' to watched",
    ]


def test_live_mode_counts_applied_calls() -> None:
    source, target = FakeSource(), FakeTarget()
    executor = MutationExecutor(source, target)

    async def scenario():
        collection_id = await executor.create_collection(CollectionSpec(title="Sci-Fi"), ["j1"])
        await executor.update_collection_metadata(collection_id, "summary", "Sort")
        await executor.set_target_watch_state("u1", "j1", WatchState(position_seconds=90), "Heat")

    asyncio.run(scenario())

    assert executor.mutation_count == 3
    assert executor.summary() == {
        "create_collection": 1,
        "update_collection_metadata": 1,
        "set_target_watch_state": 1,
    }
    assert target.states[("u1", "j1")] == WatchState(position_seconds=90)


def test_live_artwork_without_bytes_is_an_error() -> None:
    executor = MutationExecutor(FakeSource(), FakeTarget())

    with pytest.raises(CatalogError):
        asyncio.run(executor.attach_artwork("j1", b"", "Backdrop", "Heat"))


def test_rejected_source_update_is_an_error() -> None:
    class RejectingSource(FakeSource):
        async def set_watch_state(self, item_id, state):
            return False

    executor = MutationExecutor(RejectingSource(), FakeTarget())

    with pytest.raises(CatalogError):
        asyncio.run(executor.set_source_watch_state("p1", WatchState(watched=True)))


def test_failed_write_is_not_counted_as_applied() -> None:
    target = FakeTarget(failing_titles={"Sci-Fi"})
    executor = MutationExecutor(FakeSource(), target)

    with pytest.raises(CatalogError):
        asyncio.run(executor.create_collection(CollectionSpec(title="Sci-Fi"), ["j1"]))

    assert executor.mutation_count == 0
    assert executor.summary() == {}
    assert executor.applied == []
