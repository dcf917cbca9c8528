"""Background refresh loop."""

import asyncio

import pytest

from conftest import answers_until
from o2d.errors import PersistenceError
from o2d.session import FollowUpSession
from o2d.sync import SyncLoop


@pytest.mark.asyncio
async def test_tick_replaces_local_state(session, repository, make_item):
    await repository.create_item(make_item(1))
    loop = SyncLoop(session, interval=0.01)

    assert await loop.tick()
    assert [item.id for item in session.items] == [1]
    assert loop.ticks == 1


@pytest.mark.asyncio
async def test_snapshot_is_discarded_when_write_lands_mid_fetch(session, repository, make_item):
    await repository.create_item(make_item(1))
    await session.refresh()
    loop = SyncLoop(session, interval=0.01)
    original = repository.fetch_items

    async def fetch_during_write():
        snapshot = await original()
        # a submission is acknowledged while the fetch is in flight
        await session.submit_step(1, 1, {"Destination": "Local"})
        return snapshot

    repository.fetch_items = fetch_during_write

    assert not await loop.tick()
    assert session.pending_step(1) == 2


@pytest.mark.asyncio
async def test_failed_tick_is_counted_and_keeps_state(session, repository, make_item):
    await repository.create_item(make_item(1, answers=answers_until(3)))
    await session.refresh()
    loop = SyncLoop(session, interval=0.01)

    async def unavailable():
        raise PersistenceError("timeout")

    repository.fetch_items = unavailable

    assert not await loop.tick()
    assert loop.failures == 1
    assert session.pending_step(1) == 3


@pytest.mark.asyncio
async def test_start_and_stop(session, repository, make_item):
    loop = SyncLoop(session, interval=0.01)
    loop.start()
    assert loop.running
    with pytest.raises(RuntimeError):
        loop.start()

    await repository.create_item(make_item(5))
    await asyncio.sleep(0.05)
    await loop.stop()

    assert not loop.running
    assert loop.ticks >= 1
    assert [item.id for item in session.items] == [5]


@pytest.mark.asyncio
async def test_lifespan_ends_loop(session):
    loop = SyncLoop(session, interval=0.01)
    loop.start(lifespan=0.03)

    await asyncio.wait_for(loop.wait(), timeout=1)

    assert not loop.running
    assert loop.ticks >= 1


@pytest.mark.asyncio
async def test_context_manager_stops_loop(session):
    async with SyncLoop(session, interval=0.01) as loop:
        await asyncio.sleep(0.02)
        assert loop.running
    assert not loop.running


def test_interval_must_be_positive(repository):
    with pytest.raises(ValueError):
        SyncLoop(FollowUpSession(repository), interval=0)
