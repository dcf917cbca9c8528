"""Session writes, party operations and local state handling."""

import pytest

from conftest import T0, answers_until, at
from o2d.contracts import StepConfig
from o2d.errors import PersistenceError, StaleStateError, ValidationError
from o2d.persistence import InMemoryItemRepository
from o2d.session import FollowUpSession


class FailingRepository(InMemoryItemRepository):
    """Accepts reads and creates but rejects every patch."""

    async def apply_patch(self, target, patch):
        raise PersistenceError("service unavailable", target=target)


async def _seed(session, repository, *items):
    for item in items:
        await repository.create_item(item)
    await session.refresh()


@pytest.mark.asyncio
async def test_create_item_schedules_first_step(session, repository):
    item = await session.create_item(1, 10, "Steel Rod", 4, party_name="Acme")

    assert item.step(1).planned == at(11)
    assert session.pending_step(1) == 1
    stored = await repository.fetch_items()
    assert stored[0].party_name == "Acme"


@pytest.mark.asyncio
async def test_create_duplicate_item_fails(session):
    await session.create_item(1, 10, "Steel Rod", 4)

    with pytest.raises(PersistenceError):
        await session.create_item(1, 10, "Steel Rod", 4)


@pytest.mark.asyncio
async def test_submit_updates_local_state_after_ack(session, repository, make_item):
    await _seed(session, repository, make_item(1))
    generation = session.write_generation

    item = await session.submit_step(1, 1, {"Destination": "Local"}, now=at(10, 30))

    assert item.step(1).actual == at(10, 30)
    assert session.get_item(1) == item
    assert session.write_generation == generation + 1
    assert (await repository.fetch_items())[0] == item


@pytest.mark.asyncio
async def test_resubmit_after_ack_is_stale(session, repository, make_item):
    await _seed(session, repository, make_item(1))
    await session.submit_step(1, 1, {"Destination": "Local"})

    with pytest.raises(StaleStateError):
        await session.submit_step(1, 1, {"Destination": "Out Station"})


@pytest.mark.asyncio
async def test_failed_write_leaves_local_state_untouched(engine, step_configs, make_item):
    repository = FailingRepository()
    await repository.save_step_config(step_configs)
    session = FollowUpSession(repository, engine)
    await _seed(session, repository, make_item(1))
    before = session.get_item(1)

    with pytest.raises(PersistenceError):
        await session.submit_step(1, 1, {"Destination": "Local"})

    assert session.get_item(1) == before
    assert session.pending_step(1) == 1
    assert not session.busy
    assert session.write_generation == 0


@pytest.mark.asyncio
async def test_unknown_item_is_a_validation_error(session):
    with pytest.raises(ValidationError):
        await session.submit_step(99, 1, {"Destination": "Local"})


@pytest.mark.asyncio
async def test_party_submission_updates_every_active_item(session, repository, make_item):
    await _seed(
        session,
        repository,
        make_item(1, party_id=10, answers=answers_until(2)),
        make_item(2, party_id=10, answers=answers_until(2)),
        make_item(3, party_id=10, answers=answers_until(2), cancelled=True),
        make_item(4, party_id=20, answers=answers_until(2)),
    )

    updated = await session.submit_party_step(
        10, 2, {"Stock Availability": "Stock Available"}, now=at(12)
    )

    assert sorted(item.id for item in updated) == [1, 2]
    for item_id in (1, 2):
        assert session.pending_step(item_id) == 4
        assert session.get_item(item_id).step(4).planned == at(13)
    assert session.get_item(3).step(2).actual is None
    assert session.get_item(4).step(2).actual is None


@pytest.mark.asyncio
async def test_party_submission_requires_common_pending_step(session, repository, make_item):
    await _seed(
        session,
        repository,
        make_item(1, party_id=10, answers=answers_until(2)),
        make_item(2, party_id=10, answers=answers_until(3)),
    )

    with pytest.raises(ValidationError):
        await session.submit_party_step(10, 2, {"Stock Availability": "Not Available"})
    assert session.get_item(1).step(2).actual is None


@pytest.mark.asyncio
async def test_party_submission_rejects_diverging_next_steps(session, repository, make_item):
    await _seed(
        session,
        repository,
        make_item(1, party_id=10, answers=answers_until(4, destination="Local")),
        make_item(2, party_id=10, answers=answers_until(4, destination="Out Station")),
    )

    # the local item skips the transporter step once step 4 is done
    with pytest.raises(ValidationError) as exc_info:
        await session.submit_party_step(10, 4, {"Information Status": "Yes"}, now=at(14))
    assert exc_info.value.item_id == 2
    assert session.get_item(1).step(4).actual is None
    assert session.get_item(2).step(4).actual is None

    local = await session.submit_step(1, 4, {"Information Status": "Yes"}, now=at(14))
    out_station = await session.submit_step(2, 4, {"Information Status": "Yes"}, now=at(14))
    assert session.pending_step(1) == 6
    assert local.step(5).planned is None
    assert session.pending_step(2) == 5
    assert out_station.step(5).planned == at(15)


@pytest.mark.asyncio
async def test_party_cost_form_does_not_derive_totals(session, repository, make_item):
    await _seed(
        session,
        repository,
        make_item(1, party_id=10, qty=2, answers=answers_until(7)),
        make_item(2, party_id=10, qty=5, answers=answers_until(7)),
    )

    updated = await session.submit_party_step(10, 7, {"Bill No.": "B-1", "Item Cost": "10"})

    assert all(item.response(7, "Total Cost") is None for item in updated)


@pytest.mark.asyncio
async def test_party_with_no_active_items_is_rejected(session, repository, make_item):
    await _seed(session, repository, make_item(1, party_id=10, cancelled=True))

    with pytest.raises(ValidationError):
        await session.submit_party_step(10, 1, {"Destination": "Local"})


@pytest.mark.asyncio
async def test_reset_item_and_party(session, repository, make_item):
    await _seed(
        session,
        repository,
        make_item(1, party_id=10, answers=answers_until(6)),
        make_item(2, party_id=10, answers=answers_until(6)),
        make_item(3, party_id=30, answers=answers_until(6)),
    )

    await session.reset_party_follow_up(10, "all")
    item = await session.reset_follow_up(3, 4)

    assert session.pending_step(1) == 1
    assert session.pending_step(2) == 1
    assert session.get_item(1).step(1).planned == at(11)
    assert item.step(4).actual is None
    assert session.pending_step(3) == 4


@pytest.mark.asyncio
async def test_cancel_and_restore_party(session, repository, make_item):
    await _seed(
        session,
        repository,
        make_item(1, party_id=10),
        make_item(2, party_id=10, cancelled=True),
    )

    cancelled = await session.set_party_cancelled(10, True)
    assert [item.cancelled for item in cancelled] == [True, True]

    restored = await session.set_party_cancelled(10, False)
    assert [item.cancelled for item in restored] == [False, False]
    assert session.party_items(10) == restored


@pytest.mark.asyncio
async def test_refresh_applies_stored_step_config(session, repository, make_item):
    await repository.save_step_config([StepConfig(step=1, tat_value=3)])
    await _seed(session, repository, make_item(1))

    await session.submit_step(1, 1, {"Destination": "Local"}, now=T0)

    # step 2 has no stored row any more and falls back to one hour
    assert session.get_item(1).step(2).planned == at(11)
    assert session.engine.scheduler.tat_for(1).tat_value == 3


@pytest.mark.asyncio
async def test_empty_step_config_uses_defaults(session, repository, caplog):
    await repository.save_step_config([])

    with caplog.at_level("WARNING"):
        await session.refresh()

    assert session.engine.scheduler.tat_for(2).tat_value == 1
    assert "No step configuration" in caplog.text


def test_replace_state_discards_snapshot_taken_before_write(engine, make_item):
    session = FollowUpSession(InMemoryItemRepository(), engine)
    session.replace_state([make_item(1)])
    generation = session.write_generation
    session._generation += 1

    assert not session.replace_state([], generation=generation)
    assert [item.id for item in session.items] == [1]
    assert session.replace_state([], generation=session.write_generation)
    assert session.items == []
