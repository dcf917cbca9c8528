from datetime import datetime, timezone

import pytest
import pytest_asyncio

from o2d.contracts import Item, StepConfig
from o2d.engine import StepEngine
from o2d.persistence import InMemoryItemRepository
from o2d.scheduling import StepConfigTable, TatScheduler
from o2d.session import FollowUpSession

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)  # a Monday


def at(hour: int, minute: int = 0, day: int = 1) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def step_configs():
    configs = [StepConfig(step=n, tat_value=1, tat_unit="hours") for n in range(1, 9)]
    configs[1] = StepConfig(step=2, doer_name="Stores", tat_value=2, tat_unit="hours")
    return configs


@pytest.fixture
def engine(step_configs):
    return StepEngine(
        scheduler=TatScheduler(StepConfigTable(step_configs)), clock=lambda: T0
    )


@pytest.fixture
def make_item(engine):
    """Build an item advanced through the given ``(step, responses)`` answers."""

    def factory(item_id=1, party_id=10, qty=4, answers=(), cancelled=False):
        item = Item(id=item_id, party_id=party_id, item="Steel Rod", qty=qty, cancelled=cancelled)
        item = item.apply_patch(engine.start_follow_up(T0))
        now = T0
        for step, responses in answers:
            item = item.apply_patch(engine.submit_step(item, step, responses, now=now))
            now = now.replace(minute=now.minute + 5)
        return item

    return factory


@pytest.fixture
def repository():
    return InMemoryItemRepository()


@pytest_asyncio.fixture
async def session(repository, engine, step_configs):
    await repository.save_step_config(step_configs)
    return FollowUpSession(repository, engine)


def answers_until(step, destination="Out Station", stock="Not Available"):
    """Answers that walk an item up to (but excluding) ``step``."""
    full = [
        (1, {"Destination": destination}),
        (2, {"Stock Availability": stock}),
        (3, {"Production Status": "Yes"}),
        (4, {"Information Status": "Yes"}),
        (5, {"Status_5": "Yes"}),
        (6, {"Dispatch Status": "Dispatched"}),
        (7, {"Bill No.": "B-17"}),
        (8, {"Status_8": "Yes"}),
    ]
    skipped = set()
    if stock == "Stock Available":
        skipped.add(3)
    if destination == "Local":
        skipped.add(5)
    return [(n, r) for n, r in full if n < step and n not in skipped]
