"""Read-side summaries of follow-up progress."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .contracts import Item
from .delay import DelayInfo, DelayStatus, classify
from .engine import StepEngine

_default_engine = StepEngine()


def item_delays(item: Item, now: Optional[datetime] = None) -> Dict[int, DelayInfo]:
    """Delay classification of every step that has a planned time."""
    delays = {}
    for number in range(1, len(item.steps) + 1):
        record = item.step(number)
        info = classify(record.planned, record.actual, now=now)
        if info.status is not DelayStatus.NO_TARGET:
            delays[number] = info
    return delays


def is_delayed(item: Item, now: Optional[datetime] = None) -> bool:
    return any(info.is_delayed for info in item_delays(item, now).values())


def step_counts(items: Iterable[Item], engine: Optional[StepEngine] = None) -> Dict[str, int]:
    """Count active items by pending step.

    Keys are ``"total"``, ``"step_1"`` .. ``"step_8"`` and ``"complete"``.
    Cancelled items are left out.
    """
    engine = engine or _default_engine
    counts = {"total": 0, "complete": 0}
    counts.update({f"step_{d.number}": 0 for d in engine.catalog})
    for item in items:
        if item.cancelled:
            continue
        counts["total"] += 1
        pending = engine.determine_pending_step(item)
        counts["complete" if pending is None else f"step_{pending}"] += 1
    return counts


def delayed_items(items: Iterable[Item], now: Optional[datetime] = None) -> List[Item]:
    return [item for item in items if not item.cancelled and is_delayed(item, now)]
