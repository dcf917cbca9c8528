"""In-memory implementation of the item repository."""

from __future__ import annotations

import asyncio
from typing import Dict

from ..contracts import Item, ItemPatch, PatchTarget, StepConfig
from ..errors import PersistenceError
from .repository import ItemRepository


class InMemoryItemRepository(ItemRepository):
    """Store items and step configuration in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._items: Dict[int, Item] = {}
        self._configs: list[StepConfig] = []
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def fetch_items(self) -> list[Item]:
        return [item.model_copy(deep=True) for item in self._items.values()]

    async def fetch_step_config(self) -> list[StepConfig]:
        return [config.model_copy() for config in self._configs]

    async def apply_patch(self, target: PatchTarget, patch: ItemPatch) -> list[Item]:
        async with self._lock:
            if target.kind == "item":
                if target.id not in self._items:
                    raise PersistenceError(f"Item {target.id} not found", target=target)
                ids = [target.id]
            else:
                ids = [
                    item.id
                    for item in self._items.values()
                    if item.party_id == target.id and not item.cancelled
                ]
                if not ids:
                    raise PersistenceError(
                        f"No active items for party {target.id}", target=target
                    )
            updated = []
            for item_id in ids:
                self._items[item_id] = self._items[item_id].apply_patch(patch)
                updated.append(self._items[item_id].model_copy(deep=True))
            return updated

    async def create_item(self, item: Item) -> Item:
        async with self._lock:
            if item.id in self._items:
                raise PersistenceError(f"Item {item.id} already exists")
            self._items[item.id] = item.model_copy(deep=True)
        return item

    async def save_step_config(self, configs: list[StepConfig]) -> None:
        self._configs = [config.model_copy() for config in configs]
