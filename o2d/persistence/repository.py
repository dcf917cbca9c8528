"""Repository abstraction for follow-up state persistence."""

from __future__ import annotations

from typing import Protocol

from ..contracts import Item, ItemPatch, PatchTarget, StepConfig


class ItemRepository(Protocol):
    """Protocol for follow-up persistence backends.

    Implementations raise :class:`~o2d.errors.PersistenceError` when a
    request is rejected or times out.
    """

    async def fetch_items(self) -> list[Item]:
        """Return every item including all step records."""

    async def fetch_step_config(self) -> list[StepConfig]:
        """Return the stored step configuration rows (may be empty)."""

    async def apply_patch(self, target: PatchTarget, patch: ItemPatch) -> list[Item]:
        """Apply ``patch`` to one item, or to every non-cancelled item of a party.

        Returns the updated items as stored.
        """

    async def create_item(self, item: Item) -> Item:
        """Persist a newly created item."""

    async def save_step_config(self, configs: list[StepConfig]) -> None:
        """Replace the stored step configuration."""
