"""Client session over the follow-up engine and a persistence collaborator."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional
from zoneinfo import ZoneInfo

from .config import O2DConfig, load_config
from .contracts import Item, ItemPatch, PatchTarget, StepConfig
from .engine import ResetScope, StepEngine
from .errors import PersistenceError, ValidationError
from .persistence import ItemRepository, get_repository
from .scheduling import StepConfigTable, TatScheduler, default_step_configs

logger = logging.getLogger(__name__)


class FollowUpSession:
    """Holds the local view of items and routes every write through the repository.

    Writes are synchronous until acknowledged: the cached item only changes
    once the repository returns the stored version, so a failed submission
    leaves local state untouched and a retry derives the pending step from
    the same data.
    """

    def __init__(
        self, repository: ItemRepository, engine: Optional[StepEngine] = None
    ) -> None:
        self.repository = repository
        self.engine = engine or StepEngine()
        self._items: Dict[int, Item] = {}
        self._generation = 0
        self._inflight = 0

    @classmethod
    def from_config(
        cls,
        config: Optional[O2DConfig] = None,
        repository: Optional[ItemRepository] = None,
    ) -> "FollowUpSession":
        """Build a session whose clock and calendar follow ``config``."""
        config = config or load_config()
        tz = ZoneInfo(config.schedule.timezone)
        scheduler = TatScheduler(non_working_day=config.schedule.non_working_day)
        engine = StepEngine(scheduler=scheduler, clock=lambda: datetime.now(tz))
        return cls(repository or get_repository(config=config), engine)

    # ------------------------------------------------------------------
    # Local read state
    @property
    def items(self) -> List[Item]:
        return [self._items[item_id] for item_id in sorted(self._items)]

    @property
    def write_generation(self) -> int:
        """Counter bumped on every acknowledged write."""
        return self._generation

    @property
    def busy(self) -> bool:
        return self._inflight > 0

    def get_item(self, item_id: int) -> Item:
        try:
            return self._items[item_id]
        except KeyError:
            raise ValidationError(f"Unknown item {item_id}", item_id=item_id) from None

    def party_items(self, party_id: int, include_cancelled: bool = False) -> List[Item]:
        return [
            item
            for item in self.items
            if item.party_id == party_id and (include_cancelled or not item.cancelled)
        ]

    def pending_step(self, item_id: int) -> Optional[int]:
        return self.engine.determine_pending_step(self.get_item(item_id))

    def update_step_config(self, configs: Iterable[StepConfig]) -> None:
        configs = list(configs)
        if not configs:
            logger.warning("No step configuration stored; using 1 hour per step")
            configs = default_step_configs(self.engine.catalog)
        self.engine.scheduler.configs = StepConfigTable(configs)

    def replace_state(
        self,
        items: Iterable[Item],
        configs: Optional[Iterable[StepConfig]] = None,
        generation: Optional[int] = None,
    ) -> bool:
        """Replace the local view with a fresh snapshot.

        When ``generation`` is given and a write was acknowledged (or is in
        flight) since it was taken, the snapshot is dropped and ``False`` is
        returned.
        """
        if generation is not None and (generation != self._generation or self._inflight):
            logger.debug("Discarding snapshot older than the latest acknowledged write")
            return False
        self._items = {item.id: item for item in items}
        if configs is not None:
            self.update_step_config(configs)
        return True

    async def refresh(self) -> None:
        generation = self._generation
        items = await self.repository.fetch_items()
        configs = await self.repository.fetch_step_config()
        self.replace_state(items, configs, generation=generation)

    # ------------------------------------------------------------------
    # Writes
    async def _write(self, target: PatchTarget, patch: ItemPatch) -> List[Item]:
        self._inflight += 1
        try:
            updated = await self.repository.apply_patch(target, patch)
        except PersistenceError as exc:
            logger.error(f"Failed to apply patch to {target}: {exc}")
            raise
        finally:
            self._inflight -= 1
        for item in updated:
            self._items[item.id] = item
        self._generation += 1
        return updated

    async def _write_item(self, item_id: int, patch: ItemPatch) -> Item:
        updated = await self._write(PatchTarget.for_item(item_id), patch)
        if not updated:
            raise PersistenceError(
                f"Item {item_id} missing from acknowledgement",
                target=PatchTarget.for_item(item_id),
            )
        return updated[0]

    async def create_item(
        self,
        item_id: int,
        party_id: int,
        item: str,
        qty: float,
        party_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Item:
        """Register a new item with its first step scheduled."""
        new_item = Item(id=item_id, party_id=party_id, party_name=party_name, item=item, qty=qty)
        new_item = new_item.apply_patch(self.engine.start_follow_up(now))
        stored = await self.repository.create_item(new_item)
        self._items[stored.id] = stored
        self._generation += 1
        return stored

    async def submit_step(
        self,
        item_id: int,
        step_number: int,
        responses: Mapping[str, object],
        now: Optional[datetime] = None,
    ) -> Item:
        item = self.get_item(item_id)
        patch = self.engine.submit_step(item, step_number, responses, now)
        return await self._write_item(item_id, patch)

    async def submit_party_step(
        self,
        party_id: int,
        step_number: int,
        responses: Mapping[str, object],
        now: Optional[datetime] = None,
    ) -> List[Item]:
        """Apply one submission to every active item of a party.

        Every item must be pending at ``step_number`` and, once answered,
        must schedule the same next step; otherwise the items need separate
        submissions. "Total Cost" is not derived since quantities differ per
        item.
        """
        items = self.party_items(party_id)
        if not items:
            raise ValidationError(f"Party {party_id} has no active items")
        now = now or self.engine.clock()
        patches = [
            self.engine.submit_step(item, step_number, responses, now, derive_totals=False)
            for item in items
        ]
        patch = patches[0]
        for item, other in zip(items[1:], patches[1:]):
            if other != patch:
                raise ValidationError(
                    f"Items of party {party_id} diverge after step {step_number}; "
                    f"submit item {item.id} separately",
                    item_id=item.id,
                )
        return await self._write(PatchTarget.for_party(party_id), patch)

    async def reset_follow_up(self, item_id: int, from_step: ResetScope) -> Item:
        patch = self.engine.reset_follow_up(self.get_item(item_id), from_step)
        return await self._write_item(item_id, patch)

    async def reset_party_follow_up(self, party_id: int, from_step: ResetScope) -> List[Item]:
        items = self.party_items(party_id)
        if not items:
            raise ValidationError(f"Party {party_id} has no active items")
        patch = self.engine.reset_follow_up(items[0], from_step)
        return await self._write(PatchTarget.for_party(party_id), patch)

    async def set_cancelled(self, item_id: int, cancelled: bool) -> Item:
        patch = self.engine.set_cancelled(self.get_item(item_id), cancelled)
        return await self._write_item(item_id, patch)

    async def set_party_cancelled(self, party_id: int, cancelled: bool) -> List[Item]:
        # party patches skip cancelled items, so each item is addressed directly
        items = self.party_items(party_id, include_cancelled=True)
        if not items:
            raise ValidationError(f"Party {party_id} has no items")
        return [await self.set_cancelled(item.id, cancelled) for item in items]
