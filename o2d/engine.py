"""Follow-up state machine for O2D items."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Literal, Mapping, Optional, Union

from .catalog import (
    CATALOG,
    ITEM_COST_FIELD,
    TOTAL_COST_FIELD,
    StepCatalog,
    StepDefinition,
)
from .constants import FIRST_STEP, STEP_COUNT
from .contracts import Item, ItemPatch, StepPatch
from .errors import StaleStateError, ValidationError
from .scheduling import TatScheduler

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
ResetScope = Union[int, Literal["all"]]

COST_FORM_STEP = 7


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StepEngine:
    """Derives the pending step of an item and builds patches for transitions.

    The engine never mutates an item. Every operation returns an
    :class:`ItemPatch` that the caller hands to the persistence collaborator.
    The pending step is derived on every call since skip rules depend on
    responses that may change later.
    """

    def __init__(
        self,
        scheduler: Optional[TatScheduler] = None,
        catalog: StepCatalog = CATALOG,
        clock: Optional[Clock] = None,
    ) -> None:
        self.scheduler = scheduler or TatScheduler()
        self.catalog = catalog
        self.clock = clock or utc_now

    # ------------------------------------------------------------------
    # Derived state
    def determine_pending_step(self, item: Item) -> Optional[int]:
        """Return the lowest non-skipped step without ``actual``, or ``None`` when complete."""
        for definition in self.catalog:
            if definition.is_skipped(item):
                continue
            if not item.step(definition.number).is_complete:
                return definition.number
        return None

    def is_complete(self, item: Item) -> bool:
        return self.determine_pending_step(item) is None

    def next_scheduling_target(self, item: Item, after_step: int) -> Optional[int]:
        for number in range(after_step + 1, STEP_COUNT + 1):
            if not self.catalog.is_skipped(item, number):
                return number
        return None

    # ------------------------------------------------------------------
    # Validation
    def check_pending(self, item: Item, step_number: int) -> None:
        """Raise unless ``step_number`` is the item's pending step."""
        pending = self.determine_pending_step(item)
        if pending == step_number:
            return
        if pending is None or item.step(step_number).is_complete:
            raise StaleStateError(
                f"Step {step_number} of item {item.id} is already complete "
                f"(pending: {pending or 'none'})",
                item_id=item.id,
            )
        raise ValidationError(
            f"Step {step_number} is not pending for item {item.id}; pending step is {pending}",
            item_id=item.id,
        )

    def validate_responses(
        self,
        item: Item,
        definition: StepDefinition,
        responses: Mapping[str, object],
        derive_totals: bool = True,
    ) -> Dict[str, str]:
        """Check ``responses`` against ``definition`` and return the cleaned mapping."""
        unknown = sorted(set(responses) - set(definition.fields))
        if unknown:
            raise ValidationError(
                f"Unknown response field(s) for step {definition.number}: {', '.join(unknown)}",
                item_id=item.id,
            )

        cleaned = {
            name: "" if value is None else str(value).strip()
            for name, value in responses.items()
        }
        primary = cleaned.get(definition.primary_field, "")
        if definition.kind == "select":
            if primary not in definition.options:
                raise ValidationError(
                    f"'{definition.primary_field}' must be one of "
                    f"{', '.join(definition.options)}; got '{primary}'",
                    item_id=item.id,
                )
        elif not primary:
            raise ValidationError(
                f"'{definition.primary_field}' is required for step {definition.number}",
                item_id=item.id,
            )

        if derive_totals and definition.number == COST_FORM_STEP:
            self._derive_total_cost(item, cleaned)
        return cleaned

    @staticmethod
    def _derive_total_cost(item: Item, responses: Dict[str, str]) -> None:
        # explicit totals win over the derived one
        if responses.get(TOTAL_COST_FIELD):
            return
        cost_text = responses.get(ITEM_COST_FIELD, "")
        if not cost_text:
            return
        try:
            cost = float(cost_text)
        except ValueError:
            logger.debug(f"Item cost '{cost_text}' is not numeric; total cost not derived")
            return
        responses[TOTAL_COST_FIELD] = f"{cost * item.qty:.2f}"

    # ------------------------------------------------------------------
    # Transitions
    def start_follow_up(self, now: Optional[datetime] = None) -> ItemPatch:
        """Schedule the first step of a newly created item."""
        now = now or self.clock()
        planned = self.scheduler.planned_for(FIRST_STEP, now)
        return ItemPatch(steps={FIRST_STEP: StepPatch(planned=planned)})

    def submit_step(
        self,
        item: Item,
        step_number: int,
        responses: Mapping[str, object],
        now: Optional[datetime] = None,
        derive_totals: bool = True,
    ) -> ItemPatch:
        """Complete the pending step and schedule the next required one.

        With ``derive_totals`` the cost form fills "Total Cost" from the item
        cost and the item quantity when no explicit total is given.

        Raises:
            StaleStateError: The step is already complete.
            ValidationError: The step is not pending or the responses are invalid.
        """
        definition = self.catalog.get(step_number)
        self.check_pending(item, step_number)
        cleaned = self.validate_responses(item, definition, responses, derive_totals)

        now = now or self.clock()
        steps: Dict[int, StepPatch] = {
            step_number: StepPatch(actual=now, responses=cleaned)
        }
        projected = item.apply_patch(ItemPatch(steps=steps))
        target = self.next_scheduling_target(projected, step_number)
        if target is not None:
            steps[target] = StepPatch(planned=self.scheduler.planned_for(target, now))
            logger.info(
                f"Item {item.id} completed step {step_number}; step {target} planned for {steps[target].planned}"
            )
        else:
            logger.info(f"Item {item.id} completed step {step_number}; follow-up complete")
        return ItemPatch(steps=steps)

    def reset_follow_up(self, item: Item, from_step: ResetScope) -> ItemPatch:
        """Clear recorded progress from ``from_step`` onwards, or everything.

        ``"all"`` returns the item to its just-created state and keeps the
        first step's planned time. A numeric ``from_step`` keeps that step's
        planned time so it stays the pending step, and clears later steps
        entirely. Skip rules are not consulted.
        """
        steps: Dict[int, StepPatch] = {}
        if from_step == "all":
            steps[FIRST_STEP] = StepPatch(actual=None, responses={})
            first_cleared = FIRST_STEP + 1
        else:
            if from_step not in self.catalog.numbers():
                raise ValidationError(
                    f"Cannot reset item {item.id} from unknown step {from_step}",
                    item_id=item.id,
                )
            steps[from_step] = StepPatch(actual=None, responses={})
            first_cleared = from_step + 1

        for number in range(first_cleared, STEP_COUNT + 1):
            steps[number] = StepPatch(planned=None, actual=None, responses={})
        logger.info(f"Reset follow-up of item {item.id} from step {from_step}")
        return ItemPatch(steps=steps)

    def set_cancelled(self, item: Item, cancelled: bool) -> ItemPatch:
        logger.info(f"Item {item.id} cancelled={cancelled}")
        return ItemPatch(cancelled=cancelled)
