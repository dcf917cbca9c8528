"""Static definitions of the eight O2D follow-up steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Literal, Optional, Tuple

from .contracts import Item
from .errors import ValidationError

ResponseKind = Literal["select", "custom"]
SkipPredicate = Callable[[Item], bool]

DESTINATION_FIELD = "Destination"
STOCK_FIELD = "Stock Availability"
BILL_NO_FIELD = "Bill No."
REVENUE_FIELD = "Revenue"
ITEM_COST_FIELD = "Item Cost"
TOTAL_COST_FIELD = "Total Cost"

LOCAL_DESTINATION = "Local"
STOCK_AVAILABLE = "Stock Available"


@dataclass(frozen=True)
class StepDefinition:
    """Describes one step: its prompt, response fields and skip rule.

    The first entry of ``fields`` is the primary response field. For
    ``select`` steps it must hold one of ``options``; for ``custom`` steps it
    must be non-empty while the remaining fields are optional.
    """

    number: int
    name: str
    prompt: str
    fields: Tuple[str, ...]
    kind: ResponseKind = "select"
    options: Tuple[str, ...] = ()
    skip_when: Optional[SkipPredicate] = field(default=None, compare=False)

    @property
    def primary_field(self) -> str:
        return self.fields[0]

    def is_skipped(self, item: Item) -> bool:
        return bool(self.skip_when and self.skip_when(item))


def _production_not_needed(item: Item) -> bool:
    return item.response(2, STOCK_FIELD) == STOCK_AVAILABLE


def _local_after_warehouse(item: Item) -> bool:
    return (
        item.response(1, DESTINATION_FIELD) == LOCAL_DESTINATION
        and item.step(4).is_complete
    )


_YES_NO = ("Yes", "No")

STEP_DEFINITIONS: Tuple[StepDefinition, ...] = (
    StepDefinition(
        number=1,
        name="Destination",
        prompt="Local or Out Station?",
        fields=(DESTINATION_FIELD,),
        options=(LOCAL_DESTINATION, "Out Station"),
    ),
    StepDefinition(
        number=2,
        name="Check Stock Availability",
        prompt="Stock Available or Not Available?",
        fields=(STOCK_FIELD,),
        options=(STOCK_AVAILABLE, "Not Available"),
    ),
    StepDefinition(
        number=3,
        name="Do Production & Communicate",
        prompt="Production Completed?",
        fields=("Production Status",),
        options=_YES_NO,
        skip_when=_production_not_needed,
    ),
    StepDefinition(
        number=4,
        name="Inform Warehouse Keeper for dispatch",
        prompt="Information Shared?",
        fields=("Information Status",),
        options=_YES_NO,
    ),
    StepDefinition(
        number=5,
        name="Talk to Transporter",
        prompt="Done?",
        fields=("Status_5",),
        options=_YES_NO,
        skip_when=_local_after_warehouse,
    ),
    StepDefinition(
        number=6,
        name="Account Process",
        prompt="Dispatch Status?",
        fields=("Dispatch Status",),
        options=("Dispatched",),
    ),
    StepDefinition(
        number=7,
        name="Fill the cost Form",
        prompt="Bill, Revenue & Cost Details",
        fields=(BILL_NO_FIELD, REVENUE_FIELD, ITEM_COST_FIELD, TOTAL_COST_FIELD),
        kind="custom",
    ),
    StepDefinition(
        number=8,
        name="File the Bill in Sales Bill File",
        prompt="Done?",
        fields=("Status_8",),
        options=_YES_NO,
    ),
)


class StepCatalog:
    """Lookup table over the step definitions."""

    def __init__(self, definitions: Tuple[StepDefinition, ...] = STEP_DEFINITIONS) -> None:
        self._definitions: Dict[int, StepDefinition] = {d.number: d for d in definitions}

    def get(self, number: int) -> StepDefinition:
        try:
            return self._definitions[number]
        except KeyError:
            raise ValidationError(f"Unknown follow-up step: {number}") from None

    def is_skipped(self, item: Item, number: int) -> bool:
        return self.get(number).is_skipped(item)

    def numbers(self) -> Tuple[int, ...]:
        return tuple(sorted(self._definitions))

    def __iter__(self) -> Iterator[StepDefinition]:
        return (self._definitions[n] for n in self.numbers())

    def __len__(self) -> int:
        return len(self._definitions)


CATALOG = StepCatalog()
