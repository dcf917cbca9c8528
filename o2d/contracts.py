"""Core record contracts for the O2D follow-up engine."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import DEFAULT_TAT_UNIT, DEFAULT_TAT_VALUE, FIRST_STEP, STEP_COUNT


TatUnit = Literal["hours", "days"]


class StepRecord(BaseModel):
    """Planned/actual pair and responses recorded for one step."""

    planned: Optional[datetime] = None
    actual: Optional[datetime] = None
    responses: Dict[str, str] = Field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return self.actual is not None


def _empty_steps() -> List[StepRecord]:
    return [StepRecord() for _ in range(STEP_COUNT)]


def check_step_number(number: int) -> int:
    if not FIRST_STEP <= number <= STEP_COUNT:
        raise IndexError(f"Step number must be between 1 and {STEP_COUNT}: {number}")
    return number


class StepPatch(BaseModel):
    """Changes for a single step.

    Only fields that were explicitly set travel with the patch. An explicit
    ``None`` (or empty ``responses``) clears the stored value.
    """

    planned: Optional[datetime] = None
    actual: Optional[datetime] = None
    responses: Optional[Dict[str, str]] = None


class ItemPatch(BaseModel):
    """Minimal diff sent to the persistence collaborator."""

    cancelled: Optional[bool] = None
    steps: Dict[int, StepPatch] = Field(default_factory=dict)

    @field_validator("steps")
    @classmethod
    def validate_step_numbers(cls, value: Dict[int, StepPatch]) -> Dict[int, StepPatch]:
        for number in value:
            check_step_number(number)
        return value

    def is_empty(self) -> bool:
        return "cancelled" not in self.model_fields_set and not self.steps

    def to_wire(self) -> dict:
        """Serialize only the explicitly-set fields."""
        return self.model_dump(mode="json", exclude_unset=True)


class Item(BaseModel):
    """One order line tracked through the follow-up steps."""

    id: int
    party_id: int
    party_name: Optional[str] = None
    item: str
    qty: float = 0
    cancelled: bool = False
    steps: List[StepRecord] = Field(default_factory=_empty_steps)

    @field_validator("steps")
    @classmethod
    def validate_step_count(cls, value: List[StepRecord]) -> List[StepRecord]:
        if len(value) != STEP_COUNT:
            raise ValueError(f"An item carries exactly {STEP_COUNT} steps, got {len(value)}")
        return value

    def step(self, number: int) -> StepRecord:
        """Return the record for step ``number`` (1-based)."""
        return self.steps[check_step_number(number) - 1]

    def response(self, number: int, field: str) -> Optional[str]:
        return self.step(number).responses.get(field)

    def apply_patch(self, patch: ItemPatch) -> "Item":
        """Return a copy of this item with ``patch`` applied."""
        updated = self.model_copy(deep=True)
        if "cancelled" in patch.model_fields_set and patch.cancelled is not None:
            updated.cancelled = patch.cancelled
        for number, step_patch in patch.steps.items():
            record = updated.step(number)
            for name in step_patch.model_fields_set:
                value = getattr(step_patch, name)
                if name == "responses":
                    value = dict(value or {})
                setattr(record, name, value)
        return updated


class StepConfig(BaseModel):
    """Per-step doer assignment and TAT duration."""

    step: int = Field(ge=FIRST_STEP, le=STEP_COUNT)
    step_name: str = ""
    doer_name: str = ""
    tat_value: float = Field(default=DEFAULT_TAT_VALUE, gt=0)
    tat_unit: TatUnit = DEFAULT_TAT_UNIT


class PatchTarget(BaseModel):
    """Addressing mode for a patch: a single item or a whole party."""

    kind: Literal["item", "party"]
    id: int

    @classmethod
    def for_item(cls, item_id: int) -> "PatchTarget":
        return cls(kind="item", id=item_id)

    @classmethod
    def for_party(cls, party_id: int) -> "PatchTarget":
        return cls(kind="party", id=party_id)

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.kind}:{self.id}"
