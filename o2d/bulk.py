"""Apply one follow-up submission to a batch of selected items."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .contracts import Item
from .errors import FollowUpError, ValidationError
from .session import FollowUpSession

logger = logging.getLogger(__name__)


class BulkSubmission(BaseModel):
    """Submission intent shared by every selected item.

    ``value`` answers the primary field of whatever step each item is
    pending at; ``responses`` names the response fields explicitly.
    """

    value: Optional[str] = None
    responses: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_single_shape(self) -> "BulkSubmission":
        if (self.value is None) == (not self.responses):
            raise ValueError("Provide either a fixed-choice value or response fields")
        return self


class BulkResult(BaseModel):
    """Per-item outcome of a bulk submission."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    succeeded: List[Item] = Field(default_factory=list)
    failures: Dict[int, FollowUpError] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class BulkOperationCoordinator:
    """Drives the session once per item, collecting failures instead of aborting."""

    def __init__(self, session: FollowUpSession) -> None:
        self.session = session

    def _responses_for(self, item: Item, intent: BulkSubmission) -> tuple[int, Dict[str, str]]:
        engine = self.session.engine
        if item.cancelled:
            raise ValidationError(f"Item {item.id} is cancelled", item_id=item.id)
        pending = engine.determine_pending_step(item)
        if pending is None:
            raise ValidationError(f"Item {item.id} has completed every step", item_id=item.id)
        definition = engine.catalog.get(pending)
        if intent.value is not None:
            if definition.kind != "select":
                raise ValidationError(
                    f"Step {pending} of item {item.id} needs response fields, not a single value",
                    item_id=item.id,
                )
            responses = {definition.primary_field: intent.value}
        else:
            responses = dict(intent.responses)
        return pending, responses

    async def submit(
        self,
        items: Iterable[Item],
        intent: BulkSubmission,
        now: Optional[datetime] = None,
    ) -> BulkResult:
        result = BulkResult()
        for item in items:
            try:
                step_number, responses = self._responses_for(item, intent)
                updated = await self.session.submit_step(item.id, step_number, responses, now)
            except FollowUpError as exc:
                logger.warning(f"Bulk submission skipped item {item.id}: {exc}")
                result.failures[item.id] = exc
                continue
            result.succeeded.append(updated)
        logger.info(
            f"Bulk submission applied to {len(result.succeeded)} item(s), "
            f"{len(result.failures)} failure(s)"
        )
        return result
