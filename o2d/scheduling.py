"""Planned-deadline arithmetic for follow-up steps."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from .catalog import CATALOG, StepCatalog
from .constants import DEFAULT_TAT_UNIT, DEFAULT_TAT_VALUE, SUNDAY
from .contracts import StepConfig, TatUnit, check_step_number
from .errors import ConfigMissingError

logger = logging.getLogger(__name__)


def compute_next_planned(
    reference: datetime,
    tat_value: float,
    tat_unit: TatUnit,
    non_working_day: int = SUNDAY,
) -> datetime:
    """Return ``reference`` plus the TAT, rolled past the non-working day.

    Days are calendar days on the reference's own clock. When the result
    lands on ``non_working_day`` (``datetime.weekday()`` numbering) it moves
    forward by exactly one day, never more.
    """
    if tat_unit == "hours":
        planned = reference + timedelta(hours=tat_value)
    elif tat_unit == "days":
        planned = reference + timedelta(days=tat_value)
    else:
        raise ValueError(f"Unsupported TAT unit: {tat_unit}")

    if planned.weekday() == non_working_day:
        planned += timedelta(days=1)
    return planned


def default_step_configs(catalog: StepCatalog = CATALOG) -> List[StepConfig]:
    """One hour per step and no doer, used when nothing is configured."""
    return [
        StepConfig(
            step=definition.number,
            step_name=definition.name,
            tat_value=DEFAULT_TAT_VALUE,
            tat_unit=DEFAULT_TAT_UNIT,
        )
        for definition in catalog
    ]


class StepConfigTable:
    """Validated set of step configuration rows, at most one per step."""

    def __init__(self, configs: Iterable[StepConfig] = ()) -> None:
        self._rows: Dict[int, StepConfig] = {}
        for config in configs:
            check_step_number(config.step)
            if config.step in self._rows:
                raise ValueError(f"Duplicate configuration for step {config.step}")
            self._rows[config.step] = config

    def get(self, step: int) -> StepConfig:
        try:
            return self._rows[step]
        except KeyError:
            raise ConfigMissingError(step) from None

    def rows(self) -> List[StepConfig]:
        return [self._rows[step] for step in sorted(self._rows)]

    def __len__(self) -> int:
        return len(self._rows)


class TatScheduler:
    """Computes planned deadlines from the configured TAT of each step."""

    def __init__(
        self,
        configs: Optional[StepConfigTable] = None,
        non_working_day: int = SUNDAY,
    ) -> None:
        self.configs = configs or StepConfigTable()
        self.non_working_day = non_working_day

    def tat_for(self, step: int) -> StepConfig:
        """Return the config for ``step`` or the one-hour default."""
        try:
            return self.configs.get(step)
        except ConfigMissingError as exc:
            logger.warning(f"{exc}; falling back to {DEFAULT_TAT_VALUE} {DEFAULT_TAT_UNIT}")
            return StepConfig(step=step)

    def planned_for(self, step: int, reference: datetime) -> datetime:
        config = self.tat_for(step)
        return compute_next_planned(
            reference, config.tat_value, config.tat_unit, self.non_working_day
        )
