"""Delay classification of planned versus actual completion."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .constants import ON_TIME_TOLERANCE_SECONDS

_TOLERANCE = timedelta(seconds=ON_TIME_TOLERANCE_SECONDS)


class DelayStatus(str, Enum):
    NO_TARGET = "no_target"
    DELAYED = "delayed"
    AHEAD = "ahead"
    LEFT = "left"
    ON_TIME = "on_time"


class DelayInfo(BaseModel):
    """Outcome of comparing a step's target with its completion."""

    status: DelayStatus
    magnitude: timedelta = timedelta(0)
    hours: int = 0
    minutes: int = 0
    sign: str = ""
    pending: bool = False

    @property
    def display(self) -> str:
        if self.status is DelayStatus.NO_TARGET:
            return ""
        if self.status is DelayStatus.ON_TIME:
            return "On Time"
        duration = f"{self.hours}h {self.minutes}m" if self.hours > 0 else f"{self.minutes}m"
        label = {
            DelayStatus.DELAYED: "Delay",
            DelayStatus.AHEAD: "Ahead",
            DelayStatus.LEFT: "Left",
        }[self.status]
        return f"{duration} {label}"

    @property
    def is_delayed(self) -> bool:
        return self.status is DelayStatus.DELAYED


def classify(
    planned: Optional[datetime],
    actual: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> DelayInfo:
    """Classify a step as delayed, ahead (or left, when pending) or on time.

    The reference point is ``actual`` when the step is complete, otherwise
    ``now`` (the wall clock by default), so a running step's delay grows live.
    Differences within one minute either way count as on time.
    """
    if planned is None:
        return DelayInfo(status=DelayStatus.NO_TARGET)

    pending = actual is None
    reference = actual if actual is not None else (now or datetime.now(timezone.utc))
    delta = reference - planned
    magnitude = abs(delta)
    total_minutes = int(magnitude.total_seconds() // 60)

    if delta > _TOLERANCE:
        status = DelayStatus.DELAYED
    elif delta < -_TOLERANCE:
        status = DelayStatus.LEFT if pending else DelayStatus.AHEAD
    else:
        status = DelayStatus.ON_TIME

    return DelayInfo(
        status=status,
        magnitude=magnitude,
        hours=total_minutes // 60,
        minutes=total_minutes % 60,
        sign="+" if delta >= timedelta(0) else "-",
        pending=pending,
    )
