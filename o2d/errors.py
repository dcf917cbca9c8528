"""Error taxonomy for follow-up submissions."""

from __future__ import annotations

from typing import Optional


class FollowUpError(Exception):
    """Base class for all engine errors."""


class ValidationError(FollowUpError, ValueError):
    """Submission does not match the pending step or lacks a required field."""

    def __init__(self, message: str, item_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.item_id = item_id


class StaleStateError(ValidationError):
    """The pending step moved on since the caller last synced.

    Re-fetch the item and derive the pending step again before retrying.
    """


class PersistenceError(FollowUpError):
    """The persistence collaborator rejected or timed out a request."""

    def __init__(self, message: str, target: object = None) -> None:
        super().__init__(message)
        self.target = target


class ConfigMissingError(FollowUpError, LookupError):
    """No step configuration row exists for a step."""

    def __init__(self, step: int) -> None:
        super().__init__(f"No step configuration for step {step}")
        self.step = step
