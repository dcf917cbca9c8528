"""O2D: follow-up workflow engine for order-to-delivery tracking."""

from .bulk import BulkOperationCoordinator, BulkResult, BulkSubmission
from .catalog import CATALOG, StepCatalog, StepDefinition
from .contracts import Item, ItemPatch, PatchTarget, StepConfig, StepPatch, StepRecord
from .delay import DelayInfo, DelayStatus, classify
from .engine import StepEngine
from .errors import (
    ConfigMissingError,
    FollowUpError,
    PersistenceError,
    StaleStateError,
    ValidationError,
)
from .persistence import get_repository
from .scheduling import StepConfigTable, TatScheduler, compute_next_planned
from .session import FollowUpSession
from .sync import SyncLoop

__version__ = "0.1.0"
__all__ = [
    "CATALOG",
    "BulkOperationCoordinator",
    "BulkResult",
    "BulkSubmission",
    "ConfigMissingError",
    "DelayInfo",
    "DelayStatus",
    "FollowUpError",
    "FollowUpSession",
    "Item",
    "ItemPatch",
    "PatchTarget",
    "PersistenceError",
    "StaleStateError",
    "StepCatalog",
    "StepConfig",
    "StepConfigTable",
    "StepDefinition",
    "StepEngine",
    "StepPatch",
    "StepRecord",
    "SyncLoop",
    "TatScheduler",
    "ValidationError",
    "classify",
    "compute_next_planned",
    "get_repository",
]
