"""Vetting and commission workflow core."""

from .commissions import CommissionService, RepAction
from .errors import (
    AlreadyProcessed,
    AlreadyRep,
    AlreadyVerified,
    BotError,
    DuplicateActiveCommission,
    DuplicateActiveRequest,
    NotFound,
    NotificationFailure,
    NotRep,
    PermissionDenied,
    PersistenceFailure,
    UpstreamFailure,
    ValidationError,
)
from .models import (
    Actor,
    Commission,
    CommissionStatus,
    VettingRequest,
    VettingStatus,
    sanitize_name,
)
from .repositories import CommissionRepository, VettingRepository
from .scheduler import DeferredActions, MaintenanceJob, MaintenanceReport
from .store import DynamoDBBackend, JsonFileBackend, KeyValueStore, MemoryBackend
from .vetting import Decision, DecisionOutcome, VettingService

__all__ = [
    "Actor",
    "AlreadyProcessed",
    "AlreadyRep",
    "AlreadyVerified",
    "BotError",
    "Commission",
    "CommissionRepository",
    "CommissionService",
    "CommissionStatus",
    "Decision",
    "DecisionOutcome",
    "DeferredActions",
    "DuplicateActiveCommission",
    "DuplicateActiveRequest",
    "DynamoDBBackend",
    "JsonFileBackend",
    "KeyValueStore",
    "MaintenanceJob",
    "MaintenanceReport",
    "MemoryBackend",
    "NotFound",
    "NotRep",
    "NotificationFailure",
    "PermissionDenied",
    "PersistenceFailure",
    "RepAction",
    "UpstreamFailure",
    "ValidationError",
    "VettingRepository",
    "VettingRequest",
    "VettingService",
    "VettingStatus",
    "sanitize_name",
]
