"""Pydantic request/response schemas."""

from roadside.schemas.mechanic import Mechanic
from roadside.schemas.tracking import TrackingStart, TrackingRead, TrackingStats
from roadside.schemas.dispatch import (
    CallOutcome, StepError, PostCommitStep,
    TicketBatchResult, BatchCycleResult, CleanupResult,
)

__all__ = [
    "Mechanic",
    "TrackingStart", "TrackingRead", "TrackingStats",
    "CallOutcome", "StepError", "PostCommitStep",
    "TicketBatchResult", "BatchCycleResult", "CleanupResult",
]
