"""Structured results returned by the dispatch services."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CallOutcome(BaseModel):
    success: bool
    mechanic: str = ""
    number: str = ""
    mechanic_experience: str = "standard"  # standard | experienced
    call_id: str | None = None
    error: str | None = None


class StepError(BaseModel):
    step: str
    error: str
    ticket_id: str | None = None


class PostCommitStep(BaseModel):
    step: str
    ok: bool
    error: str | None = None


class TicketBatchResult(BaseModel):
    ticket_id: str
    status: str  # processed | skipped | completed | error
    reason: str | None = None
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    batch_index: int = 0
    called_mechanics: int = 0
    call_finished: datetime | None = None
    stale: bool = False
    calls: list[CallOutcome] = Field(default_factory=list)
    post_commit: list[PostCommitStep] = Field(default_factory=list)


class BatchCycleResult(BaseModel):
    status: str = "ok"  # ok | paused
    reason: str | None = None
    total_found: int = 0
    processed: int = 0
    skipped: int = 0
    completed: int = 0
    errors: int = 0
    calls_made: int = 0
    error_details: list[StepError] = Field(default_factory=list)
    results: list[TicketBatchResult] = Field(default_factory=list)
    processing_ms: int = 0


class CleanupResult(BaseModel):
    found: int = 0
    cleaned: int = 0
    purged: int = 0
