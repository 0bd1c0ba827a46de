from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from roadside.schemas.mechanic import Mechanic


class TrackingStart(BaseModel):
    mechanics: list[Mechanic] = Field(default_factory=list)


class TrackingRead(BaseModel):
    ticket_id: str
    total_mechanics: int
    called_mechanics: int
    batch_index: int
    found_interest: bool = False
    found_interest_time: datetime | None = None
    call_finished: datetime | None = None
    last_processed_at: datetime | None = None
    cleanup_reason: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class TrackingStats(BaseModel):
    total: int = 0
    active: int = 0
    completed: int = 0
    expired: int = 0
    pending_expiration: int = 0
