"""Per-ticket dispatch progress record."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from roadside.models.base import Base, ULIDMixin, utcnow
from roadside.models.utc_type import UTCDateTime


class TrackingRecord(Base, ULIDMixin):
    __tablename__ = "tracking"
    __table_args__ = (
        Index("ix_tracking_progress", "called_mechanics", "total_mechanics", "call_finished"),
    )

    ticket_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    total_mechanics: Mapped[int] = mapped_column(Integer, default=0)
    called_mechanics: Mapped[int] = mapped_column(Integer, default=0)
    batch_index: Mapped[int] = mapped_column(Integer, default=0)
    found_interest: Mapped[bool] = mapped_column(Boolean, default=False)
    found_interest_time: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, default=None, index=True
    )
    all_mechanics: Mapped[list] = mapped_column(JSON, default=list)
    call_finished: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, default=None, index=True
    )
    last_processed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, default=None
    )
    cleanup_reason: Mapped[str | None] = mapped_column(String(200), nullable=True, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )

    def progress(self) -> dict:
        total = self.total_mechanics or 0
        return {
            "completed": self.called_mechanics,
            "total": total,
            "percentage": (self.called_mechanics / total) * 100 if total > 0 else 0,
            "current_batch": self.batch_index,
        }
