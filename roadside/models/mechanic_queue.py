"""Mechanic candidates still waiting to be called for a ticket."""

from __future__ import annotations

from sqlalchemy import Boolean, Float, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from roadside.models.base import Base, ULIDMixin


class MechanicQueueEntry(Base, ULIDMixin):
    __tablename__ = "mechanics_queue"
    __table_args__ = (
        UniqueConstraint("ticket_id", "international_phone_number", name="uq_queue_ticket_phone"),
    )

    ticket_id: Mapped[str] = mapped_column(String(64), index=True)
    international_phone_number: Mapped[str] = mapped_column(String(40))
    formatted_address: Mapped[str] = mapped_column(String(500), default="")
    display_name: Mapped[str] = mapped_column(String(200), default="")
    language_code: Mapped[str] = mapped_column(String(10), default="en")
    source: Mapped[str] = mapped_column(String(20))  # database | google
    has_onboarded: Mapped[bool] = mapped_column(Boolean, default=False)
    first_name: Mapped[str] = mapped_column(String(100), default="")
    labour: Mapped[str] = mapped_column(String(50), default="")
    distance: Mapped[float | None] = mapped_column(Float, nullable=True, default=None)
    extra: Mapped[dict] = mapped_column(JSON, default=dict)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
