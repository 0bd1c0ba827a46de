from __future__ import annotations

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from roadside.models.base import Base, ULIDMixin, utcnow
from roadside.models.utc_type import UTCDateTime


class CallActivity(Base, ULIDMixin):
    __tablename__ = "call_activities"

    call_id: Mapped[str] = mapped_column(String(64), default="")
    organization_id: Mapped[str] = mapped_column(String(64), index=True)
    ticket_id: Mapped[str] = mapped_column(String(64), index=True)
    call_type: Mapped[str] = mapped_column(String(20), default="outbound")  # outbound | inbound
    number: Mapped[str] = mapped_column(String(40), default="")
    recorded_time: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
