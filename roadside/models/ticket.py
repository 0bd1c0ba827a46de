"""Ticket and organization data read when a mechanic is called."""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from roadside.models.base import Base, ULIDMixin


class Ticket(Base, ULIDMixin):
    __tablename__ = "tickets"

    organization_id: Mapped[str] = mapped_column(String(64), index=True)
    vehicle_color: Mapped[str] = mapped_column(String(50), default="")
    vehicle_make: Mapped[str] = mapped_column(String(100), default="")
    vehicle_model: Mapped[str] = mapped_column(String(100), default="")
    vehicle_year: Mapped[str] = mapped_column(String(10), default="")
    license_plate: Mapped[str] = mapped_column(String(30), default="")
    breakdown_address: Mapped[str] = mapped_column(String(500), default="")
    breakdown_reason: Mapped[str] = mapped_column(String(500), default="")
    breakdown_reason_text: Mapped[str] = mapped_column(Text, default="")
    tow_destination: Mapped[str] = mapped_column(String(500), default="")
    owner_phone: Mapped[str] = mapped_column(String(40), default="")


class OrganizationCallConfig(Base, ULIDMixin):
    __tablename__ = "organization_call_configs"

    organization_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    company_name: Mapped[str] = mapped_column(String(200), default="")
    organization_type: Mapped[str] = mapped_column(String(30), default="fleet")
    assistant_id: Mapped[str] = mapped_column(String(64), default="")
    phone_number: Mapped[str] = mapped_column(String(40), default="")
    dispatch_prompt: Mapped[str] = mapped_column(Text, default="")
    first_message: Mapped[str] = mapped_column(String(500), default="")
