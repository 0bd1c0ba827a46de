"""CRUD operations for tickets, organization call configs and call activity."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roadside.models import Ticket, OrganizationCallConfig, CallActivity


# ── Ticket ────────────────────────────────────────────────

async def create_ticket(db: AsyncSession, organization_id: str, **fields) -> Ticket:
    ticket = Ticket(organization_id=organization_id, **fields)
    db.add(ticket)
    await db.commit()
    await db.refresh(ticket)
    return ticket


async def get_ticket(db: AsyncSession, ticket_id: str) -> Ticket | None:
    return await db.get(Ticket, ticket_id)


# ── OrganizationCallConfig ────────────────────────────────

async def get_call_config(db: AsyncSession, organization_id: str) -> OrganizationCallConfig | None:
    result = await db.execute(
        select(OrganizationCallConfig).where(OrganizationCallConfig.organization_id == organization_id)
    )
    return result.scalars().first()


async def create_call_config(db: AsyncSession, organization_id: str, **fields) -> OrganizationCallConfig:
    config = OrganizationCallConfig(organization_id=organization_id, **fields)
    db.add(config)
    await db.commit()
    await db.refresh(config)
    return config


# ── CallActivity ──────────────────────────────────────────

async def create_call_activities(db: AsyncSession, activities: list[dict]) -> int:
    db.add_all([CallActivity(**a) for a in activities])
    await db.commit()
    return len(activities)


async def list_call_activities(db: AsyncSession, ticket_id: str) -> list[CallActivity]:
    result = await db.execute(
        select(CallActivity)
        .where(CallActivity.ticket_id == ticket_id)
        .order_by(CallActivity.recorded_time)
    )
    return list(result.scalars().all())
