"""Seed the database with a demo breakdown ticket and its mechanic candidates."""

import asyncio

from roadside.db import crud
from roadside.db.engine import async_session_factory, create_tables, engine
from roadside.db.mechanic_queue import MechanicQueueStore
from roadside.db.tracking_store import TrackingStore
from roadside.errors import TrackingExists
from roadside.schemas import Mechanic
from roadside.services.tracking import start_dispatch

DEMO_ORG = "demo-fleet"

MECHANICS = [
    ("+15155550101", "Interstate Truck Repair", 2.4),
    ("+15155550102", "Big Rig Mobile Service", 3.9),
    ("+15155550103", "Hawkeye Diesel", 5.1),
    ("+15155550104", "Route 65 Tire & Tow", 6.7),
    ("+15155550105", "Prairie Fleet Mechanics", 8.2),
]


async def seed():
    await create_tables()

    async with async_session_factory() as db:
        if not await crud.get_call_config(db, DEMO_ORG):
            await crud.create_call_config(db, DEMO_ORG, company_name="Demo Fleet Co", organization_type="fleet")
        ticket = await crud.create_ticket(
            db, DEMO_ORG,
            vehicle_color="white",
            vehicle_make="Kenworth",
            vehicle_model="T680",
            vehicle_year="2021",
            license_plate="DEMO-123",
            breakdown_address="I-35 Exit 92, Ames, IA",
            breakdown_reason="flat tire",
            owner_phone="+15155550000",
        )
    print(f"Created ticket: {ticket.id}")

    mechanics = [
        Mechanic(international_phone_number=phone, display_name=name, source="google", distance=miles)
        for phone, name, miles in MECHANICS
    ]
    try:
        record = await start_dispatch(
            TrackingStore(async_session_factory), MechanicQueueStore(async_session_factory),
            ticket.id, mechanics,
        )
    except TrackingExists:
        print("Tracking already exists, skipping.")
        return
    finally:
        await engine.dispose()
    print(f"Tracking started for {record.total_mechanics} mechanics")

    print("\nSeed complete. Run a cycle with: python -m roadside.cli run-cycle")


if __name__ == "__main__":
    asyncio.run(seed())
