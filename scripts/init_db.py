"""
Create the Liquidation Sentinel state tables (cursor, seen block hashes,
alert dedup map).

Usage:
    python -m scripts.init_db

Requires DATABASE_URL in .env. Tables are created if missing; existing
state is left untouched.
"""
import asyncio
from shared.database import engine
from agents.liquidation.services.state_store import create_tables


async def init_database():
    if engine is None:
        print("ERROR: DATABASE_URL not configured. Set it in .env")
        return

    print("Connecting to database...")
    await create_tables(engine)
    await engine.dispose()
    print("Database initialization complete.")


if __name__ == "__main__":
    asyncio.run(init_database())
