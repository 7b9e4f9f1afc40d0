"""
State Store: Persists {cursor, seen block hashes, dedup map} so a restart
resumes without reprocessing handled blocks or re-alerting inside the cooldown.

Everything is written in one transaction; a crash mid-save leaves the previous
state intact.
"""
from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from shared.models.base import Base
from agents.liquidation.models.db import AlertDedup, MonitorCursor, SeenBlockHash
from agents.liquidation.services.opportunity_filter import DedupEntry, DedupKey
import structlog

logger = structlog.get_logger()

CURSOR_ROW_ID = 1


class PersistedState(BaseModel):
    last_processed: int
    seen_hashes: dict[int, str] = {}
    dedup: dict[DedupKey, DedupEntry] = {}


async def create_tables(engine: AsyncEngine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class StateStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def load(self) -> PersistedState | None:
        async with self._session_factory() as db:
            cursor = await db.get(MonitorCursor, CURSOR_ROW_ID)
            if cursor is None:
                return None
            hashes = (await db.execute(select(SeenBlockHash))).scalars().all()
            dedup = (await db.execute(select(AlertDedup))).scalars().all()

        state = PersistedState(
            last_processed=cursor.last_processed_block,
            seen_hashes={h.block_number: h.block_hash for h in hashes},
            dedup={
                (d.user_address, d.asset_address): DedupEntry(alerted_at=d.alerted_at, block=d.block_number)
                for d in dedup
            },
        )
        logger.info(
            "monitor_state_loaded",
            last_processed=state.last_processed,
            dedup_entries=len(state.dedup),
        )
        return state

    async def save(
        self,
        last_processed: int,
        seen_hashes: dict[int, str],
        dedup: dict[DedupKey, DedupEntry],
    ):
        async with self._session_factory() as db:
            async with db.begin():
                await db.merge(MonitorCursor(id=CURSOR_ROW_ID, last_processed_block=last_processed))
                await db.execute(delete(SeenBlockHash))
                db.add_all(
                    SeenBlockHash(block_number=n, block_hash=h) for n, h in seen_hashes.items()
                )
                await db.execute(delete(AlertDedup))
                db.add_all(
                    AlertDedup(
                        user_address=user,
                        asset_address=asset,
                        alerted_at=entry.alerted_at,
                        block_number=entry.block,
                    )
                    for (user, asset), entry in dedup.items()
                )
