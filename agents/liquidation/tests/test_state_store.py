"""
Tests for persisted monitor state on a throwaway SQLite database.
"""
import pytest

from agents.liquidation.services.opportunity_filter import DedupEntry
from agents.liquidation.services.state_store import StateStore, create_tables
from shared.database import make_engine, make_session_factory
from conftest import DAI, USDC, USER_A


@pytest.fixture
async def store(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'state.db'}")
    await create_tables(engine)
    yield StateStore(make_session_factory(engine))
    await engine.dispose()


class TestStateStore:
    async def test_empty_database_loads_nothing(self, store):
        assert await store.load() is None

    async def test_save_then_load(self, store):
        dedup = {(USER_A, DAI): DedupEntry(alerted_at=1_700_000_000.5, block=101)}
        await store.save(101, {100: "0xaa", 101: "0xbb"}, dedup)

        state = await store.load()

        assert state.last_processed == 101
        assert state.seen_hashes == {100: "0xaa", 101: "0xbb"}
        assert state.dedup == dedup

    async def test_save_replaces_previous_state(self, store):
        await store.save(101, {101: "0xbb"}, {(USER_A, DAI): DedupEntry(alerted_at=1.0, block=101)})
        await store.save(150, {150: "0xcc"}, {(USER_A, USDC): DedupEntry(alerted_at=2.0, block=150)})

        state = await store.load()

        assert state.last_processed == 150
        assert state.seen_hashes == {150: "0xcc"}
        assert list(state.dedup) == [(USER_A, USDC)]
