"""
Shared fixtures for the Liquidation Sentinel tests.

Chain and protocol access are replaced by in-memory fakes; nothing here
touches an RPC node or the Telegram API.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from agents.liquidation.config import ConfigStore, MonitorConfig
from agents.liquidation.models.schemas import AccountSnapshot, Block, LiquidationCandidate, ReserveDebt, Transaction
from agents.liquidation.services.cursor import BlockCursor
from agents.liquidation.services.evaluator import estimate_collateral_seized
from agents.liquidation.services.monitor import LiquidationMonitor
from agents.liquidation.services.notifier import Notifier
from agents.liquidation.services.opportunity_filter import OpportunityFilter
from agents.liquidation.services.protocol_client import FetchError
from tenacity import wait_none

POOL = "0x794a61358d6845594f94dc1db02a252b5b4814ad"
DAI = "0xd586e7f844cea2f87f50152665bcbc2c279d8d70"
USDC = "0xb97ef9ef8734c71904d8002f8b6bc66dd9c48a6e"
WBTC = "0x50b7545627a5162f82a992c33b87adc75187b218"
USER_A = "0x1111111111111111111111111111111111111111"
USER_B = "0x2222222222222222222222222222222222222222"
USER_C = "0x3333333333333333333333333333333333333333"
OTHER_CONTRACT = "0x9999999999999999999999999999999999999999"

WAD = 10**18
SUPPLY_CALLDATA = "0x617ba037" + "00" * 128
BORROW_CALLDATA = "0xa415bcad" + "00" * 160


def make_config(**overrides) -> MonitorConfig:
    values = dict(
        min_liquidation_amount=1000 * WAD,
        cooldown_seconds=3600,
        backfill_depth=100,
        start_block=100,
        protocol_contract_addresses=frozenset({POOL}),
        monitored_assets=(DAI,),
        telegram_bot_token="123:test-token",
        telegram_chat_id="-1001",
    )
    values.update(overrides)
    return MonitorConfig(**values)


def make_tx(sender: str, to: str = POOL, data: str = SUPPLY_CALLDATA, tx_hash: str | None = None) -> Transaction:
    return Transaction(hash=tx_hash or f"0x{sender[2:6]}{to[2:6]}", sender=sender, to=to, input=data)


def make_block(number: int, transactions=(), block_hash: str | None = None) -> Block:
    return Block(
        number=number,
        hash=block_hash or f"0x{number:064x}",
        parent_hash=f"0x{number - 1:064x}",
        timestamp=1_700_000_000 + number * 2,
        transactions=list(transactions),
    )


def make_candidate(
    user: str = USER_A, asset: str = DAI, debt: int = 1500 * WAD, block: int = 101, decimals: int = 18
) -> LiquidationCandidate:
    return LiquidationCandidate(
        user=user,
        asset=asset,
        debt_to_cover=debt,
        debt_decimals=decimals,
        estimated_collateral_seized=estimate_collateral_seized(debt),
        detected_at_block=block,
        detected_at_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
        health_factor=WAD // 2,
    )


def h(tag: str) -> str:
    """32-byte hash made of a repeated two-character tag."""
    return "0x" + tag * 32


class FakeEth:
    """Scripted chain for ChainFeed: blocks by height, a movable head, injectable head failures."""

    def __init__(self):
        self.head = 100
        self.chain: dict[int, dict] = {}
        self.fail_head = 0

    def put(self, number: int, block_hash: str, parent_hash: str, transactions=()):
        self.chain[number] = {
            "number": number,
            "hash": block_hash,
            "parentHash": parent_hash,
            "timestamp": 0,
            "transactions": list(transactions),
        }

    @property
    def block_number(self):
        if self.fail_head:
            self.fail_head -= 1
            raise ConnectionError("rpc down")
        return self.head

    def get_block(self, number, full_transactions=False):
        return self.chain[number]


class FakeWeb3:
    def __init__(self):
        self.eth = FakeEth()


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeFeed:
    """Blocks by height; heights listed in `failing` raise FetchError."""

    def __init__(self, head: int = 100):
        self.head = head
        self.blocks: dict[int, Block] = {}
        self.failing: set[int] = set()
        self.requested: list[int] = []

    def add(self, block: Block):
        self.blocks[block.number] = block
        self.head = max(self.head, block.number)

    async def get_current_height(self) -> int:
        return self.head

    async def get_block(self, number: int) -> Block:
        self.requested.append(number)
        if number in self.failing:
            raise FetchError(f"get_block({number}) failed: timeout")
        return self.blocks.get(number) or make_block(number)


class FakeClient:
    """Health factors and per-asset debt keyed by user; `failing` users raise FetchError. Reserves default to 18 decimals."""

    def __init__(self):
        self.decimals: dict[str, int] = {}
        self.health: dict[str, int] = {}
        self.debt: dict[tuple[str, str], int] = {}
        self.failing: set[str] = set()
        self.reserves: list[str] = [DAI]

    def set_position(self, user: str, health_factor: int, debt: int, asset: str = DAI):
        self.health[user] = health_factor
        self.debt[(user, asset)] = debt

    async def get_account_health(self, user: str) -> AccountSnapshot:
        if user in self.failing:
            raise FetchError("getUserAccountData failed: execution reverted")
        return AccountSnapshot(
            user=user,
            total_collateral=0,
            total_debt=0,
            available_borrows=0,
            liquidation_threshold=8250,
            loan_to_value=8000,
            health_factor=self.health.get(user, 2 * WAD),
        )

    async def get_user_reserve_debt(self, user: str, asset: str) -> ReserveDebt:
        return ReserveDebt(variable_debt=self.debt.get((user, asset), 0), decimals=self.decimals.get(asset, 18))

    async def get_reserves_list(self) -> list[str]:
        return list(self.reserves)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config_store():
    return ConfigStore(make_config())


@pytest.fixture
def feed():
    return FakeFeed()


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def channel():
    """Stands in for TelegramChannel; records every message sent."""
    ch = MagicMock()
    ch.send = AsyncMock(return_value=None)
    return ch


@pytest.fixture
def notifier(config_store, channel):
    return Notifier(config_store, channel_factory=lambda token, chat: channel, retry_wait=wait_none())


@pytest.fixture
def monitor(feed, client, config_store, notifier, clock):
    return LiquidationMonitor(
        feed=feed,
        client=client,
        cursor=BlockCursor(100),
        opportunity_filter=OpportunityFilter(config_store, clock=clock),
        notifier=notifier,
        config=config_store,
        clock=clock,
        idle_timeout=0.01,
    )
