from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import Optional


# ---------------------------------------------------------------------------
# Pipeline types
# ---------------------------------------------------------------------------

class AccountSnapshot(BaseModel):
    """Aave getUserAccountData result. Amounts in base-currency units, ratios in bps."""
    user: str
    total_collateral: int
    total_debt: int
    available_borrows: int
    liquidation_threshold: int
    loan_to_value: int
    health_factor: int  # fixed point, 1e18 == 1.0

    model_config = {"frozen": True}


class ReserveDebt(BaseModel):
    stable_debt: int = 0
    variable_debt: int = 0
    decimals: int = 18  # of the reserve asset; amounts above are raw units

    model_config = {"frozen": True}

    @property
    def total(self) -> int:
        return self.stable_debt + self.variable_debt


class HealthVerdict(BaseModel):
    user: str
    eligible: bool
    health_factor: int

    model_config = {"frozen": True}


class LiquidationCandidate(BaseModel):
    user: str
    asset: str
    debt_to_cover: int  # raw units of `asset`
    debt_decimals: int = 18
    estimated_collateral_seized: Decimal  # debt_to_cover * 1.10, heuristic only
    detected_at_block: int
    detected_at_time: datetime
    health_factor: Optional[int] = None
    total_collateral: Optional[int] = None  # account-wide, base currency
    total_debt: Optional[int] = None
    trigger_tx: Optional[str] = None

    model_config = {"frozen": True}


class Transaction(BaseModel):
    hash: str
    sender: str
    to: Optional[str] = None
    input: str = "0x"


class BlockHeader(BaseModel):
    number: int
    hash: str
    parent_hash: str

    model_config = {"frozen": True}


class Block(BlockHeader):
    timestamp: int
    transactions: list[Transaction] = []


# ---------------------------------------------------------------------------
# API responses
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "ok"
    agent: str = "liquidation"
    version: str = "1.0.0"
    running: bool = False


class StatusResponse(BaseModel):
    running: bool
    phase: str
    last_processed_block: Optional[int]
    chain_head: Optional[int]
    lag_blocks: Optional[int]
    queue_depth: int
    dedup_entries: int
    blocks_processed: int
    block_errors: int
    reorgs_detected: int
    alerts_sent: int
    alerts_dropped: int


class AlertResponse(BaseModel):
    user: str
    asset: str
    debt_to_cover: str
    debt_decimals: int
    estimated_collateral_seized: str
    detected_at_block: int
    detected_at_time: datetime
    health_factor: Optional[str] = None
    trigger_tx: Optional[str] = None
    delivered: bool


class ConfigUpdateRequest(BaseModel):
    min_liquidation_amount: Optional[int] = None
    cooldown_seconds: Optional[int] = None
    protocol_contract_addresses: Optional[list[str]] = None
    monitored_assets: Optional[list[str]] = None
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
