"""
Liquidation Sentinel configuration: agent constants plus the runtime-mutable
monitor configuration and its admin-guarded update operation.
"""
from decimal import Decimal
from typing import Literal
from pydantic import BaseModel, ValidationError, field_validator
from web3 import Web3
from shared.config import Settings
import structlog

logger = structlog.get_logger()

AGENT_NAME = "liquidation"

# Live feed
BLOCK_POLL_INTERVAL = 2.0          # seconds between head polls
LIVE_QUEUE_SIZE = 32               # blocks buffered between poller and processor
REORG_WINDOW = 64                  # heights whose hashes are remembered

# Evaluation
HEALTH_FACTOR_SCALE = 10**18
BASE_CURRENCY_DECIMALS = 8                       # Aave v3 account totals are USD, 8 decimals
LIQUIDATION_HF_THRESHOLD = HEALTH_FACTOR_SCALE   # eligible strictly below 1.0
COLLATERAL_BONUS_ESTIMATE = Decimal("1.10")      # placeholder, not protocol math
MAX_CONCURRENT_FETCHES = 8
FETCH_MAX_ATTEMPTS = 3
NOTIFY_MAX_ATTEMPTS = 3

# Housekeeping
DEDUP_EVICTION_INTERVAL = 300      # seconds
RECENT_ALERTS_KEPT = 100

# Function selectors (first 4 bytes of calldata) of user-facing actions
USER_ACTION_SELECTORS = {
    "0x617ba037": "supply",
    "0xe8eda9df": "deposit",
    "0x69328dec": "withdraw",
    "0xa415bcad": "borrow",
    "0x573ade81": "repay",
    "0xa9059cbb": "transfer",
    "0x23b872dd": "transferFrom",
    # WETH gateway / ERC-4626 style wrappers
    "0x2e1a7d4d": "withdraw",
    "0x6e553f65": "deposit",
}

# Fields an administrator may change while the monitor is running
UPDATABLE_FIELDS = frozenset({
    "min_liquidation_amount",
    "cooldown_seconds",
    "protocol_contract_addresses",
    "monitored_assets",
    "telegram_bot_token",
    "telegram_chat_id",
})


class ConfigError(Exception):
    """Configuration is missing or invalid."""


class Unauthorized(Exception):
    """Caller lacks the administrator capability."""


def _normalize_address(value: str) -> str:
    if not Web3.is_address(value):
        raise ValueError(f"not an address: {value!r}")
    return value.lower()


class MonitorConfig(BaseModel):
    min_liquidation_amount: int
    cooldown_seconds: int
    backfill_depth: int = 100
    start_block: int | Literal["latest"] = "latest"
    protocol_contract_addresses: frozenset[str]
    monitored_assets: tuple[str, ...] = ()
    telegram_bot_token: str
    telegram_chat_id: str

    model_config = {"frozen": True}

    @field_validator("min_liquidation_amount", "cooldown_seconds", "backfill_depth")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("start_block", mode="before")
    @classmethod
    def _parse_start_block(cls, v):
        if isinstance(v, str) and v.strip().lower() == "latest":
            return "latest"
        block = int(v)
        if block < 0:
            raise ValueError("start block must be >= 0")
        return block

    @field_validator("protocol_contract_addresses")
    @classmethod
    def _addresses(cls, v: frozenset[str]) -> frozenset[str]:
        if not v:
            raise ValueError("at least one protocol contract address is required")
        return frozenset(_normalize_address(a) for a in v)

    @field_validator("monitored_assets")
    @classmethod
    def _assets(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(_normalize_address(a) for a in v)

    def public_view(self) -> dict:
        """Config without channel credentials, safe to expose over the API."""
        data = self.model_dump(exclude={"telegram_bot_token"})
        data["protocol_contract_addresses"] = sorted(self.protocol_contract_addresses)
        data["monitored_assets"] = list(self.monitored_assets)
        return data


def load_monitor_config(settings: Settings) -> MonitorConfig:
    """Build the monitor config from settings; raises ConfigError when incomplete."""
    required = {
        "RPC_URL": settings.RPC_URL,
        "AAVE_POOL_ADDRESS": settings.AAVE_POOL_ADDRESS,
        "AAVE_POOL_DATA_PROVIDER_ADDRESS": settings.AAVE_POOL_DATA_PROVIDER_ADDRESS,
        "TELEGRAM_BOT_TOKEN": settings.TELEGRAM_BOT_TOKEN,
        "TELEGRAM_CHAT_ID": settings.TELEGRAM_CHAT_ID,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise ConfigError(f"missing required settings: {', '.join(missing)}")
    if settings.ENVIRONMENT == "production" and settings.uses_default_api_key:
        raise ConfigError("API_SECRET_KEY must be changed from its default in production")

    addresses = settings.PROTOCOL_CONTRACT_ADDRESSES or [settings.AAVE_POOL_ADDRESS]
    try:
        return MonitorConfig(
            min_liquidation_amount=settings.MIN_LIQUIDATION_AMOUNT,
            cooldown_seconds=settings.ALERT_COOLDOWN_SECONDS,
            backfill_depth=settings.BACKFILL_DEPTH,
            start_block=settings.START_BLOCK,
            protocol_contract_addresses=frozenset(addresses),
            monitored_assets=tuple(settings.MONITORED_ASSETS),
            telegram_bot_token=settings.TELEGRAM_BOT_TOKEN,
            telegram_chat_id=settings.TELEGRAM_CHAT_ID,
        )
    except ValidationError as e:
        raise ConfigError(str(e)) from e


class ConfigStore:
    """
    Holds the single live MonitorConfig. Readers take `current` on every use;
    the only way to change it is `update`, which requires the administrator
    capability. There is no implicit reload.
    """

    def __init__(self, config: MonitorConfig):
        self._config = config

    @property
    def current(self) -> MonitorConfig:
        return self._config

    def update(self, changes: dict, *, is_admin: bool, actor: str = "unknown") -> MonitorConfig:
        if not is_admin:
            logger.warning("config_update_rejected", actor=actor, fields=sorted(changes))
            raise Unauthorized("administrator capability required to change configuration")

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ConfigError(f"not updatable at runtime: {', '.join(sorted(unknown))}")

        merged = self._config.model_dump()
        merged.update(changes)
        try:
            new_config = MonitorConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigError(str(e)) from e

        self._config = new_config
        logger.info("config_updated", actor=actor, fields=sorted(changes))
        return new_config
