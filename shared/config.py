import json
from typing import Annotated
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

DEFAULT_API_SECRET_KEY = "dev-secret-key"


class Settings(BaseSettings):
    # Database (optional; in-memory state when unset)
    DATABASE_URL: str = ""

    # Blockchain
    RPC_URL: str = "https://api.avax.network/ext/bc/C/rpc"
    CHAIN_ID: int = 43114

    # Aave v3 (Avalanche deployment)
    AAVE_POOL_ADDRESS: str = "0x794a61358D6845594F94dc1DB02A252b5b4814aD"
    AAVE_POOL_DATA_PROVIDER_ADDRESS: str = "0x69FA688f1Dc47d4B5d8029D5a35FB7a548310654"
    # Contracts whose calls count as protocol interactions (empty = pool only)
    PROTOCOL_CONTRACT_ADDRESSES: Annotated[list[str], NoDecode] = []
    # Reserves to evaluate debt in (empty = pool reserves list)
    MONITORED_ASSETS: Annotated[list[str], NoDecode] = []

    # Monitor
    # Token amount with 18 decimals, scaled to each reserve's own decimals
    MIN_LIQUIDATION_AMOUNT: int = 1000 * 10**18
    START_BLOCK: str = "latest"
    BACKFILL_DEPTH: int = 100
    ALERT_COOLDOWN_SECONDS: int = 3600

    # Telegram
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""
    ADMIN_CHAT_IDS: Annotated[list[int], NoDecode] = []

    # Application
    API_SECRET_KEY: str = DEFAULT_API_SECRET_KEY
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator("PROTOCOL_CONTRACT_ADDRESSES", "MONITORED_ASSETS", "ADMIN_CHAT_IDS", mode="before")
    @classmethod
    def split_list(cls, v):
        """Lists come from the environment as `a,b,c` or as a JSON array."""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return [part.strip() for part in v.split(",") if part.strip()]
        return v

    @property
    def uses_default_api_key(self) -> bool:
        return self.API_SECRET_KEY == DEFAULT_API_SECRET_KEY


settings = Settings()
