"""
Protocol Client: Read-only access to Aave v3 account health and reserve debt.

web3 calls are synchronous; they run in a worker thread so a slow RPC does not
stall the event loop. Failed reads are retried a bounded number of times and
then surface as FetchError, which callers must not read as "healthy".
"""
import asyncio
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import Web3
from agents.liquidation.config import FETCH_MAX_ATTEMPTS
from agents.liquidation.models.schemas import AccountSnapshot, ReserveDebt
import structlog

logger = structlog.get_logger()

# Aave v3 Pool ABI (minimal)
AAVE_POOL_ABI = [
    {"inputs": [{"name": "user", "type": "address"}], "name": "getUserAccountData", "outputs": [{"name": "totalCollateralBase", "type": "uint256"}, {"name": "totalDebtBase", "type": "uint256"}, {"name": "availableBorrowsBase", "type": "uint256"}, {"name": "currentLiquidationThreshold", "type": "uint256"}, {"name": "ltv", "type": "uint256"}, {"name": "healthFactor", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "getReservesList", "outputs": [{"name": "", "type": "address[]"}], "stateMutability": "view", "type": "function"},
]

# Aave v3 PoolDataProvider ABI (minimal)
AAVE_DATA_PROVIDER_ABI = [
    {"inputs": [{"name": "asset", "type": "address"}, {"name": "user", "type": "address"}], "name": "getUserReserveData", "outputs": [{"name": "currentATokenBalance", "type": "uint256"}, {"name": "currentStableDebt", "type": "uint256"}, {"name": "currentVariableDebt", "type": "uint256"}, {"name": "principalStableDebt", "type": "uint256"}, {"name": "scaledVariableDebt", "type": "uint256"}, {"name": "stableBorrowRate", "type": "uint256"}, {"name": "liquidityRate", "type": "uint256"}, {"name": "stableRateLastUpdated", "type": "uint40"}, {"name": "usageAsCollateralEnabled", "type": "bool"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "asset", "type": "address"}], "name": "getReserveConfigurationData", "outputs": [{"name": "decimals", "type": "uint256"}, {"name": "ltv", "type": "uint256"}, {"name": "liquidationThreshold", "type": "uint256"}, {"name": "liquidationBonus", "type": "uint256"}, {"name": "reserveFactor", "type": "uint256"}, {"name": "usageAsCollateralEnabled", "type": "bool"}, {"name": "borrowingEnabled", "type": "bool"}, {"name": "stableBorrowRateEnabled", "type": "bool"}, {"name": "isActive", "type": "bool"}, {"name": "isFrozen", "type": "bool"}], "stateMutability": "view", "type": "function"},
]


class FetchError(Exception):
    """A protocol read failed (revert, RPC error, timeout). Transient."""


class ProtocolClient:
    def __init__(
        self,
        w3: Web3,
        pool_address: str,
        data_provider_address: str,
        max_attempts: int = FETCH_MAX_ATTEMPTS,
        retry_wait=None,
    ):
        self.w3 = w3
        self.pool = w3.eth.contract(
            address=Web3.to_checksum_address(pool_address), abi=AAVE_POOL_ABI,
        )
        self.data_provider = w3.eth.contract(
            address=Web3.to_checksum_address(data_provider_address), abi=AAVE_DATA_PROVIDER_ABI,
        )
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait if retry_wait is not None else wait_exponential(multiplier=0.5, max=5)
        self._reserves: list[str] | None = None
        self._decimals: dict[str, int] = {}

    async def _read(self, what: str, call):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(FetchError),
            reraise=True,
        ):
            with attempt:
                try:
                    return await asyncio.to_thread(call)
                except Exception as e:
                    logger.debug(
                        "protocol_read_failed",
                        what=what,
                        attempt=attempt.retry_state.attempt_number,
                        error=str(e),
                    )
                    raise FetchError(f"{what} failed: {e}") from e

    async def get_account_health(self, user: str) -> AccountSnapshot:
        checksum = Web3.to_checksum_address(user)
        result = await self._read(
            "getUserAccountData", lambda: self.pool.functions.getUserAccountData(checksum).call()
        )
        return AccountSnapshot(
            user=user.lower(),
            total_collateral=result[0],
            total_debt=result[1],
            available_borrows=result[2],
            liquidation_threshold=result[3],
            loan_to_value=result[4],
            health_factor=result[5],
        )

    async def get_user_reserve_debt(self, user: str, asset: str) -> ReserveDebt:
        asset_cs = Web3.to_checksum_address(asset)
        user_cs = Web3.to_checksum_address(user)
        result = await self._read(
            "getUserReserveData",
            lambda: self.data_provider.functions.getUserReserveData(asset_cs, user_cs).call(),
        )
        decimals = await self.get_reserve_decimals(asset)
        return ReserveDebt(stable_debt=result[1], variable_debt=result[2], decimals=decimals)

    async def get_reserve_decimals(self, asset: str) -> int:
        """Token decimals of a reserve; fixed per asset, so cached."""
        key = asset.lower()
        if key not in self._decimals:
            asset_cs = Web3.to_checksum_address(asset)
            result = await self._read(
                "getReserveConfigurationData",
                lambda: self.data_provider.functions.getReserveConfigurationData(asset_cs).call(),
            )
            self._decimals[key] = int(result[0])
        return self._decimals[key]

    async def get_reserves_list(self) -> list[str]:
        """Reserve assets listed by the pool; cached after the first successful read."""
        if self._reserves is None:
            reserves = await self._read(
                "getReservesList", lambda: self.pool.functions.getReservesList().call()
            )
            self._reserves = [a.lower() for a in reserves]
        return self._reserves
