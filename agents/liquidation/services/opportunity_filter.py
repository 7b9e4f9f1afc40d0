"""
Opportunity Filter: Decides whether a liquidation candidate is worth an alert.

Rejects candidates below the minimum debt-to-cover and candidates whose
(user, asset) pair was already alerted within the cooldown window. The dedup
map has a single writer: every read-modify-write happens under one lock.
"""
import asyncio
import time
from enum import Enum
from typing import Callable
from pydantic import BaseModel
from agents.liquidation.config import ConfigStore
from agents.liquidation.models.schemas import LiquidationCandidate
import structlog

logger = structlog.get_logger()


class Decision(str, Enum):
    ACCEPTED = "accepted"
    BELOW_MINIMUM = "below_minimum"
    COOLDOWN = "cooldown"


class DedupEntry(BaseModel):
    alerted_at: float   # unix timestamp
    block: int


MINIMUM_DECIMALS = 18

DedupKey = tuple[str, str]


def meets_minimum(amount: int, decimals: int, minimum: int) -> bool:
    """
    `minimum` is a token amount with 18 decimals; `amount` is in raw units of an
    asset with `decimals`. Compared exactly by scaling both sides to a common base.
    """
    return amount * 10**MINIMUM_DECIMALS >= minimum * 10**decimals


class OpportunityFilter:
    def __init__(
        self,
        config: ConfigStore,
        clock: Callable[[], float] = time.time,
        state: dict[DedupKey, DedupEntry] | None = None,
    ):
        self._config = config
        self._clock = clock
        self._state: dict[DedupKey, DedupEntry] = dict(state or {})
        self._lock = asyncio.Lock()

    @staticmethod
    def key(candidate: LiquidationCandidate) -> DedupKey:
        return candidate.user.lower(), candidate.asset.lower()

    def snapshot(self) -> dict[DedupKey, DedupEntry]:
        return dict(self._state)

    def __len__(self) -> int:
        return len(self._state)

    async def evaluate(self, candidate: LiquidationCandidate) -> Decision:
        cfg = self._config.current
        # Inclusive threshold: debt_to_cover == minimum passes
        if not meets_minimum(candidate.debt_to_cover, candidate.debt_decimals, cfg.min_liquidation_amount):
            logger.debug(
                "candidate_below_minimum",
                user=candidate.user,
                asset=candidate.asset,
                debt_to_cover=candidate.debt_to_cover,
                debt_decimals=candidate.debt_decimals,
                minimum=cfg.min_liquidation_amount,
            )
            return Decision.BELOW_MINIMUM

        key = self.key(candidate)
        async with self._lock:
            now = self._clock()
            entry = self._state.get(key)
            if entry is not None and now - entry.alerted_at < cfg.cooldown_seconds:
                logger.debug(
                    "candidate_in_cooldown",
                    user=candidate.user,
                    asset=candidate.asset,
                    last_block=entry.block,
                    remaining_sec=round(cfg.cooldown_seconds - (now - entry.alerted_at), 1),
                )
                return Decision.COOLDOWN
            self._state[key] = DedupEntry(alerted_at=now, block=candidate.detected_at_block)
        return Decision.ACCEPTED

    async def evict_expired(self) -> int:
        """Drop entries whose cooldown has elapsed. Returns how many were removed."""
        cooldown = self._config.current.cooldown_seconds
        async with self._lock:
            now = self._clock()
            expired = [k for k, e in self._state.items() if now - e.alerted_at >= cooldown]
            for k in expired:
                del self._state[k]
        if expired:
            logger.debug("dedup_evicted", count=len(expired), remaining=len(self._state))
        return len(expired)
