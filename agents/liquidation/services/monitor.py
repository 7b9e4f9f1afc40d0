"""
Monitor Loop: Drives admit → extract → evaluate → filter → notify per block.

Startup backfills recent history synchronously, then switches to the live
feed. Live headers go through a bounded queue: when processing falls behind,
the poller blocks on the full queue and the gap shows up as lag (chain head
minus cursor) in logs and /status. Blocks are processed strictly one at a
time; only the health reads inside a block run concurrently.
"""
import asyncio
import time
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Callable
from agents.liquidation.config import (
    ConfigStore, LIVE_QUEUE_SIZE, MAX_CONCURRENT_FETCHES, RECENT_ALERTS_KEPT, BLOCK_POLL_INTERVAL,
)
from agents.liquidation.models.schemas import Block, BlockHeader, LiquidationCandidate
from agents.liquidation.services.chain_feed import ChainFeed
from agents.liquidation.services.cursor import AlreadyProcessed, BlockCursor
from agents.liquidation.services.evaluator import evaluate_health, estimate_liquidation
from agents.liquidation.services.extractor import extract_interactions
from agents.liquidation.services.notifier import Notifier
from agents.liquidation.services.opportunity_filter import Decision, OpportunityFilter
from agents.liquidation.services.protocol_client import FetchError, ProtocolClient
from agents.liquidation.services.state_store import PersistedState, StateStore
import structlog

logger = structlog.get_logger()


class Phase(str, Enum):
    IDLE = "idle"
    BACKFILL = "backfill"
    LIVE = "live"
    STOPPED = "stopped"


async def build_cursor(
    config: ConfigStore, feed: ChainFeed, persisted: PersistedState | None = None
) -> BlockCursor:
    """Persisted state wins; otherwise start_block decides ("latest" = current head)."""
    if persisted is not None:
        return BlockCursor(persisted.last_processed, persisted.seen_hashes)
    start = config.current.start_block
    if start == "latest":
        return BlockCursor(await feed.get_current_height())
    return BlockCursor(start - 1)


class LiquidationMonitor:
    def __init__(
        self,
        feed: ChainFeed,
        client: ProtocolClient,
        cursor: BlockCursor,
        opportunity_filter: OpportunityFilter,
        notifier: Notifier,
        config: ConfigStore,
        state_store: StateStore | None = None,
        clock: Callable[[], float] = time.time,
        queue_size: int = LIVE_QUEUE_SIZE,
        max_concurrency: int = MAX_CONCURRENT_FETCHES,
        idle_timeout: float = BLOCK_POLL_INTERVAL,
    ):
        self.feed = feed
        self.client = client
        self.cursor = cursor
        self.filter = opportunity_filter
        self.notifier = notifier
        self.config = config
        self.state_store = state_store
        self._clock = clock
        self.queue_size = queue_size
        self.max_concurrency = max_concurrency
        self.idle_timeout = idle_timeout

        self.phase = Phase.IDLE
        self.chain_head: int | None = None
        self.recent_alerts: deque[tuple[LiquidationCandidate, bool]] = deque(maxlen=RECENT_ALERTS_KEPT)
        self.blocks_processed = 0
        self.block_errors = 0
        self.fetch_errors = 0
        self._queue: asyncio.Queue[BlockHeader] | None = None
        self._stop = asyncio.Event()

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self.phase in (Phase.BACKFILL, Phase.LIVE)

    @property
    def lag(self) -> int | None:
        if self.chain_head is None:
            return None
        return max(self.chain_head - self.cursor.last_processed, 0)

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def status(self) -> dict:
        return {
            "running": self.running,
            "phase": self.phase.value,
            "last_processed_block": self.cursor.last_processed,
            "chain_head": self.chain_head,
            "lag_blocks": self.lag,
            "queue_depth": self.queue_depth,
            "dedup_entries": len(self.filter),
            "blocks_processed": self.blocks_processed,
            "block_errors": self.block_errors,
            "reorgs_detected": self.cursor.reorgs_detected,
            "alerts_sent": self.notifier.sent,
            "alerts_dropped": self.notifier.dropped,
        }

    def _observe_head(self, number: int):
        if self.chain_head is None or number > self.chain_head:
            self.chain_head = number

    # ------------------------------------------------------------------
    # Per-block pipeline
    # ------------------------------------------------------------------

    async def _target_assets(self) -> list[str]:
        assets = self.config.current.monitored_assets
        if assets:
            return list(assets)
        return await self.client.get_reserves_list()

    async def _evaluate_user(self, user: str, trigger_tx: str | None, block: Block) -> list[LiquidationCandidate]:
        snapshot = await self.client.get_account_health(user)
        verdict = evaluate_health(snapshot)
        if not verdict.eligible:
            return []

        logger.info("liquidatable_position", user=user, health_factor=snapshot.health_factor, block=block.number)
        detected_at = datetime.fromtimestamp(self._clock(), timezone.utc)
        candidates = []
        for asset in await self._target_assets():
            try:
                debt = await self.client.get_user_reserve_debt(user, asset)
            except FetchError as e:
                self.fetch_errors += 1
                logger.warning("reserve_debt_fetch_failed", user=user, asset=asset, error=str(e))
                continue
            candidate = estimate_liquidation(
                verdict, asset, debt, block.number, detected_at, trigger_tx, snapshot=snapshot
            )
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    async def _evaluate_users(self, users: dict[str, str], block: Block) -> list[LiquidationCandidate]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def evaluate_one(user: str, trigger_tx: str) -> list[LiquidationCandidate]:
            async with semaphore:
                try:
                    return await self._evaluate_user(user, trigger_tx, block)
                except FetchError as e:
                    # Unknown health is not "healthy": log it, never treat as ineligible
                    self.fetch_errors += 1
                    logger.warning("health_fetch_failed", user=user, block=block.number, error=str(e))
                except Exception as e:
                    logger.error("candidate_evaluation_failed", user=user, block=block.number, error=str(e))
                return []

        results = await asyncio.gather(*(evaluate_one(u, tx) for u, tx in users.items()))
        return [c for batch in results for c in batch]

    async def process_block(self, number: int, block_hash: str | None = None) -> list[LiquidationCandidate]:
        """
        Run the full pipeline for one block. Returns the candidates that passed
        the filter (whether or not delivery succeeded).

        Raises AlreadyProcessed for a height at or below the cursor that is
        not a reorg, and FetchError if the block itself cannot be read.
        """
        reorg = self.cursor.admit(number, block_hash)
        try:
            block = await self.feed.get_block(number)
            interactions = extract_interactions(
                block.transactions, self.config.current.protocol_contract_addresses
            )
        except BaseException:
            self.cursor.abort(number)
            raise
        # Cursor advances once extraction is done, independent of notification outcome
        self.cursor.commit(number, block.hash)
        self._observe_head(number)

        users: dict[str, str] = {}
        for interaction in interactions:
            users.setdefault(interaction.user, interaction.tx_hash)

        candidates = await self._evaluate_users(users, block) if users else []

        accepted = []
        for candidate in candidates:
            try:
                decision = await self.filter.evaluate(candidate)
                if decision is not Decision.ACCEPTED:
                    continue
                delivered = await self.notifier.dispatch(candidate)
                self.recent_alerts.append((candidate, delivered))
                accepted.append(candidate)
            except Exception as e:
                logger.error(
                    "candidate_processing_failed",
                    user=candidate.user,
                    asset=candidate.asset,
                    block=number,
                    error=str(e),
                )

        self.blocks_processed += 1
        await self._persist()
        logger.info(
            "block_processed",
            block=number,
            reorg=reorg,
            interactions=len(interactions),
            users=len(users),
            candidates=len(candidates),
            alerts=len(accepted),
            lag=self.lag,
        )
        return accepted

    async def _persist(self):
        if self.state_store is None:
            return
        try:
            await self.state_store.save(
                self.cursor.last_processed, self.cursor.seen_hashes, self.filter.snapshot()
            )
        except Exception as e:
            logger.error("state_persist_failed", error=str(e))

    async def _process_safely(self, number: int, block_hash: str | None = None):
        try:
            await self.process_block(number, block_hash)
        except AlreadyProcessed as e:
            logger.debug("stale_block_discarded", block=number, cursor=e.last_processed)
        except Exception as e:
            self.block_errors += 1
            logger.error("block_processing_failed", block=number, error=str(e))

    # ------------------------------------------------------------------
    # Backfill + live
    # ------------------------------------------------------------------

    async def _reconcile_tip(self):
        """Re-run processed heights whose block was replaced while we were not watching."""
        seen = self.cursor.seen_hashes
        number = self.cursor.last_processed
        replaced = []
        try:
            while number in seen:
                block = await self.feed.get_block(number)
                if block.hash.lower() == seen[number]:
                    break
                replaced.append((number, block.hash))
                number -= 1
        except FetchError as e:
            logger.warning("tip_reconcile_failed", block=number, error=str(e))
        for number, block_hash in reversed(replaced):
            await self._process_safely(number, block_hash)

    async def backfill(self) -> int:
        """Process max(cursor + 1, head - depth) .. head in order. Returns the head."""
        head = await self.feed.get_current_height()
        self._observe_head(head)
        await self._reconcile_tip()
        start = max(self.cursor.last_processed + 1, head - self.config.current.backfill_depth)
        if start <= head:
            logger.info("backfill_started", from_block=start, to_block=head)
        for number in range(start, head + 1):
            if self._stop.is_set():
                break
            await self._process_safely(number)
        logger.info("backfill_finished", cursor=self.cursor.last_processed, head=head)
        return head

    async def _produce(self, queue: asyncio.Queue):
        after = self.cursor.last_processed
        while not self._stop.is_set():
            try:
                async for header in self.feed.new_blocks(after, self.cursor.seen_hashes):
                    self._observe_head(header.number)
                    # Waits while the queue is full; headers are never dropped
                    await queue.put(header)
                    after = max(after, header.number)
            except Exception as e:
                logger.error("block_feed_failed", error=str(e))
                await asyncio.sleep(self.idle_timeout)

    async def _handle_live(self, header: BlockHeader):
        if header.number > self.cursor.last_processed or self.cursor.is_reorg(header.number, header.hash):
            await self._process_safely(header.number, header.hash)
        else:
            logger.debug("stale_block_discarded", block=header.number, cursor=self.cursor.last_processed)
        lag = self.lag
        if lag is not None and lag > self.queue_size:
            logger.warning("processing_lag", lag=lag, queue_depth=self.queue_depth, head=self.chain_head)

    async def run(self):
        """Backfill, then follow the live feed until stop() is called."""
        self._stop.clear()
        self.phase = Phase.BACKFILL
        try:
            await self.backfill()
        except Exception as e:
            logger.error("backfill_failed", error=str(e))

        self.phase = Phase.LIVE
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        producer = asyncio.create_task(self._produce(self._queue))
        logger.info("live_monitoring_started", cursor=self.cursor.last_processed)
        try:
            while not self._stop.is_set():
                try:
                    header = await asyncio.wait_for(self._queue.get(), timeout=self.idle_timeout)
                except asyncio.TimeoutError:
                    continue
                await self._handle_live(header)
        finally:
            producer.cancel()
            try:
                await producer
            except asyncio.CancelledError:
                pass
            self.phase = Phase.STOPPED
            logger.info("monitor_stopped", cursor=self.cursor.last_processed)

    def stop(self):
        """Request a graceful stop; the block in flight is finished first."""
        self._stop.set()
