"""
Chain Feed: Block access and a live stream of new block headers.

The live stream polls the chain head and yields every new height in order.
When a new block's parent hash does not match the hash known for the
previous height (yielded earlier, or seeded from blocks the caller already
processed), the replaced heights are walked back and yielded again
(oldest first) so the processor can re-run reorganized blocks.
"""
import asyncio
from typing import AsyncIterator
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import Web3
from agents.liquidation.config import BLOCK_POLL_INTERVAL, FETCH_MAX_ATTEMPTS, REORG_WINDOW
from agents.liquidation.models.schemas import Block, BlockHeader, Transaction
from agents.liquidation.services.protocol_client import FetchError
import structlog

logger = structlog.get_logger()


def _hex(value) -> str:
    if value is None:
        return "0x"
    if isinstance(value, str):
        return value.lower() if value.startswith("0x") else "0x" + value.lower()
    return Web3.to_hex(value)


def _parse_transaction(tx) -> Transaction:
    return Transaction(
        hash=_hex(tx.get("hash")),
        sender=(tx.get("from") or "").lower(),
        to=tx["to"].lower() if tx.get("to") else None,
        input=_hex(tx.get("input")),
    )


def parse_block(raw) -> Block:
    """Normalize a web3 block (with full transactions) into a Block."""
    txs = [tx for tx in raw.get("transactions", []) if not isinstance(tx, (bytes, str))]
    return Block(
        number=raw["number"],
        hash=_hex(raw["hash"]),
        parent_hash=_hex(raw["parentHash"]),
        timestamp=raw["timestamp"],
        transactions=[_parse_transaction(tx) for tx in txs],
    )


class ChainFeed:
    def __init__(
        self,
        w3: Web3,
        poll_interval: float = BLOCK_POLL_INTERVAL,
        max_attempts: int = FETCH_MAX_ATTEMPTS,
        retry_wait=None,
        window: int = REORG_WINDOW,
    ):
        self.w3 = w3
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait if retry_wait is not None else wait_exponential(multiplier=0.5, max=5)
        self.window = window
        self.head: int | None = None
        self._yielded: dict[int, str] = {}

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
                    raise FetchError(f"{what} failed: {e}") from e

    async def get_current_height(self) -> int:
        height = await self._read("block_number", lambda: self.w3.eth.block_number)
        self.head = height if self.head is None else max(self.head, height)
        return height

    async def get_block(self, number: int) -> Block:
        raw = await self._read(
            f"get_block({number})",
            lambda: self.w3.eth.get_block(number, full_transactions=True),
        )
        return parse_block(raw)

    async def get_header(self, number: int) -> BlockHeader:
        raw = await self._read(f"get_block({number})", lambda: self.w3.eth.get_block(number))
        return BlockHeader(number=raw["number"], hash=_hex(raw["hash"]), parent_hash=_hex(raw["parentHash"]))

    async def _replaced_ancestors(self, header: BlockHeader) -> list[BlockHeader]:
        """Headers of already-yielded heights that the chain has since replaced, oldest first."""
        replaced = []
        parent_hash = header.parent_hash
        number = header.number - 1
        while number in self._yielded and self._yielded[number] != parent_hash:
            ancestor = await self.get_header(number)
            replaced.append(ancestor)
            parent_hash = ancestor.parent_hash
            number -= 1
        replaced.reverse()
        return replaced

    def _remember(self, header: BlockHeader):
        self._yielded[header.number] = header.hash
        floor = header.number - self.window
        for n in [n for n in self._yielded if n <= floor]:
            del self._yielded[n]

    def seed(self, known_hashes: dict[int, str]):
        """Hashes already processed elsewhere (backfill, persisted state), for walk-back."""
        for number, block_hash in known_hashes.items():
            self._yielded.setdefault(number, block_hash.lower())

    async def new_blocks(
        self, after: int, known_hashes: dict[int, str] | None = None
    ) -> AsyncIterator[BlockHeader]:
        """
        Lazy, infinite stream of headers for heights > `after`. Not restartable:
        call again with a new starting point instead.

        `known_hashes` are the hashes the caller has processed up to `after`;
        a new block that does not build on them replays the replaced heights.
        """
        if known_hashes:
            self.seed(known_hashes)
        last_seen = after
        while True:
            try:
                head = await self.get_current_height()
            except FetchError as e:
                logger.warning("head_poll_failed", error=str(e))
                await asyncio.sleep(self.poll_interval)
                continue

            for number in range(last_seen + 1, head + 1):
                try:
                    header = await self.get_header(number)
                    replaced = await self._replaced_ancestors(header)
                except FetchError as e:
                    logger.warning("header_fetch_failed", block=number, error=str(e))
                    break
                for ancestor in replaced:
                    logger.info("reorged_block_replayed", block=ancestor.number, hash=ancestor.hash)
                    self._remember(ancestor)
                    yield ancestor
                self._remember(header)
                last_seen = number
                yield header

            await asyncio.sleep(self.poll_interval)
