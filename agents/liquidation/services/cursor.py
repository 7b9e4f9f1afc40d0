"""
Block Cursor: Tracks the highest fully processed block and admits each block
exactly once, re-admitting heights that were replaced by a reorg.

The cursor is keyed by height, but the hash seen at each recent height is
remembered so a reorganized block at an already processed height is re-run
instead of being skipped.
"""
from agents.liquidation.config import REORG_WINDOW
import structlog

logger = structlog.get_logger()


class AlreadyProcessed(Exception):
    """The block height is at or below the cursor and was not reorganized."""

    def __init__(self, block_number: int, last_processed: int):
        super().__init__(f"block {block_number} already processed (cursor at {last_processed})")
        self.block_number = block_number
        self.last_processed = last_processed


def _norm_hash(block_hash: str | None) -> str | None:
    return block_hash.lower() if block_hash else None


class BlockCursor:
    def __init__(
        self,
        last_processed: int,
        seen_hashes: dict[int, str] | None = None,
        window: int = REORG_WINDOW,
    ):
        self.last_processed = last_processed
        self.window = window
        self.reorgs_detected = 0
        self._in_flight: int | None = None
        self._hashes: dict[int, str] = {
            n: h.lower() for n, h in (seen_hashes or {}).items()
        }

    @property
    def seen_hashes(self) -> dict[int, str]:
        return dict(self._hashes)

    def is_reorg(self, block_number: int, block_hash: str | None) -> bool:
        """True if a processed height now reports a different hash than the one we ran."""
        block_hash = _norm_hash(block_hash)
        if block_hash is None or block_number > self.last_processed:
            return False
        seen = self._hashes.get(block_number)
        return seen is not None and seen != block_hash

    def admit(self, block_number: int, block_hash: str | None = None) -> bool:
        """
        Admit a block for processing. Returns True when the block is a reorg
        re-run of an already processed height.

        Raises AlreadyProcessed if the height is at or below the cursor (or the
        block currently in flight) and is not a detected reorg; nothing changes
        in that case. The cursor itself moves only on commit().
        """
        if self._in_flight is not None:
            high_water = max(self.last_processed, self._in_flight)
        else:
            high_water = self.last_processed
        if block_number > high_water:
            self._in_flight = block_number
            return False
        if self._in_flight is None and self.is_reorg(block_number, block_hash):
            self.reorgs_detected += 1
            logger.warning(
                "reorg_detected",
                block=block_number,
                old_hash=self._hashes.get(block_number),
                new_hash=_norm_hash(block_hash),
            )
            self._in_flight = block_number
            return True
        raise AlreadyProcessed(block_number, high_water)

    def commit(self, block_number: int, block_hash: str | None = None):
        """Record that candidate extraction for this block finished."""
        if block_number > self.last_processed:
            self.last_processed = block_number
        if self._in_flight == block_number:
            self._in_flight = None
        block_hash = _norm_hash(block_hash)
        if block_hash is not None:
            self._hashes[block_number] = block_hash
            self._prune()

    def abort(self, block_number: int):
        """Release an admitted block whose extraction failed; the cursor stays put."""
        if self._in_flight == block_number:
            self._in_flight = None

    def _prune(self):
        floor = self.last_processed - self.window
        for number in [n for n in self._hashes if n <= floor]:
            del self._hashes[number]
