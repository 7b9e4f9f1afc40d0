"""
Candidate Extractor: Finds users whose health should be re-checked after a block.

Heuristic: a user is a candidate when they sent a transaction to a protocol
contract whose selector is a known user-facing action. Positions that degrade
passively (price moves, other accounts' liquidations) are not picked up here.
"""
from typing import Iterable
from pydantic import BaseModel
from agents.liquidation.config import USER_ACTION_SELECTORS
from agents.liquidation.models.schemas import Transaction


class ProtocolInteraction(BaseModel):
    user: str
    action: str
    tx_hash: str


def decode_selector(input_data: str | bytes | None) -> str | None:
    """Return the 0x-prefixed 4-byte selector, or None for plain transfers."""
    if not input_data:
        return None
    if isinstance(input_data, (bytes, bytearray)):
        input_data = "0x" + bytes(input_data).hex()
    input_data = input_data.lower()
    if not input_data.startswith("0x"):
        input_data = "0x" + input_data
    if len(input_data) < 10:
        return None
    return input_data[:10]


def extract_interactions(
    transactions: Iterable[Transaction],
    protocol_addresses: Iterable[str],
) -> list[ProtocolInteraction]:
    """Protocol calls in block order, one entry per matching transaction."""
    targets = {a.lower() for a in protocol_addresses}
    found = []
    for tx in transactions:
        if not tx.to or tx.to.lower() not in targets:
            continue
        action = USER_ACTION_SELECTORS.get(decode_selector(tx.input))
        if action is None:
            continue
        found.append(ProtocolInteraction(user=tx.sender.lower(), action=action, tx_hash=tx.hash))
    return found


def extract_candidates(
    transactions: Iterable[Transaction],
    protocol_addresses: Iterable[str],
) -> set[str]:
    return {i.user for i in extract_interactions(transactions, protocol_addresses)}
