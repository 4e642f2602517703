"""
Candidate borrowers recovered from on-chain Borrow / LiquidateBorrow logs

Used when the indexer is stale or unavailable. Each market is swept over
[from_block, to_block] with an adaptive window: "range too large" answers
halve the window and retry the same start, successes grow it back.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from eth_abi import decode
from web3 import Web3

from abis import BORROW_TOPIC, LIQUIDATE_BORROW_TOPIC
from web3_utils import is_range_too_large

logger = logging.getLogger(__name__)

_BORROW_DATA_TYPES = ["address", "uint256", "uint256", "uint256"]
_LIQUIDATE_DATA_TYPES = ["address", "address", "uint256", "address", "uint256"]


def _as_bytes(value) -> bytes:
    if isinstance(value, str):
        return Web3.to_bytes(hexstr=value)
    return bytes(value)


def _topic_address(topic) -> str:
    return "0x" + _as_bytes(topic)[-20:].hex()


def borrower_from_log(log) -> str:
    """Borrower of a Borrow or LiquidateBorrow log, lowercase; '' if unknown."""
    topics = [_as_bytes(t) for t in log["topics"]]
    if not topics:
        return ""
    data = _as_bytes(log.get("data") or b"")
    if topics[0] == BORROW_TOPIC:
        # Some forks index the borrower
        if len(topics) > 1:
            return _topic_address(topics[1]).lower()
        return str(decode(_BORROW_DATA_TYPES, data)[0]).lower()
    if topics[0] == LIQUIDATE_BORROW_TOPIC:
        if len(topics) > 2:
            return _topic_address(topics[2]).lower()
        return str(decode(_LIQUIDATE_DATA_TYPES, data)[1]).lower()
    return ""


@dataclass
class SweepState:
    """Window cursor of one market sweep.

    Every step either advances `next_block` or halves `chunk` (> 1), so the
    sweep ends after a bounded number of requests.
    """

    next_block: int
    to_block: int
    chunk: int
    max_chunk: int

    @property
    def done(self) -> bool:
        return self.next_block > self.to_block

    def window(self) -> Tuple[int, int]:
        return self.next_block, min(self.next_block + self.chunk - 1, self.to_block)

    def shrink(self) -> None:
        self.chunk = max(1, self.chunk // 2)

    def advance(self, end: int) -> None:
        self.next_block = end + 1
        if self.chunk < self.max_chunk:
            self.chunk = min(self.max_chunk, self.chunk * 2)

    def skip(self, end: int) -> None:
        """Give up on the window; the next one starts back at full size."""
        self.next_block = end + 1
        self.chunk = self.max_chunk


class ChainLogCandidates:
    name = "chain"

    def __init__(self, reader, markets: Sequence[str], lookback_blocks: int = 50_000, chunk_size: int = 2000):
        self.reader = reader
        self.markets = list(markets)
        self.lookback_blocks = lookback_blocks
        self.chunk_size = max(1, int(chunk_size))

    def fetch(self) -> List[str]:
        head = self.reader.block_number()
        return self.sweep(max(0, head - self.lookback_blocks), head)

    def sweep(self, from_block: int, to_block: int) -> List[str]:
        seen: Dict[str, None] = {}
        logger.info(
            "[ChainSweep] Scanning %d markets from block %s to %s (chunk=%s)",
            len(self.markets), from_block, to_block, self.chunk_size,
        )
        for market in self.markets:
            for log in self.scan_market(market, from_block, to_block):
                try:
                    borrower = borrower_from_log(log)
                except Exception as e:
                    logger.debug("[ChainSweep] Undecodable log on %s: %s", market, str(e)[:80])
                    continue
                if borrower:
                    seen.setdefault(borrower, None)
        logger.info("[ChainSweep] Total unique borrowers found: %d", len(seen))
        return list(seen)

    def scan_market(self, market: str, from_block: int, to_block: int) -> Iterable:
        state = SweepState(next_block=from_block, to_block=to_block, chunk=self.chunk_size, max_chunk=self.chunk_size)
        topics = [[Web3.to_hex(BORROW_TOPIC), Web3.to_hex(LIQUIDATE_BORROW_TOPIC)]]
        address = Web3.to_checksum_address(market)

        while not state.done:
            start, end = state.window()
            try:
                logs = self.reader.get_logs({
                    "fromBlock": start,
                    "toBlock": end,
                    "address": address,
                    "topics": topics,
                })
            except Exception as e:
                if is_range_too_large(e) and state.chunk > 1:
                    state.shrink()
                    logger.debug("[ChainSweep] %s: reduced chunk size to %d", market, state.chunk)
                    continue
                logger.warning("[ChainSweep] %s: skipping blocks %s-%s: %s", market, start, end, str(e)[:120])
                state.skip(end)
                continue

            if logs:
                logger.info("[ChainSweep] %s: found %d events in blocks %s-%s", market, len(logs), start, end)
            state.advance(end)
            yield from logs
