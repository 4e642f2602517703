"""
Oracle price reads and USD normalization for Compound-style markets
"""
import logging
import time
from typing import Callable, Dict

from web3 import Web3

from abis import ORACLE_ABI

logger = logging.getLogger(__name__)

ONE_E36 = 10 ** 36

# Oracle reverts meaning "this market has no feed configured"
_NO_FEED_MARKERS = ("asset config doesn't exist", "missing revert data")


def usd18(borrow_raw: int, price_mantissa: int) -> int:
    """USD value of a raw borrow balance.

    The oracle mantissa already carries the 10**(36 - underlyingDecimals)
    scaling, so no decimal adjustment happens here.
    """
    return (int(borrow_raw) * int(price_mantissa)) // ONE_E36


class PriceService:
    """Reads `getUnderlyingPrice` from one oracle.

    A zero price means "no feed": the market is excluded (price 0 returned)
    and the exclusion is cached for `unpriced_ttl` seconds.
    """

    def __init__(self, reader, oracle: str, unpriced_ttl: float = 15 * 60,
                 clock: Callable[[], float] = time.monotonic):
        self.reader = reader
        self.oracle = oracle.lower()
        self.unpriced_ttl = unpriced_ttl
        self.clock = clock
        self._contract = reader.contract(oracle, ORACLE_ABI)
        self._unpriced: Dict[str, float] = {}

    def is_excluded(self, market: str) -> bool:
        cached = self._unpriced.get(market.lower())
        return cached is not None and self.clock() - cached < self.unpriced_ttl

    def _exclude(self, market: str, reason: str) -> None:
        self._unpriced[market.lower()] = self.clock()
        logger.warning(
            "[Price] price-miss %s via oracle=%s (%s) - excluded for %d minutes",
            market, self.oracle, reason, int(self.unpriced_ttl // 60),
        )

    def price_of(self, market: str) -> int:
        """Oracle mantissa for a market, 0 when the market is (cached as) unpriced."""
        if self.is_excluded(market):
            return 0
        try:
            price = int(self.reader.call(
                self._contract.functions.getUnderlyingPrice(Web3.to_checksum_address(market))
            ))
        except Exception as e:
            msg = str(e)
            if any(marker in msg for marker in _NO_FEED_MARKERS):
                self._exclude(market, msg[:80])
                return 0
            logger.error("[Price] price-error %s via oracle=%s error=%s", market, self.oracle, msg[:120])
            raise
        if price == 0:
            self._exclude(market, "price=0")
        return price

    def clear_unpriced_cache(self) -> None:
        self._unpriced.clear()
