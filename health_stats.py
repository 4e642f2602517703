"""
Per-cycle distribution of account health ratios (telemetry only)
"""
import math
import statistics
from typing import Any, Dict, List

from config import USD18


def health_ratio(total_borrow_usd: int, liquidity_usd18: int, shortfall_usd18: int) -> float:
    """(borrow + liquidity - shortfall) / borrow, clamped at 0.

    Equals 1 + liquidity/borrow for healthy accounts and
    (borrow - shortfall)/borrow for underwater ones. getAccountLiquidity
    reports 1e18-scaled USD while the borrow sum is whole USD, so the borrow
    is rescaled first.
    """
    borrow = total_borrow_usd * USD18
    if borrow <= 0:
        return float("inf")
    return max(0.0, (borrow + liquidity_usd18 - shortfall_usd18) / borrow)


class HealthStats:
    def __init__(self, watch_threshold: float = 1.05):
        self.watch_threshold = watch_threshold
        self.ratios: List[float] = []
        self.liquidatable = 0
        self.watchlist = 0

    def add(self, ratio: float, liquidatable: bool) -> None:
        self.ratios.append(ratio)
        if liquidatable:
            self.liquidatable += 1
        elif ratio < self.watch_threshold:
            self.watchlist += 1

    def percentile(self, pct: float) -> float:
        """Nearest-rank percentile."""
        ordered = sorted(self.ratios)
        rank = max(1, math.ceil(pct / 100.0 * len(ordered)))
        return ordered[rank - 1]

    def summary(self) -> Dict[str, Any]:
        if not self.ratios:
            return {"count": 0, "min": None, "p5": None, "median": None,
                    "watchlist": 0, "liquidatable": 0}
        return {
            "count": len(self.ratios),
            "min": round(min(self.ratios), 4),
            "p5": round(self.percentile(5), 4),
            "median": round(statistics.median(self.ratios), 4),
            "watchlist": self.watchlist,
            "liquidatable": self.liquidatable,
        }
