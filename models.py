from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class RegistryInfo:
    """Inspection result of one comptroller."""

    address: str
    oracle: str
    close_factor_mantissa: int
    liquidation_incentive_mantissa: int


@dataclass(frozen=True)
class RegistryScope:
    """The registry an account is enrolled in, resolved at validation time."""

    registry_address: str
    oracle_address: str
    active_markets: Tuple[str, ...]


@dataclass(frozen=True)
class MarketSnapshot:
    market: str
    underlying_decimals: int
    price_mantissa: int
    borrow_raw: int
    collateral_factor_mantissa: Optional[int]
    borrow_usd18: int


@dataclass(frozen=True)
class ValidatedAccount:
    address: str
    scope: RegistryScope
    total_borrow_usd18: int
    liquidity_usd18: int
    shortfall_usd18: int
    sampled_at_cycle: int
    markets: Tuple[MarketSnapshot, ...] = ()

    @property
    def liquidatable(self) -> bool:
        return self.shortfall_usd18 > 0

    @property
    def active_markets(self) -> Tuple[str, ...]:
        return self.scope.active_markets

    @property
    def largest_borrow_market(self) -> Optional[str]:
        if not self.markets:
            return None
        return max(self.markets, key=lambda m: m.borrow_usd18).market

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "registry": self.scope.registry_address,
            "oracle": self.scope.oracle_address,
            "active_markets": list(self.scope.active_markets),
            "total_borrow_usd18": str(self.total_borrow_usd18),
            "liquidity_usd18": str(self.liquidity_usd18),
            "shortfall_usd18": str(self.shortfall_usd18),
            "cycle": self.sampled_at_cycle,
        }


@dataclass
class CycleReport:
    """Summary of one poll cycle (logs and status API)."""

    cycle: int
    candidates: int = 0
    validated: List[ValidatedAccount] = field(default_factory=list)
    handed_off: int = 0
    repeats: int = 0
    failures: int = 0
    reads: int = 0
    abandoned: Optional[str] = None
    source: Optional[str] = None
    health: Dict[str, Any] = field(default_factory=dict)
    started_at: float = 0.0
    duration_sec: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle,
            "candidates": self.candidates,
            "liquidatable": [v.to_dict() for v in self.validated],
            "handed_off": self.handed_off,
            "repeats": self.repeats,
            "failures": self.failures,
            "reads": self.reads,
            "abandoned": self.abandoned,
            "source": self.source,
            "health": self.health,
            "started_at": self.started_at,
            "duration_sec": round(self.duration_sec, 3),
        }
