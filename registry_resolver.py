"""
Registry (comptroller) resolution

Inspects the operator supplied comptrollers in priority order, selects the first
operationally valid one and resolves per-account scope and liquidity.
"""
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from web3 import Web3

from abis import COMPTROLLER_ABI, COMPTROLLER_MARKETS_2_ABI, COMPTROLLER_MARKETS_3_ABI
from config import ZERO_ADDRESS
from errors import NoMarketsError, NoValidRegistryError, OracleMismatchError
from models import RegistryInfo, RegistryScope

logger = logging.getLogger(__name__)


class RegistryResolver:
    def __init__(self, reader, registries: Sequence[str], oracle_override: Optional[str] = None):
        self.reader = reader
        self.registries: List[str] = [r.lower() for r in registries]
        self.oracle_override = oracle_override
        self.selected: Optional[RegistryInfo] = None
        self._inspected: Dict[str, RegistryInfo] = {}
        self._markets_variant: Optional[str] = None

    def _comptroller(self, registry: str):
        return self.reader.contract(registry, COMPTROLLER_ABI)

    def inspect(self, registry: str) -> Optional[RegistryInfo]:
        """Read close factor, liquidation incentive and oracle; None if unusable."""
        c = self._comptroller(registry)
        try:
            close_factor = int(self.reader.call(c.functions.closeFactorMantissa()))
            incentive = int(self.reader.call(c.functions.liquidationIncentiveMantissa()))
            oracle = str(self.reader.call(c.functions.oracle())).lower()
        except Exception as e:
            logger.warning("[Registry] Inspection failed for %s: %s", registry, str(e)[:120])
            return None

        if oracle == ZERO_ADDRESS or close_factor <= 0 or incentive <= 0:
            logger.info(
                "[Registry] %s rejected (oracle=%s closeFactor=%s incentive=%s)",
                registry, oracle, close_factor, incentive,
            )
            return None

        info = RegistryInfo(
            address=registry,
            oracle=oracle,
            close_factor_mantissa=close_factor,
            liquidation_incentive_mantissa=incentive,
        )
        self._inspected[registry] = info
        return info

    def resolve(self) -> RegistryInfo:
        """Select the first valid registry. Raises FatalError subclasses."""
        if not self.registries:
            raise NoValidRegistryError("No comptroller addresses configured")

        for registry in self.registries:
            info = self.inspect(registry)
            if info is None:
                continue
            if self.oracle_override and self.oracle_override.lower() != info.oracle:
                raise OracleMismatchError(
                    f"Oracle override {self.oracle_override} does not match "
                    f"{info.oracle} resolved from comptroller {registry}"
                )
            self.selected = info
            logger.info(
                "[Registry] Selected %s oracle=%s closeFactor=%s incentive=%s",
                info.address, info.oracle, info.close_factor_mantissa, info.liquidation_incentive_mantissa,
            )
            return info

        raise NoValidRegistryError(f"None of {len(self.registries)} comptrollers passed the validity check")

    def all_markets(self) -> List[str]:
        if self.selected is None:
            self.resolve()
        c = self._comptroller(self.selected.address)
        markets = [str(m).lower() for m in self.reader.call(c.functions.getAllMarkets())]
        if not markets:
            raise NoMarketsError(f"Comptroller {self.selected.address} lists no markets")
        logger.info("[Registry] %d markets listed by %s", len(markets), self.selected.address)
        return markets

    def oracle_for(self, registry: str) -> Optional[str]:
        info = self._inspected.get(registry) or self.inspect(registry)
        return info.oracle if info else None

    def resolve_scope(self, account: str) -> Optional[RegistryScope]:
        """First registry (priority order) reporting entered markets for the account."""
        for registry in self.registries:
            c = self._comptroller(registry)
            try:
                assets = self.reader.call(c.functions.getAssetsIn(Web3.to_checksum_address(account)))
            except Exception as e:
                logger.debug("[Registry] getAssetsIn(%s) failed on %s: %s", account, registry, str(e)[:80])
                continue
            if not assets:
                continue
            oracle = self.oracle_for(registry)
            if not oracle:
                logger.warning("[Registry] %s enrolled in %s but it has no usable oracle", account, registry)
                continue
            return RegistryScope(
                registry_address=registry,
                oracle_address=oracle,
                active_markets=tuple(str(a).lower() for a in assets),
            )
        return None

    def account_liquidity(self, registry: str, account: str) -> Tuple[int, int, int]:
        c = self._comptroller(registry)
        err, liquidity, shortfall = self.reader.call(
            c.functions.getAccountLiquidity(Web3.to_checksum_address(account))
        )
        return int(err), int(liquidity), int(shortfall)

    def market_info(self, registry: str, market: str) -> Tuple[bool, int]:
        """(isListed, collateralFactorMantissa) for both markets() return shapes."""
        variants = [("3ret", COMPTROLLER_MARKETS_3_ABI), ("2ret", COMPTROLLER_MARKETS_2_ABI)]
        if self._markets_variant:
            variants = [v for v in variants if v[0] == self._markets_variant]

        last_error = None
        for name, abi in variants:
            c = self.reader.contract(registry, abi)
            try:
                res = self.reader.call(c.functions.markets(Web3.to_checksum_address(market)))
            except Exception as e:
                last_error = e
                continue
            if self._markets_variant is None:
                logger.info("[Registry] Detected %s markets() variant", name)
                self._markets_variant = name
            return bool(res[0]), int(res[1])
        raise RuntimeError(f"Failed to decode markets({market}): {last_error}")
