"""
On-chain validation of one candidate account

The liquidation decision is driven solely by the sign of the comptroller's
shortfall; the USD borrow sum only gates dust accounts and the health ratio
is telemetry.
"""
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from web3 import Web3

from abis import CTOKEN_ABI, ERC20_ABI
from health_stats import HealthStats, health_ratio
from models import MarketSnapshot, RegistryScope, ValidatedAccount
from price_service import PriceService, usd18

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 18


class AccountValidator:
    def __init__(
        self,
        reader,
        resolver,
        denylist,
        excluded_markets: Iterable[str] = (),
        unpriced_ttl: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.reader = reader
        self.resolver = resolver
        self.denylist = denylist
        self.excluded_markets = frozenset(m.lower() for m in excluded_markets)
        self.unpriced_ttl = unpriced_ttl
        self.clock = clock
        self._price_services: Dict[str, PriceService] = {}
        self._decimals: Dict[str, int] = {}
        self._skip_logged: set = set()
        # Accounts that passed the denylist and went to the chain
        self.chain_checks = 0

    def price_service(self, oracle: str) -> PriceService:
        key = oracle.lower()
        if key not in self._price_services:
            self._price_services[key] = PriceService(self.reader, key, self.unpriced_ttl, self.clock)
        return self._price_services[key]

    def underlying_decimals(self, market: str) -> int:
        """Decimals of the market's underlying; immutable, read once."""
        if market in self._decimals:
            return self._decimals[market]
        ctoken = self.reader.contract(market, CTOKEN_ABI)
        try:
            underlying = self.reader.call(ctoken.functions.underlying())
        except Exception:
            # Native-asset markets have no underlying()
            self._decimals[market] = DEFAULT_DECIMALS
            return DEFAULT_DECIMALS
        try:
            erc20 = self.reader.contract(underlying, ERC20_ABI)
            decimals = int(self.reader.call(erc20.functions.decimals()))
        except Exception as e:
            logger.warning("[Validator] Could not fetch decimals for %s, assuming 18: %s", market, str(e)[:80])
            return DEFAULT_DECIMALS
        self._decimals[market] = decimals
        return decimals

    def _market_info(self, registry: str, market: str) -> Optional[Tuple[bool, int]]:
        """(isListed, collateralFactor), or None when markets() is unreadable."""
        try:
            return self.resolver.market_info(registry, market)
        except Exception as e:
            logger.debug("[Validator] markets(%s) unreadable: %s", market, str(e)[:80])
            return None

    def _log_skip_once(self, market: str, reason: str) -> None:
        if (market, reason) not in self._skip_logged:
            self._skip_logged.add((market, reason))
            logger.info("[Validator] Skipping market %s (%s)", market, reason)

    def snapshot_markets(self, account: str, scope: RegistryScope) -> List[MarketSnapshot]:
        prices = self.price_service(scope.oracle_address)
        snapshots = []
        for market in scope.active_markets:
            if market in self.excluded_markets:
                self._log_skip_once(market, "excluded")
                continue
            if self.denylist.is_denied(market):
                self._log_skip_once(market, "denylisted")
                continue
            info = self._market_info(scope.registry_address, market)
            if info is not None and not info[0]:
                self._log_skip_once(market, "not listed")
                continue

            ctoken = self.reader.contract(market, CTOKEN_ABI)
            borrow_raw = int(self.reader.call(
                ctoken.functions.borrowBalanceStored(Web3.to_checksum_address(account))
            ))
            if borrow_raw == 0:
                continue
            price = prices.price_of(market)
            if price == 0:
                continue
            snapshots.append(MarketSnapshot(
                market=market,
                underlying_decimals=self.underlying_decimals(market),
                price_mantissa=price,
                borrow_raw=borrow_raw,
                collateral_factor_mantissa=info[1] if info is not None else None,
                borrow_usd18=usd18(borrow_raw, price),
            ))
        return snapshots

    def validate(self, candidate: str, min_debt_usd18: int,
                 stats: Optional[HealthStats] = None, cycle: int = 0) -> Optional[ValidatedAccount]:
        account = candidate.lower()
        if self.denylist.is_denied(account):
            return None
        self.chain_checks += 1

        scope = self.resolver.resolve_scope(account)
        if scope is None:
            logger.debug("[Validator] %s has no registry scope", account)
            return None

        snapshots = self.snapshot_markets(account, scope)
        total_borrow = sum(s.borrow_usd18 for s in snapshots)
        if total_borrow == 0 or total_borrow < min_debt_usd18:
            return None

        err, liquidity, shortfall = self.resolver.account_liquidity(scope.registry_address, account)
        if err != 0:
            logger.warning("[Validator] getAccountLiquidity(%s) returned error code %d", account, err)
            return None

        liquidatable = shortfall > 0
        if stats is not None:
            stats.add(health_ratio(total_borrow, liquidity, shortfall), liquidatable)

        if not liquidatable:
            return None

        logger.info(
            "[Validator] Liquidatable: %s borrow=%s shortfall=%s registry=%s",
            account, total_borrow, shortfall, scope.registry_address,
        )
        return ValidatedAccount(
            address=account,
            scope=scope,
            total_borrow_usd18=total_borrow,
            liquidity_usd18=liquidity,
            shortfall_usd18=shortfall,
            sampled_at_cycle=cycle,
            markets=tuple(snapshots),
        )
