from account_validator import AccountValidator
from conftest import COMPTROLLER, MARKET_A, MARKET_B, addr
from denylist import Denylist
from health_stats import HealthStats
from price_service import usd18
from registry_resolver import RegistryResolver

E18 = 10 ** 18
ALICE = addr(0xA1)
BOB = addr(0xB0B)


def make_validator(reader, denylist=None, **kwargs):
    resolver = RegistryResolver(reader, [COMPTROLLER])
    resolver.resolve()
    return AccountValidator(reader, resolver, denylist or Denylist(), **kwargs)


class TestValidate:
    def test_liquidatable_account(self, reader, protocol):
        protocol.add_account(ALICE, {MARKET_A: 300, MARKET_B: 200}, shortfall=40 * E18)
        result = make_validator(reader).validate(ALICE, min_debt_usd18=1, cycle=7)

        assert result is not None
        assert result.address == ALICE
        assert result.total_borrow_usd18 == 500
        assert result.shortfall_usd18 == 40 * E18
        assert result.sampled_at_cycle == 7
        assert result.scope.registry_address == COMPTROLLER
        assert result.largest_borrow_market == MARKET_A
        assert result.liquidatable

    def test_healthy_account_feeds_stats_only(self, reader, protocol):
        protocol.add_account(ALICE, {MARKET_A: 100}, liquidity=50 * E18)
        stats = HealthStats()
        assert make_validator(reader).validate(ALICE, 1, stats=stats) is None
        assert stats.summary()["count"] == 1
        assert stats.summary()["min"] == 1.5

    def test_dust_below_min_debt_skips_liquidity_read(self, chain, reader, protocol):
        protocol.add_account(ALICE, {MARKET_A: 5}, shortfall=E18)
        assert make_validator(reader).validate(ALICE, min_debt_usd18=10) is None
        assert chain.count_calls("getAccountLiquidity") == 0

    def test_zero_borrow_rejected(self, chain, reader, protocol):
        protocol.add_account(ALICE, {MARKET_A: 0}, shortfall=E18)
        assert make_validator(reader).validate(ALICE, 0) is None
        assert chain.count_calls("getAccountLiquidity") == 0

    def test_denied_account_makes_no_reads(self, chain, reader, protocol):
        protocol.add_account(ALICE, {MARKET_A: 100}, shortfall=E18)
        validator = make_validator(reader, denylist=Denylist(extra=[ALICE]))
        calls_before = len(chain.calls)
        assert validator.validate(ALICE, 1) is None
        assert len(chain.calls) == calls_before

    def test_account_without_scope(self, reader, protocol):
        assert make_validator(reader).validate(BOB, 1) is None

    def test_liquidity_error_code_rejected(self, reader, protocol):
        protocol.add_account(ALICE, {MARKET_A: 100})
        protocol.liquidity[ALICE] = (3, 0, E18)
        assert make_validator(reader).validate(ALICE, 1) is None


class TestMarketFilters:
    def test_excluded_market_not_counted(self, chain, reader, protocol):
        protocol.add_account(ALICE, {MARKET_A: 100, MARKET_B: 900}, shortfall=E18)
        result = make_validator(reader, excluded_markets=[MARKET_B.upper().replace("0X", "0x")]).validate(ALICE, 1)
        assert result.total_borrow_usd18 == 100
        assert chain.count_calls("borrowBalanceStored", MARKET_B) == 0

    def test_denylisted_market_not_counted(self, reader, protocol):
        protocol.add_account(ALICE, {MARKET_A: 100, MARKET_B: 900}, shortfall=E18)
        result = make_validator(reader, denylist=Denylist(extra=[MARKET_B])).validate(ALICE, 1)
        assert result.total_borrow_usd18 == 100

    def test_unpriced_market_contributes_nothing(self, reader, protocol):
        protocol.add_account(ALICE, {MARKET_A: 100, MARKET_B: 900}, shortfall=E18)
        protocol.prices[MARKET_B] = 0
        result = make_validator(reader).validate(ALICE, 1)
        assert result.total_borrow_usd18 == 100
        assert [s.market for s in result.markets] == [MARKET_A]

    def test_snapshot_carries_collateral_factor_and_decimals(self, reader, protocol):
        protocol.add_account(ALICE, {MARKET_A: 100}, shortfall=E18)
        snapshot = make_validator(reader).validate(ALICE, 1).markets[0]
        assert snapshot.collateral_factor_mantissa == 75 * 10 ** 16
        # No underlying() view: native-asset market
        assert snapshot.underlying_decimals == 18

    def test_underlying_decimals_read_once(self, chain, reader, protocol):
        token = addr(0x70)
        chain.set_view(MARKET_A, "underlying", token)
        chain.set_view(token, "decimals", 6)
        validator = make_validator(reader)
        assert validator.underlying_decimals(MARKET_A) == 6
        assert validator.underlying_decimals(MARKET_A) == 6
        assert chain.count_calls("decimals") == 1


class TestAggregation:
    def test_total_independent_of_market_order(self, reader, protocol):
        # 6-decimal token at $3 and 18-decimal token at $2500
        protocol.prices[MARKET_A] = 3 * 10 ** 30
        protocol.prices[MARKET_B] = 2500 * 10 ** 18
        protocol.add_account(ALICE, {MARKET_A: 1_234_567_891, MARKET_B: 5 * 10 ** 17 + 7}, shortfall=E18)
        validator = make_validator(reader)

        forward = validator.validate(ALICE, 1)
        protocol.assets[ALICE] = [MARKET_B, MARKET_A]
        backward = validator.validate(ALICE, 1)

        expected = usd18(1_234_567_891, 3 * 10 ** 30) + usd18(5 * 10 ** 17 + 7, 2500 * 10 ** 18)
        assert forward.total_borrow_usd18 == backward.total_borrow_usd18 == expected == 4953
        assert [s.market for s in backward.markets] == [MARKET_B, MARKET_A]

    def test_unlisted_market_not_counted(self, chain, reader, protocol):
        chain.set_view(COMPTROLLER, "markets", lambda m: (m.lower() != MARKET_B, 75 * 10 ** 16, False))
        protocol.add_account(ALICE, {MARKET_A: 100, MARKET_B: 900}, shortfall=E18)
        result = make_validator(reader).validate(ALICE, 1)
        assert result.total_borrow_usd18 == 100
        assert chain.count_calls("borrowBalanceStored", MARKET_B) == 0

    def test_unreadable_market_info_still_counted(self, chain, reader, protocol):
        chain.set_view(COMPTROLLER, "markets", RuntimeError("markets() reverted"))
        protocol.add_account(ALICE, {MARKET_A: 100}, shortfall=E18)
        result = make_validator(reader).validate(ALICE, 1)
        assert result.total_borrow_usd18 == 100
        assert result.markets[0].collateral_factor_mantissa is None

    def test_chain_checks_count_only_accounts_past_the_denylist(self, reader, protocol):
        protocol.add_account(ALICE, {MARKET_A: 100})
        validator = make_validator(reader, denylist=Denylist(extra=[BOB]))
        validator.validate(BOB, 1)
        validator.validate(ALICE, 1)
        assert validator.chain_checks == 1
