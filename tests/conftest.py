"""
Liquidation Scout Test Configuration
====================================
In-memory chain fakes and shared fixtures. Nothing here touches the network.
"""

import os
import sys
from types import SimpleNamespace

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from web3_utils import ChainReader  # noqa: E402


def addr(n: int) -> str:
    """Deterministic lowercase 20-byte address."""
    return "0x" + format(n, "040x")


# ============================================================================
# FAKE CHAIN
# ============================================================================

class FakeCall:
    def __init__(self, chain, address, name, args, n_outputs):
        self.chain = chain
        self.address = address
        self.name = name
        self.args = args
        self.n_outputs = n_outputs

    def call(self):
        self.chain.calls.append((self.address, self.name, self.args))
        key = (self.address, self.name)
        if key not in self.chain.views:
            raise ValueError(f"execution reverted: {self.name} not available on {self.address}")
        value = self.chain.views[key]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            value = value(*self.args)
            if isinstance(value, Exception):
                raise value
        # A wider ABI than the contract returns cannot be decoded
        if isinstance(value, tuple) and self.n_outputs > len(value):
            raise ValueError(f"Could not decode contract function call to {self.name}")
        return value


class _Functions:
    def __init__(self, chain, address, abi):
        self._chain = chain
        self._address = address
        self._outputs = {
            e["name"]: len(e.get("outputs", []))
            for e in abi if e.get("type") == "function"
        }

    def __getattr__(self, name):
        if name.startswith("_") or name not in self._outputs:
            raise AttributeError(name)

        def build(*args):
            return FakeCall(self._chain, self._address, name, args, self._outputs[name])
        return build


class FakeEth:
    def __init__(self, chain):
        self._chain = chain

    def contract(self, address, abi):
        lowered = address.lower()
        return SimpleNamespace(address=address, functions=_Functions(self._chain, lowered, abi))

    @property
    def block_number(self):
        if isinstance(self._chain.head, Exception):
            raise self._chain.head
        return self._chain.head

    @property
    def gas_price(self):
        if isinstance(self._chain.gas_price, Exception):
            raise self._chain.gas_price
        return self._chain.gas_price

    def get_logs(self, params):
        self._chain.log_requests.append(params)
        if self._chain.logs_handler is None:
            return []
        return self._chain.logs_handler(params)


class FakeWeb3:
    def __init__(self, chain):
        self.eth = FakeEth(chain)

    def is_connected(self):
        return True


class FakeChain:
    """Contract views keyed by (lowercase address, function name).

    A view value may be a plain return value, an Exception to raise, or a
    callable receiving the call arguments.
    """

    def __init__(self):
        self.views = {}
        self.calls = []
        self.log_requests = []
        self.logs_handler = None
        self.head = 1_000_000
        self.gas_price = 25 * 10 ** 9
        self.w3 = FakeWeb3(self)

    def set_view(self, address, name, value):
        self.views[(address.lower(), name)] = value

    def count_calls(self, name, address=None):
        return sum(
            1 for a, n, _ in self.calls
            if n == name and (address is None or a == address.lower())
        )


# ============================================================================
# FAKE PROTOCOL
# ============================================================================

COMPTROLLER = addr(0xC0)
ORACLE = addr(0x0A)
MARKET_A = addr(0x101)
MARKET_B = addr(0x102)

CLOSE_FACTOR = 5 * 10 ** 17
INCENTIVE = 108 * 10 ** 16
COLLATERAL_FACTOR = 75 * 10 ** 16
# Price mantissa of 1e36 makes usd18(raw, price) == raw
UNIT_PRICE = 10 ** 36


class FakeProtocol:
    """One comptroller with two markets and a unit-price oracle."""

    def __init__(self, chain, comptroller=COMPTROLLER, oracle=ORACLE, markets=(MARKET_A, MARKET_B)):
        self.chain = chain
        self.comptroller = comptroller
        self.oracle = oracle
        self.markets = list(markets)
        self.assets = {}
        self.borrows = {}
        self.liquidity = {}
        self.prices = {m: UNIT_PRICE for m in self.markets}

        chain.set_view(comptroller, "closeFactorMantissa", CLOSE_FACTOR)
        chain.set_view(comptroller, "liquidationIncentiveMantissa", INCENTIVE)
        chain.set_view(comptroller, "oracle", oracle)
        chain.set_view(comptroller, "getAllMarkets", lambda: list(self.markets))
        chain.set_view(comptroller, "getAssetsIn", lambda a: list(self.assets.get(a.lower(), [])))
        chain.set_view(comptroller, "getAccountLiquidity", lambda a: self.liquidity.get(a.lower(), (0, 0, 0)))
        chain.set_view(comptroller, "markets", (True, COLLATERAL_FACTOR, False))
        chain.set_view(oracle, "getUnderlyingPrice", lambda m: self.prices.get(m.lower(), 0))
        for m in self.markets:
            chain.set_view(m, "borrowBalanceStored", self._borrow_view(m))

    def _borrow_view(self, market):
        return lambda a: self.borrows.get((a.lower(), market), 0)

    def add_account(self, account, borrows, liquidity=0, shortfall=0):
        """borrows: {market: raw borrow balance}"""
        account = account.lower()
        self.assets[account] = list(borrows)
        for market, raw in borrows.items():
            self.borrows[(account, market)] = raw
        self.liquidity[account] = (0, liquidity, shortfall)


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def reader(chain):
    return ChainReader(chain.w3)


@pytest.fixture
def protocol(chain):
    return FakeProtocol(chain)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
