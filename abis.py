"""
Minimal ABIs for Compound-style comptrollers, markets (cTokens) and oracles
"""
from eth_utils import event_abi_to_log_topic


def _view(name, inputs, outputs):
    return {
        "inputs": [{"internalType": t, "name": n, "type": t} for n, t in inputs],
        "name": name,
        "outputs": [{"internalType": t, "name": "", "type": t} for t in outputs],
        "stateMutability": "view",
        "type": "function",
    }


COMPTROLLER_ABI = [
    _view("getAllMarkets", [], ["address[]"]),
    _view("closeFactorMantissa", [], ["uint256"]),
    _view("liquidationIncentiveMantissa", [], ["uint256"]),
    _view("oracle", [], ["address"]),
    _view("getAssetsIn", [("account", "address")], ["address[]"]),
    _view("getAccountLiquidity", [("account", "address")], ["uint256", "uint256", "uint256"]),
]

# Compound returns (isListed, collateralFactorMantissa, isComped); Kinetic drops the last field
COMPTROLLER_MARKETS_3_ABI = [_view("markets", [("cToken", "address")], ["bool", "uint256", "bool"])]
COMPTROLLER_MARKETS_2_ABI = [_view("markets", [("cToken", "address")], ["bool", "uint256"])]

BORROW_EVENT_ABI = {
    "anonymous": False,
    "inputs": [
        {"indexed": False, "internalType": "address", "name": "borrower", "type": "address"},
        {"indexed": False, "internalType": "uint256", "name": "borrowAmount", "type": "uint256"},
        {"indexed": False, "internalType": "uint256", "name": "accountBorrows", "type": "uint256"},
        {"indexed": False, "internalType": "uint256", "name": "totalBorrows", "type": "uint256"},
    ],
    "name": "Borrow",
    "type": "event",
}

LIQUIDATE_BORROW_EVENT_ABI = {
    "anonymous": False,
    "inputs": [
        {"indexed": False, "internalType": "address", "name": "liquidator", "type": "address"},
        {"indexed": False, "internalType": "address", "name": "borrower", "type": "address"},
        {"indexed": False, "internalType": "uint256", "name": "repayAmount", "type": "uint256"},
        {"indexed": False, "internalType": "address", "name": "cTokenCollateral", "type": "address"},
        {"indexed": False, "internalType": "uint256", "name": "seizeTokens", "type": "uint256"},
    ],
    "name": "LiquidateBorrow",
    "type": "event",
}

BORROW_TOPIC = event_abi_to_log_topic(BORROW_EVENT_ABI)
LIQUIDATE_BORROW_TOPIC = event_abi_to_log_topic(LIQUIDATE_BORROW_EVENT_ABI)

CTOKEN_ABI = [
    _view("borrowBalanceStored", [("account", "address")], ["uint256"]),
    _view("underlying", [], ["address"]),
    _view("symbol", [], ["string"]),
    _view("comptroller", [], ["address"]),
    BORROW_EVENT_ABI,
    LIQUIDATE_BORROW_EVENT_ABI,
]

ORACLE_ABI = [
    _view("getUnderlyingPrice", [("cToken", "address")], ["uint256"]),
]

ERC20_ABI = [
    {"constant": True, "inputs": [], "name": "symbol", "outputs": [{"name": "", "type": "string"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "decimals", "outputs": [{"name": "", "type": "uint8"}], "type": "function"},
]
