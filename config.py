"""
Liquidation Scout - Centralized Configuration
Single source of truth for chains, addresses and bot tunables
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


def _env_list(name: str, default: str = "") -> List[str]:
    raw = os.environ.get(name, default)
    return [s.strip() for s in raw.split(",") if s.strip()]


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


# ========== RPC ==========
# A user supplied RPC is always tried first
RPC_URL = os.environ.get('RPC_URL', '')


def _build_flare_rpcs():
    rpcs = []
    if RPC_URL:
        rpcs.append(RPC_URL)
    rpcs.extend([
        "https://flare-api.flare.network/ext/C/rpc",
        "https://rpc.ankr.com/flare",
        "https://flare.rpc.thirdweb.com",
    ])
    return rpcs


# ========== CHAIN CONFIGURATION ==========
CHAINS = {
    'flare': {
        'name': 'Flare',
        'chain_id': 14,
        'rpc': _build_flare_rpcs(),
        'explorer': 'https://flare-explorer.flare.network',
    },
    'coston2': {
        'name': 'Flare Testnet Coston2',
        'chain_id': 114,
        'rpc': [RPC_URL] if RPC_URL else ["https://coston2-api.flare.network/ext/C/rpc"],
        'explorer': 'https://coston2-explorer.flare.network',
    },
}

ACTIVE_CHAIN = os.environ.get('ACTIVE_CHAIN', 'flare')


def get_chain_config(chain_name=None):
    """Get configuration for specified chain or active chain"""
    chain = chain_name or ACTIVE_CHAIN
    return CHAINS.get(chain, CHAINS['flare'])


# ========== PROTOCOL ==========
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Comptrollers in priority order (first valid one becomes the primary registry)
COMPTROLLER_LIST = _env_list('COMPTROLLER_LIST') or _env_list('COMPTROLLER')
ORACLE_OVERRIDE = os.environ.get('ORACLE_OVERRIDE', '') or None
EXCLUDED_MARKETS = _env_list('EXCLUDED_MARKETS')

# ========== CANDIDATE SOURCES ==========
SUBGRAPH_URL = os.environ.get('SUBGRAPH_URL', '')
CANDIDATE_SOURCE = os.environ.get('CANDIDATE_SOURCE', 'indexer')  # indexer | chain
CHAIN_FALLBACK = _env_bool('CHAIN_FALLBACK', True)
LOOKBACK_BLOCKS = _env_int('LOOKBACK_BLOCKS', 50_000)
BLOCK_CHUNK = _env_int('BLOCK_CHUNK', 2000)

INDEXER_RETRIES = _env_int('INDEXER_RETRIES', 5)
INDEXER_BACKOFF_SECONDS = _env_float('INDEXER_BACKOFF_SECONDS', 1.0)
INDEXER_PAGE_SIZE = _env_int('INDEXER_PAGE_SIZE', 200)
INDEXER_MAX_PAGES = _env_int('INDEXER_MAX_PAGES', 50)
INDEXER_TIMEOUT_SECONDS = _env_float('INDEXER_TIMEOUT_SECONDS', 6.0)

# ========== BOT LOOP ==========
POLL_INTERVAL_SECONDS = _env_float('POLL_INTERVAL_SECONDS', 30.0)
# Borrow aggregation divides by 1e36, so the threshold is in whole USD units
MIN_DEBT_USD = _env_int('MIN_DEBT_USD', 1)
MAX_GAS_PRICE_GWEI = _env_float('MAX_GAS_PRICE_GWEI', 100.0)
DISABLE_GAS_GUARD = _env_bool('DISABLE_GAS_GUARD', False)
MAX_CANDIDATES_PER_CYCLE = _env_int('MAX_CANDIDATES_PER_CYCLE', 500)
MAX_LIQUIDATIONS_PER_CYCLE = _env_int('MAX_LIQUIDATIONS_PER_CYCLE', 1)

# Idempotence ledger windows
REPEAT_WINDOW_SECONDS = _env_float('REPEAT_WINDOW_SECONDS', 300.0)
LEDGER_RETENTION_SECONDS = _env_float('LEDGER_RETENTION_SECONDS', 3600.0)

# ========== DENYLIST ==========
ROOT_DIR = os.path.dirname(os.path.abspath(__file__))
DENYLIST_FILE = os.environ.get('DENYLIST_FILE', os.path.join(ROOT_DIR, 'data', 'denylist.txt'))
DENYLIST_WATCH = _env_bool('DENYLIST_WATCH', False)

# ========== CACHE / TELEMETRY ==========
UNPRICED_CACHE_TTL_SECONDS = _env_float('UNPRICED_CACHE_TTL_SECONDS', 15 * 60)
WATCHLIST_HEALTH_RATIO = _env_float('WATCHLIST_HEALTH_RATIO', 1.05)

# ========== SERVICE ==========
STATUS_PORT = _env_int('STATUS_PORT', 0)  # 0 disables the status API
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

USD18 = 10 ** 18
GWEI = 10 ** 9


@dataclass
class BotConfig:
    """Tunables of one liquidation scout process."""

    comptrollers: List[str] = field(default_factory=list)
    oracle_override: Optional[str] = None
    excluded_markets: Tuple[str, ...] = ()
    subgraph_url: str = ''
    candidate_source: str = 'indexer'
    chain_fallback: bool = True
    lookback_blocks: int = 50_000
    block_chunk: int = 2000
    indexer_retries: int = 5
    indexer_backoff_seconds: float = 1.0
    indexer_page_size: int = 200
    indexer_max_pages: int = 50
    indexer_timeout_seconds: float = 6.0
    poll_interval_seconds: float = 30.0
    min_debt_usd18: int = 1
    max_gas_price_wei: int = 100 * GWEI
    disable_gas_guard: bool = False
    max_candidates_per_cycle: int = 500
    max_liquidations_per_cycle: int = 1
    repeat_window_seconds: float = 300.0
    ledger_retention_seconds: float = 3600.0
    denylist_file: str = DENYLIST_FILE
    denylist_watch: bool = False
    unpriced_cache_ttl_seconds: float = 15 * 60
    watchlist_health_ratio: float = 1.05


def load_bot_config() -> BotConfig:
    """Build a BotConfig from the environment-backed module constants."""
    return BotConfig(
        comptrollers=list(COMPTROLLER_LIST),
        oracle_override=ORACLE_OVERRIDE,
        excluded_markets=tuple(m.lower() for m in EXCLUDED_MARKETS),
        subgraph_url=SUBGRAPH_URL,
        candidate_source=CANDIDATE_SOURCE,
        chain_fallback=CHAIN_FALLBACK,
        lookback_blocks=LOOKBACK_BLOCKS,
        block_chunk=BLOCK_CHUNK,
        indexer_retries=INDEXER_RETRIES,
        indexer_backoff_seconds=INDEXER_BACKOFF_SECONDS,
        indexer_page_size=INDEXER_PAGE_SIZE,
        indexer_max_pages=INDEXER_MAX_PAGES,
        indexer_timeout_seconds=INDEXER_TIMEOUT_SECONDS,
        poll_interval_seconds=POLL_INTERVAL_SECONDS,
        min_debt_usd18=MIN_DEBT_USD,
        max_gas_price_wei=int(MAX_GAS_PRICE_GWEI * GWEI),
        disable_gas_guard=DISABLE_GAS_GUARD,
        max_candidates_per_cycle=MAX_CANDIDATES_PER_CYCLE,
        max_liquidations_per_cycle=MAX_LIQUIDATIONS_PER_CYCLE,
        repeat_window_seconds=REPEAT_WINDOW_SECONDS,
        ledger_retention_seconds=LEDGER_RETENTION_SECONDS,
        denylist_file=DENYLIST_FILE,
        denylist_watch=DENYLIST_WATCH,
        unpriced_cache_ttl_seconds=UNPRICED_CACHE_TTL_SECONDS,
        watchlist_health_ratio=WATCHLIST_HEALTH_RATIO,
    )
