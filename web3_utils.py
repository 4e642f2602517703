"""
Liquidation Scout - Web3 Connection Utilities
Centralized Web3 connection management with fallback RPC providers
"""
from web3 import Web3
from typing import Optional, List, Dict, Tuple
from dataclasses import dataclass
from datetime import datetime, timezone
from collections import defaultdict, deque
import logging
import requests
import time

from config import get_chain_config, ACTIVE_CHAIN

logger = logging.getLogger(__name__)

# Global RPC tracking (shared across all modules)
_rpc_call_success = defaultdict(int)
_rpc_call_errors = defaultdict(int)
_rpc_response_times = defaultdict(lambda: deque(maxlen=100))
_current_provider_url = None

# Provider messages meaning "ask for fewer blocks"
_RANGE_TOO_LARGE_MARKERS = (
    "block range",
    "range too large",
    "range is too large",
    "exceeds",
    "too large",
    "query returned more than",
    "response size exceeded",
)

# Throttling replies, never a span problem
_RATE_LIMIT_MARKERS = (
    "429 client error",
    "status code 429",
    "too many requests",
    "rate limit",
)


def track_rpc_success(provider_url: str, response_time: float):
    """Track successful RPC call"""
    global _current_provider_url
    _rpc_call_success[provider_url] += 1
    _rpc_response_times[provider_url].append(response_time)
    _current_provider_url = provider_url


def track_rpc_error(provider_url: str):
    """Track failed RPC call"""
    _rpc_call_errors[provider_url] += 1


def is_range_too_large(exc: BaseException) -> bool:
    """True if a provider rejected an eth_getLogs request because of its block span."""
    msg = str(exc).lower()
    if any(marker in msg for marker in _RATE_LIMIT_MARKERS):
        return False
    return any(marker in msg for marker in _RANGE_TOO_LARGE_MARKERS)


class ChainReader:
    """Thin wrapper over a Web3 instance that counts and tracks every read.

    `reads` counts issued calls, failed ones included. The bot compares it
    before and after validation to detect a read path that silently does
    nothing.
    """

    def __init__(self, w3, provider_url: Optional[str] = None):
        self.w3 = w3
        self.provider_url = provider_url
        self.reads = 0
        self.errors = 0

    def contract(self, address: str, abi: List[Dict]):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def _tracked(self, fn, *args):
        self.reads += 1
        start_time = time.time()
        try:
            result = fn(*args)
        except Exception:
            self.errors += 1
            if self.provider_url:
                track_rpc_error(self.provider_url)
            raise
        if self.provider_url:
            track_rpc_success(self.provider_url, time.time() - start_time)
        return result

    def call(self, contract_fn):
        """Execute a bound contract view function (`contract.functions.x(...)`)."""
        return self._tracked(contract_fn.call)

    def get_logs(self, params: Dict):
        return self._tracked(self.w3.eth.get_logs, params)

    def block_number(self) -> int:
        return int(self._tracked(lambda: self.w3.eth.block_number))

    def gas_price(self) -> int:
        return int(self._tracked(lambda: self.w3.eth.gas_price))


def get_rpc_stats() -> Dict:
    """Get global RPC statistics across all modules"""
    chain_cfg = get_chain_config(ACTIVE_CHAIN)
    all_providers = list(chain_cfg.get("rpc", []))
    for url in list(_rpc_call_success) + list(_rpc_call_errors):
        if url not in all_providers:
            all_providers.append(url)

    stats = []
    for url in all_providers:
        success = _rpc_call_success[url]
        errors = _rpc_call_errors[url]
        total = success + errors

        success_rate = (success / total * 100) if total > 0 else 0
        times = _rpc_response_times[url]
        avg_response_time = sum(times) / len(times) if times else 0

        stats.append({
            'url': url,
            'provider': url.split('/')[2] if '/' in url else url[:30],
            'success': success,
            'errors': errors,
            'total': total,
            'success_rate': success_rate,
            'avg_response_time': avg_response_time
        })

    # Sort by total requests (descending), then by success rate (descending)
    stats.sort(key=lambda x: (-x['total'], -x['success_rate'], x['avg_response_time']))

    return {
        'stats': stats,
        'total_requests': sum(_rpc_call_success.values()) + sum(_rpc_call_errors.values()),
        'total_success': sum(_rpc_call_success.values()),
        'total_errors': sum(_rpc_call_errors.values()),
        'active_provider': _current_provider_url
    }


@dataclass
class ProviderState:
    """Track health metrics for a single RPC provider."""

    url: str
    error_count: int = 0
    last_success: Optional[datetime] = None
    last_error: Optional[str] = None

    def mark_success(self):
        self.last_success = datetime.now(timezone.utc)
        self.last_error = None

    def mark_failure(self, err: str):
        self.error_count += 1
        self.last_error = err


class ProviderManager:
    """Round-robin RPC manager with health tracking and retries."""

    def __init__(self, chain_name: Optional[str] = None):
        self.chain_name = chain_name or ACTIVE_CHAIN
        chain_cfg = get_chain_config(self.chain_name)
        rpc_urls = chain_cfg.get("rpc", [])
        self.providers: List[ProviderState] = [ProviderState(url) for url in rpc_urls]
        self._last_index: int = -1
        # Expected chain id for this manager (used to validate RPC endpoints)
        self.expected_chain_id = chain_cfg.get("chain_id")
        self._sticky: Optional[Tuple[int, ChainReader]] = None

    def _provider_order(self) -> List[int]:
        if not self.providers:
            return []
        indices = list(range(len(self.providers)))
        start = (self._last_index + 1) % len(indices)
        rotated = indices[start:] + indices[:start]
        # Prefer providers with the fewest errors while keeping rotation order stable
        return sorted(rotated, key=lambda idx: (self.providers[idx].error_count, rotated.index(idx)))

    def _log_status(self):
        status = [
            f"{p.url} (errors={p.error_count}, last_success={p.last_success}, last_error={p.last_error})"
            for p in self.providers
        ]
        logger.info("Provider status [%s]: %s", self.chain_name, "; ".join(status))

    def get_reader(self, base_timeout: int = 10, force_new: bool = False, sticky: bool = False) -> Optional[ChainReader]:
        global _current_provider_url

        if sticky and not force_new and self._sticky and self._sticky[1].w3.is_connected():
            return self._sticky[1]

        if not self.providers:
            logger.error("No RPC providers configured for chain %s", self.chain_name)
            return None

        attempt = 0
        for idx in self._provider_order():
            attempt += 1
            timeout = base_timeout * attempt
            provider = self.providers[idx]
            logger.info(
                "Connecting to provider %s (chain=%s, timeout=%ss, errors=%s)",
                provider.url,
                self.chain_name,
                timeout,
                provider.error_count,
            )
            try:
                start_time = time.time()
                w3 = Web3(Web3.HTTPProvider(provider.url, request_kwargs={"timeout": timeout}))
                if w3.is_connected():
                    # Verify provider is serving the expected chain id (avoid cross-chain providers)
                    try:
                        prov_chain = w3.eth.chain_id
                    except Exception:
                        prov_chain = None
                    if self.expected_chain_id and prov_chain != self.expected_chain_id:
                        provider.mark_failure(f"wrong chain (reported {prov_chain})")
                        track_rpc_error(provider.url)
                        logger.warning("Provider %s reports chain %s, expected %s -> skipping", provider.url, prov_chain, self.expected_chain_id)
                        continue

                    provider.mark_success()
                    track_rpc_success(provider.url, time.time() - start_time)
                    _current_provider_url = provider.url
                    self._last_index = idx
                    reader = ChainReader(w3, provider.url)
                    if sticky:
                        self._sticky = (idx, reader)
                    self._log_status()
                    return reader
                provider.mark_failure("connection check failed")
                track_rpc_error(provider.url)
            except requests.exceptions.RequestException as exc:
                provider.mark_failure(str(exc))
                track_rpc_error(provider.url)
                logger.warning("Network error on provider %s: %s", provider.url, exc)
            except Exception as exc:
                provider.mark_failure(str(exc))
                track_rpc_error(provider.url)
                logger.debug("Provider %s failed with %s", provider.url, exc)

        logger.error("All RPC providers failed for chain %s", self.chain_name)
        self._log_status()
        return None


_provider_managers: Dict[str, ProviderManager] = {}


def get_reader(
    timeout: int = 10,
    force_new: bool = False,
    chain_name: Optional[str] = None,
    sticky: bool = False,
) -> Optional[ChainReader]:
    """
    Get a ChainReader using round-robin provider selection.

    Args:
        timeout: Base request timeout in seconds (increases per retry)
        force_new: Ignore sticky cache and force new connection
        chain_name: Chain identifier defined in config.CHAINS
        sticky: Reuse last healthy provider for subsequent calls
    """

    chain_key = chain_name or ACTIVE_CHAIN
    manager = _provider_managers.setdefault(chain_key, ProviderManager(chain_key))
    return manager.get_reader(base_timeout=timeout, force_new=force_new, sticky=sticky)
