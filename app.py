from flask import Flask, jsonify
import logging
import sys
import threading
import time
from typing import Optional

import web3_utils
from account_validator import AccountValidator
from chain_candidates import ChainLogCandidates
from config import ACTIVE_CHAIN, LOG_LEVEL, STATUS_PORT, BotConfig, load_bot_config
from denylist import Denylist
from errors import FatalError
from indexer_candidates import IndexerCandidates, is_retryable_indexer_error
from liquidation_bot import LiquidationBot
from registry_resolver import RegistryResolver
from retry_utils import RetryPolicy, linear_backoff

app = Flask(__name__)

# Track server start time for uptime calculation
SERVER_START_TIME = time.time()

# Bot instance served by the status endpoints (set by attach_bot)
_bot: Optional[LiquidationBot] = None
_registry: Optional[RegistryResolver] = None


# Logging Setup - uniform, colored console format
class _ColorFormatter(logging.Formatter):
    """Simple color formatter for console logs."""
    COLORS = {
        'DEBUG': '\x1b[90m',   # dim gray
        'INFO': '\x1b[37m',    # white
        'WARNING': '\x1b[33m', # yellow
        'ERROR': '\x1b[31m',   # red
        'CRITICAL': '\x1b[41m' # red background
    }
    RESET = '\x1b[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        formatted = super().format(record)
        return f"{color}{formatted}{self.RESET}"


def setup_logging(level=logging.INFO):
    root = logging.getLogger()
    if root.handlers:
        return  # already configured

    fmt = '%(asctime)s %(levelname)-7s [%(name)s] %(message)s'
    handler = logging.StreamHandler()
    handler.setFormatter(_ColorFormatter(fmt, datefmt='%H:%M:%S'))

    root.setLevel(level)
    root.addHandler(handler)

    # Module specific defaults to reduce noise
    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('web3').setLevel(logging.WARNING)
    logging.getLogger('web3_utils').setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def attach_bot(bot: Optional[LiquidationBot], registry: Optional[RegistryResolver] = None) -> None:
    global _bot, _registry
    _bot = bot
    _registry = registry


@app.route('/api/status')
def api_status():
    """Last cycle report plus denylist and registry state."""
    if _bot is None:
        return jsonify({"status": "starting", "message": "Bot not initialised yet"}), 503

    report = _bot.last_report
    selected = _registry.selected if _registry is not None else None
    return jsonify({
        "status": "success",
        "timestamp": time.time(),
        "uptime_seconds": int(time.time() - SERVER_START_TIME),
        "chain": ACTIVE_CHAIN,
        "registry": {
            "address": selected.address,
            "oracle": selected.oracle,
            "close_factor_mantissa": str(selected.close_factor_mantissa),
            "liquidation_incentive_mantissa": str(selected.liquidation_incentive_mantissa),
        } if selected else None,
        "denylist_size": _bot.denylist.size(),
        "ledger_size": len(_bot.ledger),
        "last_cycle": report.to_dict() if report else None,
    })


@app.route('/api/rpc_stats')
def api_rpc_stats():
    """Get RPC provider performance statistics"""
    try:
        stats = web3_utils.get_rpc_stats()

        if not stats or stats['total_requests'] == 0:
            return jsonify({
                "status": "no_data",
                "message": "No RPC statistics available yet. System needs to make RPC calls first.",
                "stats": []
            })

        return jsonify({
            "status": "success",
            "timestamp": time.time(),
            "uptime_seconds": int(time.time() - SERVER_START_TIME),
            "total_requests": stats['total_requests'],
            "total_success": stats['total_success'],
            "total_errors": stats['total_errors'],
            "providers": stats['stats'],
            "active_provider": stats['active_provider']
        })
    except Exception as e:
        logger.error("[RPC Stats] Failed: %s", e, exc_info=True)
        return jsonify({
            "status": "error",
            "message": str(e)
        }), 500


def build_bot(config: BotConfig, reader) -> LiquidationBot:
    """Wire sources, validator and loop. Raises FatalError on a bad registry."""
    denylist = Denylist(config.denylist_file)
    if config.denylist_watch:
        denylist.watch()
    logger.info("[App] Denylist loaded: %d addresses", denylist.size())

    resolver = RegistryResolver(reader, config.comptrollers, config.oracle_override)
    resolver.resolve()
    markets = resolver.all_markets()

    validator = AccountValidator(
        reader,
        resolver,
        denylist,
        excluded_markets=config.excluded_markets,
        unpriced_ttl=config.unpriced_cache_ttl_seconds,
    )

    indexer = IndexerCandidates(
        config.subgraph_url,
        page_size=config.indexer_page_size,
        max_pages=config.indexer_max_pages,
        timeout=config.indexer_timeout_seconds,
        retry_policy=RetryPolicy(
            max_attempts=config.indexer_retries,
            backoff=linear_backoff(config.indexer_backoff_seconds),
            retryable=is_retryable_indexer_error,
            name="Indexer",
        ),
    )
    chain = ChainLogCandidates(reader, markets, config.lookback_blocks, config.block_chunk)

    if config.candidate_source == 'chain' or not config.subgraph_url:
        primary, fallback = chain, None
    else:
        primary, fallback = indexer, chain

    bot = LiquidationBot(config, reader, validator, denylist, primary, fallback_source=fallback)
    attach_bot(bot, resolver)
    return bot


def _start_status_server(port: int) -> threading.Thread:
    def run():
        app.run(debug=False, host='0.0.0.0', port=port, use_reloader=False)

    t = threading.Thread(target=run, daemon=True, name="StatusServer")
    t.start()
    logger.info("[App] Status API on http://127.0.0.1:%d/api/status", port)
    return t


def main(max_cycles: Optional[int] = None) -> int:
    setup_logging(getattr(logging, LOG_LEVEL.upper(), logging.INFO))
    config = load_bot_config()

    reader = web3_utils.get_reader(sticky=True)
    if reader is None:
        logger.critical("[App] No RPC provider reachable for chain %s", ACTIVE_CHAIN)
        return 1

    try:
        bot = build_bot(config, reader)
        if STATUS_PORT:
            _start_status_server(STATUS_PORT)
        logger.info(
            "[App] Ready - source=%s fallback=%s interval=%ss",
            bot.primary_source.name,
            bot.fallback_source.name if bot.fallback_source else "none",
            config.poll_interval_seconds,
        )
        bot.run(max_cycles)
    except FatalError as e:
        logger.critical("[App] Fatal: %s", e)
        return 2
    except KeyboardInterrupt:
        logger.info("[App] Interrupted, shutting down")
    finally:
        if _bot is not None:
            _bot.denylist.stop_watching()
    return 0


if __name__ == '__main__':
    sys.exit(main())
