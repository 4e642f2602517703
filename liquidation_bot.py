"""
Liquidation Scout - poll loop

One cycle: source candidates -> denylist -> gas guard -> validate ->
idempotence bookkeeping -> hand off to the executor.
"""
import logging
import time
from typing import Callable, Iterator, List, Optional

from config import BotConfig
from errors import ReadPathError, ScoutError
from health_stats import HealthStats
from models import CycleReport, ValidatedAccount
from processed_ledger import ProcessedLedger, make_key

logger = logging.getLogger(__name__)


def log_handoff(account: ValidatedAccount) -> None:
    """Default executor: log what would be liquidated."""
    logger.info(
        "[SIMULATE] Would liquidate %s shortfall=%s borrow=%s markets=%s",
        account.address, account.shortfall_usd18, account.total_borrow_usd18,
        ",".join(account.active_markets),
    )


class Scheduler:
    """Yields cycle numbers, sleeping `interval` seconds between cycles."""

    def __init__(self, interval: float, sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self.sleep = sleep
        self.clock = clock

    def ticks(self, max_cycles: Optional[int] = None) -> Iterator[int]:
        cycle = 0
        while max_cycles is None or cycle < max_cycles:
            cycle += 1
            started = self.clock()
            yield cycle
            if max_cycles is not None and cycle >= max_cycles:
                return
            # Keep a fixed cadence; a slow cycle shortens the pause
            remaining = self.interval - (self.clock() - started)
            self.sleep(max(0.0, remaining))


class LiquidationBot:
    def __init__(
        self,
        config: BotConfig,
        reader,
        validator,
        denylist,
        primary_source,
        fallback_source=None,
        executor: Callable[[ValidatedAccount], None] = log_handoff,
        ledger: Optional[ProcessedLedger] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.reader = reader
        self.validator = validator
        self.denylist = denylist
        self.primary_source = primary_source
        self.fallback_source = fallback_source
        self.executor = executor
        self.clock = clock
        self.ledger = ledger or ProcessedLedger(
            config.repeat_window_seconds, config.ledger_retention_seconds, clock=clock
        )
        self.scheduler = scheduler or Scheduler(config.poll_interval_seconds)
        self.last_report: Optional[CycleReport] = None

    # -------- candidate sourcing --------

    def _fetch(self, source) -> List[str]:
        try:
            found = source.fetch()
        except ScoutError as e:
            logger.error("[Bot] %s source failed: %s", source.name, e)
            return []
        except Exception as e:
            logger.warning("[Bot] %s source error: %s", source.name, str(e)[:200])
            return []
        return self.denylist.filter(found)

    def gather_candidates(self, report: CycleReport) -> List[str]:
        candidates = self._fetch(self.primary_source)
        report.source = self.primary_source.name
        if not candidates and self.fallback_source is not None and self.config.chain_fallback:
            logger.info("[Bot] Primary source empty, falling back to %s", self.fallback_source.name)
            candidates = self._fetch(self.fallback_source)
            report.source = self.fallback_source.name
        return candidates

    def gas_too_high(self) -> bool:
        if self.config.disable_gas_guard:
            return False
        gas_price = self.reader.gas_price()
        if gas_price > self.config.max_gas_price_wei:
            logger.warning(
                "[Bot] Gas price %.2f gwei above ceiling %.2f gwei - skipping cycle",
                gas_price / 1e9, self.config.max_gas_price_wei / 1e9,
            )
            return True
        return False

    # -------- one cycle --------

    def run_cycle(self, cycle: int) -> CycleReport:
        report = CycleReport(cycle=cycle, started_at=time.time())
        stats = HealthStats(self.config.watchlist_health_ratio)
        t0 = self.clock()

        candidates = self.gather_candidates(report)
        report.candidates = len(candidates)
        logger.info("[Bot] Cycle %d: %d candidates from %s", cycle, len(candidates), report.source)

        if self.gas_too_high():
            report.abandoned = "gas_price"
            self._finish(report, stats, t0)
            return report

        batch = candidates[: self.config.max_candidates_per_cycle]
        reads_before = self.reader.reads
        checks_before = self.validator.chain_checks

        for address in batch:
            try:
                validated = self.validator.validate(address, self.config.min_debt_usd18, stats=stats, cycle=cycle)
            except Exception as e:
                report.failures += 1
                logger.warning("[Bot] Failed to validate %s: %s", address, str(e)[:200])
                continue
            if validated is None:
                continue
            report.validated.append(validated)
            self._hand_off(validated, report)

        report.reads = self.reader.reads - reads_before
        checked = self.validator.chain_checks - checks_before
        self.ledger.evict()

        if checked and report.reads == 0:
            raise ReadPathError(
                f"Cycle {cycle}: {checked} candidates validated without a single chain read"
            )

        self._finish(report, stats, t0)
        return report

    def _hand_off(self, account: ValidatedAccount, report: CycleReport) -> None:
        key = make_key(account.address, account.largest_borrow_market or "")
        if self.ledger.is_recent(key):
            report.repeats += 1
            logger.info("[Bot] %s already handled recently, skipping", account.address)
            return
        if report.handed_off >= self.config.max_liquidations_per_cycle:
            logger.info("[Bot] Liquidation cap (%d) reached, deferring %s",
                        self.config.max_liquidations_per_cycle, account.address)
            return
        try:
            self.executor(account)
        except Exception as e:
            logger.error("[Bot] Executor failed for %s: %s", account.address, str(e)[:200])
            return
        self.ledger.mark(key)
        report.handed_off += 1

    def _finish(self, report: CycleReport, stats: HealthStats, t0: float) -> None:
        report.health = stats.summary()
        report.duration_sec = self.clock() - t0
        self.last_report = report
        h = report.health
        logger.info(
            "[Bot] Cycle %d done: liquidatable=%d handed_off=%d repeats=%d failures=%d "
            "reads=%d hf_min=%s hf_p5=%s hf_median=%s watchlist=%d%s",
            report.cycle, len(report.validated), report.handed_off, report.repeats, report.failures,
            report.reads, h.get("min"), h.get("p5"), h.get("median"), h.get("watchlist", 0),
            f" abandoned={report.abandoned}" if report.abandoned else "",
        )

    # -------- loop --------

    def run(self, max_cycles: Optional[int] = None) -> None:
        for cycle in self.scheduler.ticks(max_cycles):
            try:
                self.run_cycle(cycle)
            except ReadPathError:
                logger.critical("[Bot] Read path is broken - stopping")
                raise
            except Exception:
                logger.exception("[Bot] Cycle %d failed", cycle)
