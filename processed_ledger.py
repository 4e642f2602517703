import time
from typing import Callable, Dict, Tuple

# (account address, market) - both lowercase
ProcessedKey = Tuple[str, str]


def make_key(address: str, market: str) -> ProcessedKey:
    return address.lower(), (market or "").lower()


class ProcessedLedger:
    """In-memory idempotence ledger.

    A key marked within `repeat_window` seconds counts as recently processed;
    entries older than `retention` seconds are dropped by `evict()`.
    """

    def __init__(self, repeat_window: float = 300.0, retention: float = 3600.0,
                 clock: Callable[[], float] = time.monotonic):
        self.repeat_window = repeat_window
        self.retention = max(retention, repeat_window)
        self.clock = clock
        self._last_seen: Dict[ProcessedKey, float] = {}

    def mark(self, key: ProcessedKey) -> None:
        self._last_seen[key] = self.clock()

    def is_recent(self, key: ProcessedKey) -> bool:
        seen = self._last_seen.get(key)
        return seen is not None and self.clock() - seen < self.repeat_window

    def evict(self) -> int:
        cutoff = self.clock() - self.retention
        stale = [k for k, t in self._last_seen.items() if t < cutoff]
        for k in stale:
            del self._last_seen[k]
        return len(stale)

    def __len__(self) -> int:
        return len(self._last_seen)
