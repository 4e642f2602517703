"""
Denylist gate: operator-maintained addresses the bot never acts upon.

The loaded set is a frozenset that is replaced wholesale on every reload or
mutation, so readers on the validation path always see either the old or the
new set and never a half-updated one.
"""
import logging
import os
import threading
from typing import FrozenSet, Iterable, Optional

from config import ZERO_ADDRESS

logger = logging.getLogger(__name__)

# Always ignored, regardless of the file contents
ALWAYS_IGNORED: FrozenSet[str] = frozenset({
    ZERO_ADDRESS,
    "0x000000000000000000000000000000000000dead",
})


def _normalize(addr: str) -> str:
    return addr.strip().lower()


def parse_denylist(text: str) -> FrozenSet[str]:
    """One address per line; blank lines ignored; case-insensitive."""
    return frozenset(_normalize(line) for line in text.splitlines() if line.strip())


class Denylist:
    """File-backed denylist.

    `extra` addresses are kept apart from the file set and survive every
    reload. Runtime `add` goes into the file set and is replaced by the next
    reload.
    """

    def __init__(self, path: Optional[str] = None, extra: Iterable[str] = ()):
        self.path = path
        self._extra: FrozenSet[str] = frozenset(_normalize(a) for a in extra)
        self._loaded: FrozenSet[str] = frozenset()
        self._lock = threading.Lock()
        self._watch_thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        if path:
            self.reload(path)

    def is_denied(self, addr: str) -> bool:
        a = _normalize(addr)
        return a in ALWAYS_IGNORED or a in self._extra or a in self._loaded

    def reload(self, path: Optional[str] = None) -> bool:
        """Replace the loaded set from file. Missing file yields an empty set."""
        path = path or self.path
        if path:
            self.path = path
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = parse_denylist(f.read())
        except FileNotFoundError:
            logger.info("[Denylist] File not found: %s, starting with empty denylist", path)
            self._swap(frozenset())
            return False
        except (OSError, TypeError) as e:
            logger.warning("[Denylist] Failed to load %s: %s", path, e)
            self._swap(frozenset())
            return False
        self._swap(loaded)
        logger.info("[Denylist] Loaded %d addresses from %s", len(loaded), path)
        return True

    def add(self, addr: str) -> None:
        with self._lock:
            self._loaded = self._loaded | {_normalize(addr)}

    def remove(self, addr: str) -> None:
        with self._lock:
            self._loaded = self._loaded - {_normalize(addr)}
            self._extra = self._extra - {_normalize(addr)}

    def size(self) -> int:
        return len(self._loaded | self._extra | ALWAYS_IGNORED)

    def filter(self, addresses: Iterable[str]):
        """Drop denied addresses, keeping delivery order."""
        return [a for a in addresses if not self.is_denied(a)]

    def _swap(self, new_set: FrozenSet[str]) -> None:
        with self._lock:
            self._loaded = new_set

    # -------- hot reload --------

    def watch(self, interval: float = 2.0) -> None:
        """Poll the file's modification time and reload when it changes."""
        if self._watch_thread and self._watch_thread.is_alive():
            return
        if not self.path:
            logger.warning("[Denylist] No file configured, nothing to watch")
            return
        self._stop.clear()

        def _mtime():
            try:
                return os.path.getmtime(self.path)
            except OSError:
                return None

        last = _mtime()

        def run():
            nonlocal last
            while not self._stop.wait(interval):
                current = _mtime()
                if current != last:
                    last = current
                    logger.info("[Denylist] File changed, reloading...")
                    self.reload()

        self._watch_thread = threading.Thread(target=run, daemon=True, name="DenylistWatcher")
        self._watch_thread.start()
        logger.info("[Denylist] Watching %s for changes", self.path)

    def stop_watching(self) -> None:
        self._stop.set()
        if self._watch_thread:
            self._watch_thread.join(timeout=5)
            self._watch_thread = None
