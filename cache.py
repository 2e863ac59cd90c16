"""
cache.py - Short-lived in-memory cache of per-pass source results.
Keyed by (source, pass, normalized criteria). Expired entries are never served.
"""

import hashlib
import json
import threading
import time
from typing import Callable, Optional

from config import CACHE
from criteria import normalized
from models import CacheEntry, SearchCriteria
from monitoring import get_logger

logger = get_logger("cache")


class ResultCache:
    def __init__(
        self,
        ttl_seconds: float = None,
        sweep_interval_seconds: float = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = float(ttl_seconds if ttl_seconds is not None else CACHE.get("ttl_seconds", 300))
        self.sweep_interval_seconds = float(
            sweep_interval_seconds if sweep_interval_seconds is not None
            else CACHE.get("sweep_interval_seconds", 60)
        )
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    @staticmethod
    def make_key(source: str, pass_name: str, criteria: SearchCriteria) -> str:
        payload = json.dumps(
            {"source": source, "pass": pass_name, "criteria": normalized(criteria)},
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def get(self, key: str):
        """Return the cached value, or None on a miss or an expired entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry):
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: str, value):
        with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def sweep(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        with self._lock:
            expired = [key for key, entry in self._entries.items() if self._expired(entry)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Cache sweep removed {len(expired)} expired entries")
        return len(expired)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def start_sweeper(self):
        """Run sweep() on a daemon thread every sweep_interval_seconds."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="cache-sweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self):
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1.0)
            self._sweeper = None

    def _sweep_loop(self):
        while not self._stop.wait(self.sweep_interval_seconds):
            self.sweep()

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at >= self.ttl_seconds

    def __len__(self):
        with self._lock:
            return len(self._entries)
