# Filename: deduplicator.py

import threading
import time
import logging
from collections import OrderedDict
from typing import Callable, Dict, Iterable, Optional

logger = logging.getLogger("Deduplicator")


class Deduplicator:
    """
    Remembers which token addresses already produced an alert.

    try_claim() is the only call the poll loop makes: it checks and records in one
    step, so two records for the same address in one scan can never both pass.
    Memory is bounded by an optional time window (ttl_seconds, 0 disables it) and
    by max_entries, past which the oldest claims are evicted first.
    """

    def __init__(self, ttl_seconds: float = 0, max_entries: int = 50_000,
                 clock: Callable[[], float] = time.time):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._seen: "OrderedDict[str, float]" = OrderedDict()
        self._lock = threading.Lock()

        self.stats = {
            "claimed": 0,
            "duplicates": 0,
            "evicted": 0,
        }

    def has_seen(self, address: str) -> bool:
        with self._lock:
            return self._is_live(address, self._clock())

    def mark_seen(self, address: str) -> None:
        with self._lock:
            self._record(address, self._clock())

    def try_claim(self, address: str) -> bool:
        """
        Returns True if the address was not seen yet (and records it), False otherwise.
        """
        with self._lock:
            now = self._clock()
            if self._is_live(address, now):
                self.stats["duplicates"] += 1
                return False
            self._record(address, now)
            self.stats["claimed"] += 1
            return True

    def seed(self, addresses: Iterable[str], seen_at: Optional[Dict[str, float]] = None) -> int:
        """Pre-claim addresses restored from disk. Returns how many were added."""
        seen_at = seen_at or {}
        added = 0
        with self._lock:
            now = self._clock()
            for address in sorted(addresses, key=lambda a: seen_at.get(a, now)):
                if self._is_live(address, now):
                    continue
                self._record(address, seen_at.get(address, now), now)
                added += 1
        if added:
            logger.info(f"[DEDUP] Seeded {added} addresses from cache.")
        return added

    def __len__(self) -> int:
        return len(self._seen)

    def get_stats(self) -> Dict[str, int]:
        return dict(self.stats, size=len(self._seen))

    def _is_live(self, address: str, now: float) -> bool:
        seen_at = self._seen.get(address)
        if seen_at is None:
            return False
        if self.ttl_seconds and now - seen_at >= self.ttl_seconds:
            del self._seen[address]
            return False
        return True

    def _record(self, address: str, seen_at: float, now: Optional[float] = None) -> None:
        self._seen[address] = seen_at
        self._seen.move_to_end(address)
        self._evict(seen_at if now is None else now)

    def _evict(self, now: float) -> None:
        # entries are kept in claim order, so expired ones sit at the front
        if self.ttl_seconds:
            while self._seen:
                oldest, ts = next(iter(self._seen.items()))
                if now - ts < self.ttl_seconds:
                    break
                del self._seen[oldest]
                self.stats["evicted"] += 1
        while len(self._seen) > self.max_entries:
            self._seen.popitem(last=False)
            self.stats["evicted"] += 1
