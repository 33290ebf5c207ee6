# Filename: token_cache.py

import asyncio
import json
import os
import time
import logging
from typing import Callable, Dict, List, Optional

from notifier import AlertEvent

logger = logging.getLogger("TokenCache")


class TokenCache:
    """
    Small on-disk JSON cache of recent alerts, keyed by token address.

    File format: {address: {"data": {...}, "timestamp": epoch_seconds}}.
    Entries older than ttl_seconds are dropped lazily, when they are read.
    """

    def __init__(self, cache_file: str = "token_cache.json", ttl_seconds: float = 1800,
                 clock: Callable[[], float] = time.time):
        self.cache_file = cache_file
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.cache: Dict[str, dict] = {}
        self._dirty = False
        self._flush_task: Optional[asyncio.Task] = None
        self.load()

    def load(self):
        if os.path.exists(self.cache_file):
            try:
                with open(self.cache_file, 'r') as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError("cache root is not an object")
                self.cache = data
                logger.info(f"[CACHE] Loaded {len(self.cache)} tokens from disk.")
            except (OSError, ValueError) as e:
                logger.error(f"[CACHE] Failed to load token cache: {e}")
                self.cache = {}

    def save(self):
        text = self._serialize()
        if text is not None:
            self._write(text)

    async def flush(self):
        """Waits for a pending background save, if any."""
        if self._flush_task is not None:
            await self._flush_task

    def _schedule_save(self):
        # inside the event loop the file is written from a worker thread; bursts share one write
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.save()
            return
        self._dirty = True
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = loop.create_task(self._flush())

    async def _flush(self):
        while self._dirty:
            self._dirty = False
            # snapshot on the loop thread, where the cache is mutated
            text = self._serialize()
            if text is not None:
                await asyncio.to_thread(self._write, text)

    def _serialize(self) -> Optional[str]:
        try:
            return json.dumps(self.cache)
        except (TypeError, ValueError) as e:
            logger.error(f"[CACHE] Failed to save token cache: {e}")
            return None

    def _write(self, text: str):
        try:
            with open(self.cache_file, 'w') as f:
                f.write(text)
        except OSError as e:
            logger.error(f"[CACHE] Failed to save token cache: {e}")

    def add(self, address: str, data: dict):
        self.cache[address] = {"data": data, "timestamp": self.clock()}
        self._schedule_save()

    def get(self, address: str) -> Optional[dict]:
        entry = self.cache.get(address)
        if entry is None:
            return None
        if self._is_expired(entry, self.clock()):
            del self.cache[address]
            return None
        return entry.get("data")

    def timestamps(self) -> Dict[str, float]:
        """Live addresses with their last write time; expired entries are pruned on the way."""
        now = self.clock()
        expired = [address for address, entry in self.cache.items() if self._is_expired(entry, now)]
        for address in expired:
            del self.cache[address]
        return {address: float(entry["timestamp"]) for address, entry in self.cache.items()}

    def addresses(self) -> List[str]:
        return list(self.timestamps())

    def remove(self, address: str):
        if address in self.cache:
            del self.cache[address]
            self._schedule_save()

    def cleanup_expired_tokens(self) -> int:
        before = len(self.cache)
        self.timestamps()
        removed = before - len(self.cache)
        if removed:
            logger.info(f"[CACHE] Removed {removed} expired tokens")
            self.save()
        return removed

    def record_alert(self, event: AlertEvent):
        """Dispatcher observer: remember every alerted token, delivered or not."""
        data = event.record.to_dict()
        data.update({
            "score": event.assessment.score,
            "level": event.assessment.level.name,
            "alert_source": event.source,
            "delivered": event.delivered,
        })
        self.add(event.record.address, data)

    def get_cache_statistics(self) -> Dict[str, int]:
        return {"cached": len(self.cache)}

    def __len__(self) -> int:
        return len(self.cache)

    def _is_expired(self, entry: dict, now: float) -> bool:
        try:
            return now - float(entry.get("timestamp", 0)) > self.ttl_seconds
        except (TypeError, ValueError, AttributeError):
            return True
