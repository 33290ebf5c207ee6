# Filename: poll_loop.py

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp

from data_sources import TokenSource
from deduplicator import Deduplicator
from filters import TokenFilter
from models import TokenRecord
from notifier import AlertDispatcher
from risk_scorer import RiskScorer

logger = logging.getLogger("PollLoop")


class LoopState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SCORING_AND_DISPATCHING = "scoring_and_dispatching"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class PollLoop:
    """
    Scans every source on a fixed interval and alerts once per new token.

    One iteration: fetch all sources concurrently (a failing source only loses its
    own records), pre-filter, claim the address in the deduplicator, score, dispatch.
    An error escaping an iteration is logged and followed by a longer cooldown;
    only stop() ends run(), and it takes effect at the next iteration boundary.
    """

    def __init__(self, sources: List[TokenSource], deduplicator: Deduplicator, scorer: RiskScorer,
                 dispatcher: AlertDispatcher, token_filter: Optional[TokenFilter] = None,
                 config: Optional[Dict[str, Any]] = None, clock: Callable[[], float] = time.time):
        config = config or {}
        self.sources = sources
        self.deduplicator = deduplicator
        self.scorer = scorer
        self.dispatcher = dispatcher
        self.token_filter = token_filter
        self.clock = clock

        self.scan_interval = config.get("SCAN_INTERVAL_SECONDS", 20)
        self.error_cooldown = config.get("ERROR_COOLDOWN_SECONDS", 60)
        self.max_alerts_per_source = config.get("MAX_ALERTS_PER_SOURCE", 5)
        self.heartbeat_interval = config.get("HEARTBEAT_INTERVAL_SECONDS", 300)
        self.http_timeout = config.get("HTTP_TIMEOUT_SECONDS", 10)

        self.state = LoopState.IDLE
        self._running = False
        self._wakeup: Optional[asyncio.Event] = None
        self._last_heartbeat = 0.0

        self.stats = {
            "scans": 0,
            "fetched": 0,
            "filtered": 0,
            "duplicates": 0,
            "alerts": 0,
            "delivery_failures": 0,
            "source_failures": 0,
            "errors": 0,
        }
        self.alerts_by_source: Dict[str, int] = {source.name: 0 for source in sources}

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Requests a stop; in-flight fetches are allowed to complete."""
        if self._running:
            logger.info("🛑 Stop requested")
        self._running = False
        if self._wakeup is not None:
            self._wakeup.set()

    async def run(self, session: Optional[aiohttp.ClientSession] = None) -> None:
        self._running = True
        self._wakeup = asyncio.Event()
        owns_session = session is None
        if owns_session:
            session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.http_timeout))

        logger.info(f"🚀 Poll loop started: {len(self.sources)} sources, every {self.scan_interval}s")
        try:
            while self._running:
                try:
                    await self.run_once(session)
                    delay = self.scan_interval
                except Exception as e:
                    self.stats["errors"] += 1
                    logger.exception(f"❌ Detection loop error: {e}")
                    delay = self.error_cooldown

                if not self._running:
                    break
                self.state = LoopState.SLEEPING
                await self._sleep(delay)
        finally:
            self.state = LoopState.STOPPED
            self._running = False
            if owns_session:
                await session.close()
            logger.info("🛑 Poll loop stopped")

    async def run_once(self, session) -> int:
        """Runs a single scan. Returns the number of alerts dispatched."""
        self.stats["scans"] += 1
        logger.info(f"🔍 Scan #{self.stats['scans']}")

        self.state = LoopState.FETCHING
        batches = await self._fetch_all(session)

        self.state = LoopState.SCORING_AND_DISPATCHING
        now = self.clock()
        dispatched = 0
        for source_name, records in batches:
            dispatched += await self._process_batch(source_name, records, now)

        self._maybe_heartbeat(now)
        return dispatched

    async def _fetch_all(self, session) -> List[Tuple[str, List[TokenRecord]]]:
        results = await asyncio.gather(
            *(source.fetch(session) for source in self.sources),
            return_exceptions=True,
        )
        batches = []
        for source, result in zip(self.sources, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                self.stats["source_failures"] += 1
                logger.warning(f"⚠️ {source.name} failed: {result!r}")
                continue
            self.stats["fetched"] += len(result)
            batches.append((source.name, result))
        return batches

    async def _process_batch(self, source_name: str, records: List[TokenRecord], now: float) -> int:
        dispatched = 0
        for record in records:
            if self.max_alerts_per_source and dispatched >= self.max_alerts_per_source:
                break

            if self.token_filter is not None:
                passed, _reason = self.token_filter.apply_filters(record, now)
                if not passed:
                    self.stats["filtered"] += 1
                    continue

            # check-and-mark in one synchronous step: nothing can interleave here
            if not self.deduplicator.try_claim(record.address):
                self.stats["duplicates"] += 1
                continue

            assessment = self.scorer.score(record, now)
            result = await self.dispatcher.dispatch(record, assessment, source_name)
            dispatched += 1
            self.stats["alerts"] += 1
            self.alerts_by_source[source_name] = self.alerts_by_source.get(source_name, 0) + 1
            if not result.delivered:
                self.stats["delivery_failures"] += 1
        return dispatched

    async def _sleep(self, delay: float) -> None:
        # stop() sets the event, so a pending stop does not wait out the full interval
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def _maybe_heartbeat(self, now: float) -> None:
        if now - self._last_heartbeat < self.heartbeat_interval:
            return
        self._last_heartbeat = now
        per_source = ", ".join(f"{name}: {count}" for name, count in self.alerts_by_source.items())
        logger.info(
            f"⚡ Bot alive - Scans: {self.stats['scans']} | Alerts: {self.stats['alerts']} "
            f"({per_source}) | Seen: {len(self.deduplicator)} | Errors: {self.stats['errors']}"
        )

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats, state=self.state.value, alerts_by_source=dict(self.alerts_by_source))
