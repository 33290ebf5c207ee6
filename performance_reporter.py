# Filename: performance_reporter.py

import asyncio
import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from data_sources import DEXSCREENER_BASE_URL, pick_main_pair, safe_float
from notifier import AlertDispatcher, AlertEvent

logger = logging.getLogger("PerformanceReporter")

PUMP_THRESHOLD_PCT = 100.0
RUG_LIQUIDITY_RATIO = 0.1


@dataclass
class TrackedToken:
    address: str
    symbol: str
    alert_time: float
    initial_price: float
    initial_liquidity: float
    checked: bool = False
    change_pct: Optional[float] = None


class PerformanceTracker:
    """
    Follows every delivered alert and, once check_delay seconds have passed,
    compares the token's current DexScreener price and liquidity to the alert snapshot.
    """

    def __init__(self, config: Dict[str, Any], clock: Callable[[], float] = time.time):
        self.check_delay = config.get("PERFORMANCE_CHECK_DELAY_SECONDS", 3600)
        self.base_url = config.get("DEXSCREENER_BASE_URL", DEXSCREENER_BASE_URL).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=config.get("HTTP_TIMEOUT_SECONDS", 10))
        self.clock = clock
        self.tracked: Dict[str, TrackedToken] = {}
        self.metrics = {
            "total_alerted": 0,
            "checked": 0,
            "pumped": 0,
            "rugged": 0,
        }
        self.best_performer: Optional[TrackedToken] = None

    def on_alert(self, event: AlertEvent) -> None:
        if event.delivered:
            self.track(event.record.address, event.record.symbol, event.record.price_usd,
                       event.record.liquidity_usd, event.at)

    def track(self, address: str, symbol: str, price: float, liquidity: float, alert_time: float) -> None:
        self.tracked[address] = TrackedToken(address, symbol, alert_time, price, liquidity)
        self.metrics["total_alerted"] += 1

    def due(self) -> List[TrackedToken]:
        now = self.clock()
        return [t for t in self.tracked.values() if not t.checked and now - t.alert_time >= self.check_delay]

    def evaluate(self, token: TrackedToken, current_price: float, current_liquidity: float) -> Optional[float]:
        token.checked = True
        self.metrics["checked"] += 1
        # checked tokens leave the map; best_performer keeps its own reference
        if self.tracked.get(token.address) is token:
            del self.tracked[token.address]

        if current_liquidity < token.initial_liquidity * RUG_LIQUIDITY_RATIO:
            self.metrics["rugged"] += 1

        if token.initial_price <= 0:
            return None

        change = (current_price - token.initial_price) / token.initial_price * 100
        token.change_pct = change
        if change > PUMP_THRESHOLD_PCT:
            self.metrics["pumped"] += 1
        best = self.best_performer
        if best is None or best.change_pct is None or change > best.change_pct:
            self.best_performer = token

        logger.info(f"📊 {token.symbol} performance: {change:+.1f}%")
        return change

    async def check_due(self, session: aiohttp.ClientSession) -> int:
        """Checks every token whose delay has elapsed. Returns how many were evaluated."""
        evaluated = 0
        for token in self.due():
            try:
                async with session.get(f"{self.base_url}/tokens/{token.address}", timeout=self.timeout) as response:
                    if response.status != 200:
                        logger.warning(f"[PERF] HTTP {response.status} for {token.symbol}, retrying later")
                        continue
                    data = await response.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.warning(f"[PERF] Performance check error for {token.symbol}: {e}")
                continue

            pairs = (data.get("pairs") or []) if isinstance(data, dict) else None
            if not isinstance(pairs, list):
                logger.warning(f"[PERF] Unexpected payload for {token.symbol}, retrying later")
                continue

            pair = pick_main_pair([p for p in pairs if isinstance(p, dict)])
            if pair is None:
                # no pair left at all: the pool is gone
                self.evaluate(token, 0.0, 0.0)
            else:
                self.evaluate(token, safe_float(pair.get("priceUsd")), safe_float((pair.get("liquidity") or {}).get("usd")))
            evaluated += 1
        return evaluated

    def get_summary(self) -> Dict[str, Any]:
        best = self.best_performer
        return dict(
            self.metrics,
            tracking=sum(1 for t in self.tracked.values() if not t.checked),
            best_performer={"symbol": best.symbol, "change_pct": best.change_pct} if best else None,
        )


class PerformanceReporter:
    def __init__(self, tracker: PerformanceTracker, dispatcher: AlertDispatcher, config: Dict[str, Any],
                 stats_provider: Optional[Callable[[], Dict[str, Any]]] = None):
        self.tracker = tracker
        self.dispatcher = dispatcher
        self.stats_provider = stats_provider
        self.interval = config.get("PERFORMANCE_REPORT_INTERVAL_HOURS", 6) * 3600
        self.check_interval = min(60, self.interval)

    def format_report(self, summary: Dict[str, Any], loop_stats: Optional[Dict[str, Any]] = None) -> str:
        report = f"""
📊 *Performance Report*

*Alerts Sent:* {summary['total_alerted']}
*Checked After Delay:* {summary['checked']}
*Pumped (>100%):* {summary['pumped']}
*Rugged:* {summary['rugged']}
*Still Tracking:* {summary['tracking']}
        """.strip()

        best = summary.get("best_performer")
        if best:
            report += f"\n\n🏅 *Best Performer:* {best['symbol']} ({best['change_pct']:+.1f}%)"

        if loop_stats:
            report += f"\n\n📡 *Scans:* {loop_stats.get('scans', 0)} | *Errors:* {loop_stats.get('errors', 0)}"

        return report

    async def send_report(self):
        loop_stats = self.stats_provider() if self.stats_provider else None
        message = self.format_report(self.tracker.get_summary(), loop_stats)
        result = await self.dispatcher.send_text(message)
        if result.delivered:
            logger.info("[PERF REPORT] Report sent.")
        else:
            logger.error(f"[Reporter Error] Failed to send report: {result.error}")

    async def run(self, session: aiohttp.ClientSession):
        """Runs until cancelled: performance checks every minute, a report every interval."""
        last_report = time.monotonic()
        logger.info("✅ Performance reporter started.")
        while True:
            await asyncio.sleep(self.check_interval)
            try:
                await self.tracker.check_due(session)
                if time.monotonic() - last_report >= self.interval:
                    await self.send_report()
                    last_report = time.monotonic()
            except Exception as e:
                logger.exception(f"[Reporter Error] {e}")
