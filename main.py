# Filename: main.py

import asyncio
import logging
import signal
import time

import aiohttp

from config import load_config
from data_sources import build_sources
from deduplicator import Deduplicator
from filters import TokenFilter
from notifier import AlertDispatcher
from performance_reporter import PerformanceReporter, PerformanceTracker
from poll_loop import PollLoop
from risk_scorer import RiskPolicy, RiskScorer
from telegram_alert import LogChannel, TelegramNotifier
from token_cache import TokenCache

logger = logging.getLogger("Main")


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )


def build_channel(config):
    if config.get("ENABLE_TELEGRAM") and config.get("TELEGRAM_BOT_TOKEN") and config.get("TELEGRAM_CHAT_ID"):
        return TelegramNotifier(
            config["TELEGRAM_BOT_TOKEN"],
            config["TELEGRAM_CHAT_ID"],
            timeout=config.get("HTTP_TIMEOUT_SECONDS", 10),
        )
    logger.info("📝 Telegram disabled, alerts go to the log")
    return LogChannel()


def startup_message(config, sources) -> str:
    monitors = "\n".join(f"• {source.name} ✅" for source in sources)
    return (
        f"🚀 *LAUNCH DETECTOR ONLINE*\n\n"
        f"*Speed:* {config['SCAN_INTERVAL_SECONDS']}-second scans\n\n"
        f"*Active Monitors:*\n{monitors}\n\n"
        f"*Detection Targets:*\n"
        f"• Tokens < {config['MAX_TOKEN_AGE_SECONDS'] / 3600:g} hours old\n"
        f"• Min liquidity: ${config['MIN_LIQUIDITY_USD']:,}\n\n"
        f"🔍 *Scanning for new launches...*"
    )


async def run(config):
    sources = build_sources(config)

    token_cache = TokenCache(config["TOKEN_CACHE_FILE"], ttl_seconds=config["TOKEN_CACHE_TTL_SECONDS"])
    deduplicator = Deduplicator(ttl_seconds=config["SEEN_TTL_SECONDS"], max_entries=config["SEEN_MAX_ENTRIES"])
    deduplicator.seed(token_cache.addresses(), token_cache.timestamps())

    tracker = PerformanceTracker(config)
    dispatcher = AlertDispatcher(build_channel(config), observers=[token_cache.record_alert, tracker.on_alert])

    loop = PollLoop(
        sources=sources,
        deduplicator=deduplicator,
        scorer=RiskScorer(RiskPolicy.from_config(config)),
        dispatcher=dispatcher,
        token_filter=TokenFilter(config),
        config=config,
    )
    reporter = PerformanceReporter(tracker, dispatcher, config, stats_provider=loop.get_stats)

    event_loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            event_loop.add_signal_handler(sig, loop.stop)
        except NotImplementedError:
            # Windows: KeyboardInterrupt is handled in main()
            pass

    timeout = aiohttp.ClientTimeout(total=config["HTTP_TIMEOUT_SECONDS"])
    async with aiohttp.ClientSession(timeout=timeout) as session:
        if config.get("SEND_STARTUP_ALERT", True):
            result = await dispatcher.send_text(startup_message(config, sources))
            if result.delivered:
                logger.info("✅ Startup alert sent")
            else:
                logger.error(f"❌ Startup alert failed: {result.error}")

        reporter_task = asyncio.create_task(reporter.run(session), name="performance-reporter")
        try:
            await loop.run(session)
        finally:
            reporter_task.cancel()
            try:
                await reporter_task
            except asyncio.CancelledError:
                pass
            logger.info("🛑 Saving token cache before shutdown...")
            await token_cache.flush()
            token_cache.cleanup_expired_tokens()
            token_cache.save()


def main():
    config = load_config()
    setup_logging(config.get("LOG_LEVEL", "INFO"))
    logger.info("🚀 Starting launch radar...")
    started = time.time()

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("❌ Bot stopped by user.")
    finally:
        logger.info(f"Uptime: {(time.time() - started) / 60:.0f} minutes")


if __name__ == "__main__":
    main()
