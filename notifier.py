# Filename: notifier.py

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from errors import DeliveryFailure
from models import RiskAssessment, TokenRecord
from risk_scorer import LEVEL_EMOJI

logger = logging.getLogger("AlertDispatcher")


@dataclass(frozen=True)
class DispatchResult:
    delivered: bool
    error: Optional[DeliveryFailure] = None


@dataclass(frozen=True)
class AlertEvent:
    """What observers receive after every dispatch attempt."""
    record: TokenRecord
    assessment: RiskAssessment
    source: str
    delivered: bool
    at: float


AlertObserver = Callable[[AlertEvent], None]


def escape_md(text: str) -> str:
    # Escape Markdown-sensitive characters
    return text.replace('_', '\\_').replace('*', '\\*').replace('[', '\\[').replace('`', '\\`')


def format_age(created_at: Optional[float], now: float) -> str:
    if created_at is None:
        return "Unknown"
    diff = max(0.0, now - created_at)
    if diff < 60:
        return "Just now"
    if diff < 3600:
        return f"{int(diff // 60)}m ago"
    if diff < 86400:
        return f"{int(diff // 3600)}h ago"
    return f"{int(diff // 86400)}d ago"


def format_change(value: float) -> str:
    arrow = "📈" if value > 0 else "📉"
    return f"{arrow} {value:+.1f}%"


def format_token_alert(record: TokenRecord, assessment: RiskAssessment, source: str,
                       now: Optional[float] = None) -> str:
    """Format the alert message text for a new token."""
    now = time.time() if now is None else now
    symbol = escape_md(record.symbol or "Unknown")
    name = escape_md(record.name or "New Token")
    market_cap = f"${record.market_cap_usd:,.0f}" if record.market_cap_usd is not None else "Unknown"
    chart_target = record.pair_address or record.address

    text = f"🚨 *NEW TOKEN ALERT*\n\n"
    text += f"*Token:* {symbol} - {name}\n"
    text += f"*Age:* ⏱️ {format_age(record.created_at, now)}\n"
    text += f"*Source:* {escape_md(source)}\n"
    text += f"*Contract:* `{record.address}`\n\n"

    text += f"💰 *Market Data:*\n"
    text += f"• *Price:* ${record.price_usd:.9f}\n"
    text += f"• *Liquidity:* ${record.liquidity_usd:,.0f}\n"
    text += f"• *Market Cap:* {market_cap}\n"
    text += f"• *24h Volume:* ${record.volume_24h_usd:,.0f}\n"
    text += f"• *5m Change:* {format_change(record.price_change.m5)}\n"
    text += f"• *1h Change:* {format_change(record.price_change.h1)}\n\n"

    text += f"🎯 *Risk Assessment:*\n"
    text += f"• *Safety Score:* {assessment.score}/100\n"
    text += f"• *Risk Level:* {LEVEL_EMOJI[assessment.level]} {assessment.level.value}\n"
    for reason in assessment.reasons:
        text += f"{reason.message}\n"

    text += f"\n📊 *Quick Actions:*\n"
    text += f"• [View Chart](https://dexscreener.com/solana/{chart_target})\n"
    text += f"• [Check on Birdeye](https://birdeye.so/token/{record.address}?chain=solana)"
    return text


class AlertDispatcher:
    """
    Formats one alert per token and hands it to a single channel.

    Delivery is best effort: a failing channel is logged and reported in the
    DispatchResult, never retried and never raised to the caller. Observers are
    called after every attempt, successful or not.
    """

    def __init__(self, channel, observers: Optional[List[AlertObserver]] = None,
                 clock: Callable[[], float] = time.time):
        self.channel = channel
        self.observers: List[AlertObserver] = list(observers or [])
        self.clock = clock
        self.sent = 0
        self.failed = 0

    def add_observer(self, observer: AlertObserver) -> None:
        self.observers.append(observer)

    async def dispatch(self, record: TokenRecord, assessment: RiskAssessment, source_name: str) -> DispatchResult:
        now = self.clock()
        message = format_token_alert(record, assessment, source_name, now=now)
        result = await self.send_text(message)

        if result.delivered:
            logger.info(f"✅ Alert sent: {record.symbol} ({assessment.score}/100, {source_name})")
        else:
            logger.error(f"❌ Alert for {record.symbol} ({record.address}) not delivered: {result.error}")

        self._notify(AlertEvent(record, assessment, source_name, result.delivered, now))
        return result

    async def send_text(self, text: str) -> DispatchResult:
        """Sends any Markdown text through the channel, with the same failure policy as alerts."""
        try:
            await asyncio.to_thread(self.channel.send_markdown, text)
        except DeliveryFailure as e:
            self.failed += 1
            return DispatchResult(False, e)
        except Exception as e:
            self.failed += 1
            return DispatchResult(False, DeliveryFailure(str(e) or e.__class__.__name__))
        self.sent += 1
        return DispatchResult(True)

    def _notify(self, event: AlertEvent) -> None:
        for observer in self.observers:
            try:
                observer(event)
            except Exception as e:
                logger.error(f"[Observer Error] {getattr(observer, '__name__', observer)}: {e}")
