# Filename: filters.py

import time
from typing import Any, Dict, Optional, Tuple

from loguru import logger

from config import DEFAULT_CONFIG
from models import TokenRecord


class TokenFilter:
    """
    Cheap pre-filter applied before deduplication and scoring.
    Rejected tokens are not marked as seen, so they get another chance on the next scan.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or DEFAULT_CONFIG
        self.min_liquidity = float(config.get("MIN_LIQUIDITY_USD", DEFAULT_CONFIG["MIN_LIQUIDITY_USD"]))
        self.max_market_cap = float(config.get("MAX_MARKET_CAP_USD", DEFAULT_CONFIG["MAX_MARKET_CAP_USD"]))
        self.max_age = float(config.get("MAX_TOKEN_AGE_SECONDS", DEFAULT_CONFIG["MAX_TOKEN_AGE_SECONDS"]))
        self.min_symbol_length = int(config.get("MIN_SYMBOL_LENGTH", DEFAULT_CONFIG["MIN_SYMBOL_LENGTH"]))
        self.max_symbol_length = int(config.get("MAX_SYMBOL_LENGTH", DEFAULT_CONFIG["MAX_SYMBOL_LENGTH"]))
        self.filter_stats = {
            "address": 0,
            "liquidity": 0,
            "price": 0,
            "symbol": 0,
            "market_cap": 0,
            "age": 0,
        }

    def apply_filters(self, token: TokenRecord, now: Optional[float] = None) -> Tuple[bool, Optional[str]]:
        now = time.time() if now is None else now

        for name, check in (
            ("address", self.address_filter),
            ("liquidity", self.liquidity_filter),
            ("price", self.price_filter),
            ("symbol", self.symbol_filter),
            ("market_cap", self.market_cap_filter),
        ):
            if not check(token):
                self.filter_stats[name] += 1
                return False, name

        if not self.age_filter(token, now):
            self.filter_stats["age"] += 1
            return False, "age"

        return True, None

    def address_filter(self, token: TokenRecord) -> bool:
        if not token.address.strip():
            logger.debug(f"[FILTER ❌] {token.symbol or '?'}: missing address")
            return False
        return True

    def liquidity_filter(self, token: TokenRecord) -> bool:
        if token.liquidity_usd < self.min_liquidity:
            logger.debug(f"[FILTER ❌] {token.symbol or '?'}: Liquidity too low (${token.liquidity_usd:,.2f})")
            return False
        return True

    def price_filter(self, token: TokenRecord) -> bool:
        if token.price_usd <= 0:
            logger.debug(f"[FILTER ❌] {token.symbol or '?'}: No price")
            return False
        return True

    def symbol_filter(self, token: TokenRecord) -> bool:
        # very long symbols are almost always spam
        if not self.min_symbol_length <= len(token.symbol) <= self.max_symbol_length:
            logger.debug(f"[FILTER ❌] {token.address}: Symbol '{token.symbol}' rejected")
            return False
        return True

    def market_cap_filter(self, token: TokenRecord) -> bool:
        if token.market_cap_usd is not None and token.market_cap_usd > self.max_market_cap:
            logger.debug(f"[FILTER ❌] {token.symbol}: Market cap (${token.market_cap_usd:,.0f}) too big for a new launch")
            return False
        return True

    def age_filter(self, token: TokenRecord, now: float) -> bool:
        age = token.age_seconds(now)
        if age is not None and age > self.max_age:
            logger.debug(f"[FILTER ❌] {token.symbol}: Too old ({age / 60:.0f} min)")
            return False
        return True

    def get_filter_statistics(self):
        return self.filter_stats

    def reset_filter_statistics(self):
        for key in self.filter_stats:
            self.filter_stats[key] = 0
