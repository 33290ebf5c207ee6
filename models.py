# Filename: models.py

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class PriceChange:
    m5: float = 0.0
    h1: float = 0.0
    h24: float = 0.0


@dataclass(frozen=True)
class TokenRecord:
    """
    TokenRecord is one snapshot of a tradable token, taken when a source was polled.
    It is the normalized shape every source produces and the only input of the
    filter, the risk scorer and the alert formatter.

    `address` is the identity key: two records with the same address are the same
    token, whatever source they came from.
    """
    address: str                              # Token mint address
    symbol: str
    name: str
    price_usd: float = 0.0
    liquidity_usd: float = 0.0
    volume_24h_usd: float = 0.0
    market_cap_usd: Optional[float] = None    # None when the provider does not say
    created_at: Optional[float] = None        # Pair creation, epoch seconds
    price_change: PriceChange = field(default_factory=PriceChange)
    pair_address: Optional[str] = None
    dex: Optional[str] = None
    buys_24h: int = 0
    sells_24h: int = 0
    source: str = "unknown"

    def age_seconds(self, now: float) -> Optional[float]:
        if self.created_at is None:
            return None
        return max(0.0, now - self.created_at)

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "price_usd": self.price_usd,
            "liquidity_usd": self.liquidity_usd,
            "volume_24h_usd": self.volume_24h_usd,
            "market_cap_usd": self.market_cap_usd,
            "created_at": self.created_at,
            "price_change": {
                "m5": self.price_change.m5,
                "h1": self.price_change.h1,
                "h24": self.price_change.h24,
            },
            "pair_address": self.pair_address,
            "dex": self.dex,
            "source": self.source,
        }


class RiskLevel(Enum):
    VERY_LOW = "VERY LOW RISK"
    LOW = "LOW RISK"
    MODERATE = "MODERATE RISK"
    HIGH = "HIGH RISK"
    EXTREME = "EXTREME RISK"


@dataclass(frozen=True)
class RiskReason:
    tag: str
    message: str


@dataclass(frozen=True)
class RiskAssessment:
    score: int
    level: RiskLevel
    reasons: Tuple[RiskReason, ...] = ()

    @property
    def tags(self) -> Tuple[str, ...]:
        return tuple(reason.tag for reason in self.reasons)
