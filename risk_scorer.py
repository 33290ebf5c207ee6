# Filename: risk_scorer.py

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from models import RiskAssessment, RiskLevel, RiskReason, TokenRecord

HOUR = 3600

LEVEL_EMOJI = {
    RiskLevel.VERY_LOW: "🟢",
    RiskLevel.LOW: "🟢",
    RiskLevel.MODERATE: "🟡",
    RiskLevel.HIGH: "🟠",
    RiskLevel.EXTREME: "🔴",
}


@dataclass(frozen=True)
class RiskPolicy:
    """
    Weights, bands and level thresholds of the safety score.
    Higher score means a safer-looking token; levels are the minimum score of each bucket.
    """
    base_score: int = 50

    very_low_liquidity_usd: float = 1_000
    very_low_liquidity_delta: int = -30
    low_liquidity_usd: float = 5_000
    low_liquidity_delta: int = -15
    strong_liquidity_usd: float = 20_000
    strong_liquidity_delta: int = 20

    very_new_age_seconds: float = 1 * HOUR
    very_new_age_delta: int = -20
    new_age_seconds: float = 2 * HOUR
    new_age_delta: int = -10

    high_volume_ratio: float = 2.0
    high_volume_delta: int = 15
    low_volume_ratio: float = 0.1
    low_volume_delta: int = -15

    # checked in order, first match wins, anything below is EXTREME
    level_thresholds: Tuple[Tuple[RiskLevel, int], ...] = field(default=(
        (RiskLevel.VERY_LOW, 90),
        (RiskLevel.LOW, 70),
        (RiskLevel.MODERATE, 50),
        (RiskLevel.HIGH, 30),
    ))

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RiskPolicy":
        thresholds = config.get("RISK_LEVEL_THRESHOLDS")
        if not isinstance(thresholds, dict) or not thresholds:
            return cls()
        # a partial mapping only moves the levels it names; EXTREME is the floor and never has a threshold.
        # unknown names and non-numeric values were reported by validate_config and are skipped here
        merged = {level.name: minimum for level, minimum in cls().level_thresholds}
        for name, minimum in thresholds.items():
            if name not in merged:
                continue
            if isinstance(minimum, bool) or not isinstance(minimum, (int, float)):
                continue
            merged[name] = int(minimum)
        levels = sorted(
            ((RiskLevel[name], minimum) for name, minimum in merged.items()),
            key=lambda item: item[1],
            reverse=True,
        )
        return cls(level_thresholds=tuple(levels))

    def level_for(self, score: int) -> RiskLevel:
        for level, minimum in self.level_thresholds:
            if score >= minimum:
                return level
        return RiskLevel.EXTREME


class RiskScorer:
    """
    Maps a TokenRecord to a RiskAssessment.

    Every rule is independent and adds its delta to the base score; the result is
    clamped to [0, 100] and bucketed into a RiskLevel. Reasons keep the order in
    which the rules are evaluated: liquidity, age, then volume/liquidity.
    The scorer does no I/O; `now` is passed in so the same record and the same
    instant always give the same assessment.
    """

    def __init__(self, policy: Optional[RiskPolicy] = None):
        self.policy = policy or RiskPolicy()

    def score(self, record: TokenRecord, now: float) -> RiskAssessment:
        p = self.policy
        score = p.base_score
        reasons: List[RiskReason] = []

        # Liquidity
        liquidity = record.liquidity_usd
        if liquidity < p.very_low_liquidity_usd:
            score += p.very_low_liquidity_delta
            reasons.append(RiskReason("liquidity_very_low", "⚠️ Very low liquidity - HIGH RISK"))
        elif liquidity < p.low_liquidity_usd:
            score += p.low_liquidity_delta
            reasons.append(RiskReason("liquidity_low", "🟡 Low liquidity - Be careful"))
        elif liquidity > p.strong_liquidity_usd:
            score += p.strong_liquidity_delta
            reasons.append(RiskReason("liquidity_strong", "✅ Good liquidity"))

        # Age (unknown age is not penalized)
        age = record.age_seconds(now)
        if age is not None:
            if age < p.very_new_age_seconds:
                score += p.very_new_age_delta
                reasons.append(RiskReason("age_very_new", "🔴 Very new token (<1h)"))
            elif age < p.new_age_seconds:
                score += p.new_age_delta
                reasons.append(RiskReason("age_new", "🟡 New token (<2h)"))

        # Volume / liquidity, compared without dividing so zero liquidity is fine
        volume = record.volume_24h_usd
        if volume > liquidity * p.high_volume_ratio:
            score += p.high_volume_delta
            reasons.append(RiskReason("volume_high", "✅ High trading volume"))
        elif volume < liquidity * p.low_volume_ratio:
            score += p.low_volume_delta
            reasons.append(RiskReason("volume_low", "⚠️ Low trading activity"))

        score = max(0, min(100, score))
        return RiskAssessment(score=score, level=p.level_for(score), reasons=tuple(reasons))
