"""ScoringEngine: Composite rank and quality-adjusted valuation.

Algorithm:
    1. Age score: longevity (``min(age * 5 + 5, 50)``) plus runway
       (``min(expiry * 10, 50)``), scaled to 0-10
    2. Demand score: 50-point listing floor plus 10 per open offer (max 50),
       scaled to 0-10
    3. Quality score: suffix tier (40%), keyword tier (35%), length tier (25%)
    4. Composite rank: ``age * 1.5 + demand * 1.0 + quality * 7.5``, clamped
       to [0, 100]
    5. Quality multiplier: piecewise-linear over the rank, 0.5x to 1.2x
    6. Final valuation: live price times multiplier, also as an 18-decimal
       fixed-point integer string

.. code-block:: python

    >>> engine = ScoringEngine()
    >>> record = AssetRecord.from_name(
    ...     "0x" + "ab" * 20, "nft.com", age_in_years=2.5,
    ...     time_to_expiry_years=8, outstanding_interest_count=12,
    ...     live_price_usd=10_000.0,
    ... )
    >>> result = engine.score(record)
    >>> result.composite_rank
    95.125
    >>> round(result.final_valuation_usd, 2)
    11675.0
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation

from .AssetRecord import AssetRecord

logger = logging.getLogger(__name__)

# On-chain prices are stored with 18 decimals.
FIXED_POINT_DECIMALS = 18

# Suffix scores out of 10; anything else scores DEFAULT_TIER_SCORE.
SUFFIX_TIERS: dict[str, int] = {
    "com": 10,
    "io": 10,
    "ai": 10,
    "net": 9,
    "org": 9,
    "app": 9,
    "dev": 9,
    "xyz": 8,
    "co": 8,
    "tech": 8,
}

# Keyword scores out of 10; highest matching keyword wins.
KEYWORD_TIERS: dict[str, int] = {
    "crypto": 10,
    "nft": 10,
    "defi": 10,
    "web3": 10,
    "blockchain": 10,
    "dao": 9,
    "token": 9,
    "meta": 9,
    "exchange": 9,
    "wallet": 9,
    "digital": 8,
    "smart": 8,
    "finance": 8,
    "market": 8,
    "invest": 8,
}

DEFAULT_TIER_SCORE = 4

QUALITY_WEIGHTS = {"suffix": 0.4, "keyword": 0.35, "length": 0.25}
COMPOSITE_WEIGHTS = {"age": 1.5, "demand": 1.0, "quality": 7.5}

MAX_RANK = 100.0


class ScoringError(Exception):
    """Raised when a valuation cannot be computed from the inputs."""

    pass


@dataclass
class ScoreBreakdown:
    """Sub-scores behind a composite rank, kept for audit logs.

    :ivar age_score: Longevity plus runway, 0-10.
    :ivar demand_score: Listing floor plus offers, 0-10.
    :ivar quality_score: Weighted tier score, 0-10.
    :ivar suffix_score: Suffix tier, 0-10.
    :ivar keyword_score: Keyword tier, 0-10.
    :ivar length_score: Length tier, 0-10.
    :ivar weights: Composite weights applied to the three sub-scores.
    """

    age_score: float
    demand_score: float
    quality_score: float
    suffix_score: float
    keyword_score: float
    length_score: float
    weights: dict[str, float]


@dataclass
class ValuationResult:
    """Output of the scoring engine for one asset.

    :ivar token_address: Fractional token address.
    :ivar display_name: Asset display name.
    :ivar composite_rank: Rank in [0, 100].
    :ivar quality_multiplier: Multiplier applied to the live price.
    :ivar final_valuation_usd: Quality-adjusted price per token.
    :ivar final_valuation_fixed_point: 18-decimal integer string.
    :ivar score_breakdown: Sub-scores used to build the rank.
    """

    token_address: str
    display_name: str
    composite_rank: float
    quality_multiplier: float
    final_valuation_usd: float
    final_valuation_fixed_point: str
    score_breakdown: ScoreBreakdown

    @property
    def quality_rating(self) -> str:
        """Human-readable bucket for the composite rank."""
        if self.composite_rank >= 80:
            return "Excellent"
        if self.composite_rank >= 60:
            return "Good"
        if self.composite_rank >= 40:
            return "Average"
        return "Below Average"


def to_fixed_point(value: float, decimals: int = FIXED_POINT_DECIMALS) -> str:
    """Convert a USD amount to a fixed-point integer string.

    Digits beyond ``decimals`` are truncated.

    :param value: Non-negative finite amount.
    :param decimals: Number of fractional digits (default: 18).
    :returns: Integer string (e.g., "1500000000000000000" for 1.5).
    :raises ScoringError: If the value is negative or not finite.

    .. code-block:: python

        >>> to_fixed_point(1.5)
        '1500000000000000000'
    """
    if not math.isfinite(value) or value < 0:
        raise ScoringError(f"Cannot convert {value!r} to fixed point")

    try:
        scaled = (Decimal(repr(value)) * (Decimal(10) ** decimals)).quantize(
            Decimal(1), rounding=ROUND_DOWN
        )
    except InvalidOperation as e:
        raise ScoringError(f"Cannot convert {value!r} to fixed point: {e}") from e
    return str(int(scaled))


def from_fixed_point(value: str | int, decimals: int = FIXED_POINT_DECIMALS) -> float:
    """Convert a fixed-point integer (or string) back to a float."""
    return float(Decimal(int(value)) / (Decimal(10) ** decimals))


def quality_multiplier(rank: float) -> float:
    """Map a composite rank to a valuation multiplier.

    Low (<= 30): 0.5x-0.7x, medium (<= 70): 0.7x-1.0x, high: 1.0x-1.2x.
    The pieces meet exactly at 30 and 70.

    :param rank: Composite rank in [0, 100].
    :returns: Multiplier in [0.5, 1.2].
    """
    if rank <= 30:
        return 0.5 + (rank / 30) * 0.2
    if rank <= 70:
        return 0.7 + ((rank - 30) / 40) * 0.3
    return 1.0 + ((rank - 70) / 30) * 0.2


def suffix_score(suffix: str) -> int:
    return SUFFIX_TIERS.get(suffix.lower(), DEFAULT_TIER_SCORE)


def keyword_score(label: str) -> int:
    normalized = label.lower()
    best = DEFAULT_TIER_SCORE
    for keyword, score in KEYWORD_TIERS.items():
        if keyword in normalized:
            best = max(best, score)
    return best


def length_score(length: int) -> int:
    if 1 <= length <= 5:
        return 10
    if 6 <= length <= 10:
        return 7
    return 4


class ScoringEngine:
    """Deterministic valuation of consolidated asset records.

    Holds no state between calls; ``score`` is a pure function of the
    record.
    """

    def score(self, record: AssetRecord) -> ValuationResult:
        """Compute the composite rank and valuation for one record.

        :param record: Consolidated asset record.
        :returns: ValuationResult with fixed-point output.
        :raises ScoringError: If an input or intermediate value is not finite.
        """
        self._check_finite(
            record,
            age_in_years=record.age_in_years,
            time_to_expiry_years=record.time_to_expiry_years,
            live_price_usd=record.live_price_usd,
        )

        age_years = max(0.0, record.age_in_years)
        expiry_years = max(0.0, record.time_to_expiry_years)
        offers = max(0, record.outstanding_interest_count)

        longevity = min(age_years * 5 + 5, 50)
        runway = min(expiry_years * 10, 50)
        age = (longevity + runway) / 10

        demand = (50 + min(offers * 10, 50)) / 10

        suffix = suffix_score(record.top_level_label)
        keyword = keyword_score(record.label)
        length = length_score(record.name_length)
        quality = (
            suffix * QUALITY_WEIGHTS["suffix"]
            + keyword * QUALITY_WEIGHTS["keyword"]
            + length * QUALITY_WEIGHTS["length"]
        )

        rank = (
            age * COMPOSITE_WEIGHTS["age"]
            + demand * COMPOSITE_WEIGHTS["demand"]
            + quality * COMPOSITE_WEIGHTS["quality"]
        )
        rank = min(max(rank, 0.0), MAX_RANK)

        multiplier = quality_multiplier(rank)
        final_usd = record.live_price_usd * multiplier
        self._check_finite(record, final_valuation_usd=final_usd)

        result = ValuationResult(
            token_address=record.token_address,
            display_name=record.display_name,
            composite_rank=rank,
            quality_multiplier=multiplier,
            final_valuation_usd=final_usd,
            final_valuation_fixed_point=to_fixed_point(final_usd),
            score_breakdown=ScoreBreakdown(
                age_score=age,
                demand_score=demand,
                quality_score=quality,
                suffix_score=suffix,
                keyword_score=keyword,
                length_score=length,
                weights=dict(COMPOSITE_WEIGHTS),
            ),
        )

        logger.debug(
            f"{record.display_name}: age={age:.2f}/10, demand={demand:.2f}/10, "
            f"quality={quality:.2f}/10 -> rank={rank:.2f}, "
            f"multiplier={multiplier:.3f}x, ${record.live_price_usd:.6f} "
            f"-> ${final_usd:.6f}"
        )
        return result

    @staticmethod
    def _check_finite(record: AssetRecord, **values: float) -> None:
        for name, value in values.items():
            if not math.isfinite(value):
                raise ScoringError(
                    f"{record.token_address}: {name} is not finite ({value!r})"
                )
