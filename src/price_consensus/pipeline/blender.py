"""
Final price blending.

Market evidence and AI consensus are combined with a market weight that
grows with the amount of corroborating evidence. Pure functions only.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ..models.consensus import FlagSeverity, ValidationFlag
from ..models.evidence import EvidenceSummary
from ..models.pipeline import PriceRange

BASE_MARKET_WEIGHT_PCT = 50
MAX_MARKET_WEIGHT_PCT = 75
VALIDATION_MARKET_WEIGHT = Decimal('0.85')
RANGE_LOW_FACTOR = Decimal('0.8')
RANGE_HIGH_FACTOR = Decimal('1.2')

_CENT = Decimal('0.01')


def round_cents(value: float | Decimal) -> float:
    """Round half-up to two decimals."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class BlendResult:
    final_price: float
    price_method: str
    price_range: PriceRange
    market_weight_pct: int = 0


def market_weight_pct(evidence: EvidenceSummary) -> int:
    """Market share of the blend in whole percentage points (50..75)."""
    pct = BASE_MARKET_WEIGHT_PCT
    if evidence.listing_count >= 10:
        pct += 20
    elif evidence.listing_count >= 3:
        pct += 10
    if evidence.has_authority:
        pct += 10
    if evidence.has_web_prices:
        pct += 5
    return min(pct, MAX_MARKET_WEIGHT_PCT)


def price_range_for(market_price: float, ai_consensus: float) -> PriceRange:
    positive = [Decimal(str(p)) for p in (market_price, ai_consensus) if p > 0]
    if not positive:
        return PriceRange(low=0.0, high=0.0)
    return PriceRange(
        low=round_cents(min(positive) * RANGE_LOW_FACTOR),
        high=round_cents(max(positive) * RANGE_HIGH_FACTOR),
    )


def blend_final_price(
    market_price: float,
    ai_consensus: float,
    evidence: EvidenceSummary,
    validation_flags: list[ValidationFlag] | None = None,
) -> BlendResult:
    """
    Blend market price with the AI consensus value.

    Args:
        market_price: Blended market price from the Fetch stage (0 = none)
        ai_consensus: Consensus value from the Reason stage (0 = none)
        evidence: Evidence summary, used for the market weight
        validation_flags: Validator flags; any error flag on a two-sided
            blend shifts the weight to 85% market

    Returns:
        BlendResult with the final price, method tag and price range
    """
    pct = market_weight_pct(evidence)
    price_range = price_range_for(market_price, ai_consensus)

    if market_price > 0 and ai_consensus > 0:
        market = Decimal(str(market_price))
        ai = Decimal(str(ai_consensus))
        has_error_flag = any(
            f.severity is FlagSeverity.ERROR for f in (validation_flags or [])
        )
        if has_error_flag:
            final = market * VALIDATION_MARKET_WEIGHT + ai * (1 - VALIDATION_MARKET_WEIGHT)
            method = f'evidence_blend_{pct}pct_market_validation_adjusted'
        else:
            weight = Decimal(pct) / 100
            final = market * weight + ai * (1 - weight)
            method = f'evidence_blend_{pct}pct_market'
        return BlendResult(round_cents(final), method, price_range, pct)

    if market_price > 0:
        return BlendResult(market_price, 'market_only', price_range, 100)
    if ai_consensus > 0:
        return BlendResult(ai_consensus, 'ai_reasoning_only', price_range, 0)
    return BlendResult(0.0, 'no_data', price_range, 0)
