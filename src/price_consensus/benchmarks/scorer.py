"""
Per-vote benchmark scoring against market ground truth.

Every vote from every stage, failed ones included, becomes one
BenchmarkRecord. Ground truth is the authority price when one exists,
otherwise the marketplace median; without either, error fields stay empty.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..models.vote import Decision, ModelVote

ACCURATE_WITHIN_PERCENT = 10.0

BenchmarkStage = Literal['identify', 'market_search', 'reason', 'validate']


class BenchmarkContext(BaseModel):
    """Run-level facts shared by every record of one analysis."""

    model_config = ConfigDict(frozen=True)

    analysis_id: str
    item_name: str
    category: str
    final_price: float = 0.0
    price_method: str = 'no_data'
    decision: Decision = Decision.SELL
    confidence: int = 0
    analysis_quality: str = 'DEGRADED'
    authority_source: str | None = None
    authority_price: float = 0.0
    market_median: float = 0.0
    market_listing_count: int = 0
    market_confidence: float = 0.0
    consensus_price: float = 0.0
    consensus_decision: Decision = Decision.SELL
    total_votes: int = 0
    buy_threshold: float = 2.0
    had_image: bool = True

    @property
    def ground_truth(self) -> tuple[float | None, str | None]:
        """(price, source) or (None, None) when the market had no usable price."""
        if self.authority_price > 0:
            return self.authority_price, self.authority_source or 'authority'
        if self.market_median > 0:
            return self.market_median, 'marketplace_median'
        return None, None


class BenchmarkRecord(BaseModel):
    """One row of the provider_benchmarks table."""

    model_config = ConfigDict(frozen=True)

    analysis_id: str
    stage: BenchmarkStage
    provider_id: str
    success: bool
    provider_price: float = 0.0
    provider_decision: Decision = Decision.SELL
    provider_confidence: float = 0.0
    provider_item_name: str | None = None
    provider_category: str | None = None
    response_time_ms: int = 0
    error: str | None = None

    ground_truth_price: float | None = None
    ground_truth_source: str | None = None
    authority_source: str | None = None
    authority_price: float | None = None
    market_median_price: float | None = None
    market_listing_count: int = 0
    market_confidence: float = Field(default=0.0, ge=0, le=1)

    price_error_dollars: float | None = None
    price_error_percent: float | None = None
    price_direction: Literal['over', 'under', 'accurate'] | None = None
    decision_correct: bool | None = None

    item_name: str
    detected_category: str
    had_image: bool = True
    consensus_price: float = 0.0
    consensus_decision: Decision = Decision.SELL
    final_price: float = 0.0
    price_method: str = 'no_data'
    total_votes: int = 0
    analysis_quality: str = 'DEGRADED'


def score_vote(vote: ModelVote, stage: BenchmarkStage, context: BenchmarkContext) -> BenchmarkRecord:
    """
    Score a single vote.

    Failed votes are recorded with their error and no accuracy fields so
    availability can be measured alongside accuracy.
    """
    truth, truth_source = context.ground_truth
    scored: dict[str, Any] = {}
    if vote.success and truth is not None:
        error_dollars = abs(vote.estimated_value - truth)
        error_percent = error_dollars / truth * 100
        if error_percent <= ACCURATE_WITHIN_PERCENT:
            direction = 'accurate'
        elif vote.estimated_value > truth:
            direction = 'over'
        else:
            direction = 'under'
        market_supports_buy = truth >= context.buy_threshold
        scored = {
            'price_error_dollars': round(error_dollars, 2),
            'price_error_percent': round(error_percent, 2),
            'price_direction': direction,
            'decision_correct': (vote.decision is Decision.BUY) == market_supports_buy,
        }

    return BenchmarkRecord(
        analysis_id=context.analysis_id,
        stage=stage,
        provider_id=vote.provider_name,
        success=vote.success,
        provider_price=vote.estimated_value,
        provider_decision=vote.decision,
        provider_confidence=vote.confidence,
        provider_item_name=vote.item_name,
        provider_category=(vote.raw_response or {}).get('category'),
        response_time_ms=vote.response_time_ms,
        error=vote.error,
        ground_truth_price=truth,
        ground_truth_source=truth_source,
        authority_source=context.authority_source,
        authority_price=context.authority_price or None,
        market_median_price=context.market_median or None,
        market_listing_count=context.market_listing_count,
        market_confidence=context.market_confidence,
        item_name=context.item_name,
        detected_category=context.category,
        had_image=context.had_image,
        consensus_price=context.consensus_price,
        consensus_decision=context.consensus_decision,
        final_price=context.final_price,
        price_method=context.price_method,
        total_votes=context.total_votes,
        analysis_quality=context.analysis_quality,
        **scored,
    )


def score_votes(
    stage_votes: dict[str, list[ModelVote]],
    context: BenchmarkContext,
) -> list[BenchmarkRecord]:
    """Score every vote of every stage, in stage order."""
    return [
        score_vote(vote, stage, context)  # type: ignore[arg-type]
        for stage, votes in stage_votes.items()
        for vote in votes
    ]


def accuracy_summary(records: list[BenchmarkRecord]) -> dict[str, Any]:
    """Aggregate figures for the benchmark log line."""
    scored = [r for r in records if r.price_error_percent is not None]
    if not scored:
        return {'scored': 0, 'records': len(records)}
    return {
        'records': len(records),
        'scored': len(scored),
        'avg_error_percent': round(sum(r.price_error_percent for r in scored) / len(scored), 2),
        'accurate': sum(1 for r in scored if r.price_direction == 'accurate'),
    }
