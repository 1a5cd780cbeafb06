"""
Discrepancy detection over a finished consensus.

Flags patterns worth surfacing to a narrator or QA reviewer: a wide price
spread, low confidence, a split decision, or an outlier vote. The report is
informational only and never feeds back into pricing.
"""

from collections.abc import Sequence
from typing import Any

from ..models.consensus import ConsensusResult, Discrepancy, DiscrepancyReport, DiscrepancyType
from ..models.vote import Decision, ModelVote

PRICE_SPREAD_THRESHOLD = 0.4
LOW_CONFIDENCE_THRESHOLD = 0.5
OUTLIER_THRESHOLD = 0.5
DECISION_AGREEMENT_MIN = 0.6

INTERESTING_EVENT = 'analysis_complete_interesting'
CLEAN_EVENT = 'analysis_complete_clean'


def detect_discrepancies(
    consensus: ConsensusResult,
    votes: Sequence[ModelVote],
) -> DiscrepancyReport:
    """
    Inspect the reasoning votes behind a consensus.

    Only successful votes with a positive value take part; with fewer than
    two of them there is nothing to compare and the report is clean.

    Args:
        consensus: Reason stage consensus (confidence on the 0..100 scale)
        votes: The votes the consensus was built from

    Returns:
        DiscrepancyReport
    """
    active = [v for v in votes if v.success and v.estimated_value > 0]
    if len(active) < 2:
        return DiscrepancyReport()

    discrepancies: list[Discrepancy] = []
    low_vote = min(active, key=lambda v: v.estimated_value)
    high_vote = max(active, key=lambda v: v.estimated_value)
    lowest, highest = low_vote.estimated_value, high_vote.estimated_value
    spread = (highest - lowest) / lowest

    narrator_context: dict[str, Any] = {
        'item_name': consensus.item_name,
        'vote_count': len(active),
        'consensus_value': consensus.estimated_value,
        'high_provider': high_vote.provider_name,
        'high_value': highest,
        'low_provider': low_vote.provider_name,
        'low_value': lowest,
        'spread': round(spread, 4),
    }

    if spread > PRICE_SPREAD_THRESHOLD:
        discrepancies.append(Discrepancy(
            type=DiscrepancyType.PRICE_SPREAD,
            severity='high' if spread > 1.0 else 'medium',
            description=(
                f'Price spread of {round(spread * 100)}%: '
                f'${lowest:.2f} to ${highest:.2f}'
            ),
            details={
                'providers': [low_vote.provider_name, high_vote.provider_name],
                'values': [lowest, highest],
            },
        ))

    confidence = consensus.confidence / 100
    if confidence < LOW_CONFIDENCE_THRESHOLD:
        discrepancies.append(Discrepancy(
            type=DiscrepancyType.LOW_CONFIDENCE,
            severity='high' if confidence < 0.3 else 'medium',
            description=f'Overall confidence is low: {consensus.confidence}%',
            details={'confidence': consensus.confidence},
        ))

    buy_votes = sum(1 for v in active if v.decision is Decision.BUY)
    sell_votes = len(active) - buy_votes
    agreement = max(buy_votes, sell_votes) / len(active)
    narrator_context['decision_agreement'] = round(agreement, 4)
    if agreement < DECISION_AGREEMENT_MIN:
        discrepancies.append(Discrepancy(
            type=DiscrepancyType.DECISION_SPLIT,
            severity='medium',
            description=f'Decision split: {buy_votes} say BUY, {sell_votes} say SELL',
            details={'providers': [v.provider_name for v in active]},
        ))

    if len(active) >= 3 and consensus.estimated_value > 0:
        reference = consensus.estimated_value
        worst: tuple[float, ModelVote] | None = None
        for vote in active:
            deviation = abs(vote.estimated_value - reference) / reference
            if deviation <= OUTLIER_THRESHOLD:
                continue
            discrepancies.append(Discrepancy(
                type=DiscrepancyType.OUTLIER_VOTE,
                severity='high' if deviation > 1.0 else 'medium',
                description=(
                    f'{vote.provider_name} is an outlier at ${vote.estimated_value:.2f} '
                    f'(consensus: ${reference:.2f})'
                ),
                details={
                    'provider': vote.provider_name,
                    'value': vote.estimated_value,
                    'deviation': round(deviation, 4),
                },
            ))
            if worst is None or deviation > worst[0]:
                worst = (deviation, vote)
        if worst is not None:
            narrator_context['outlier_provider'] = worst[1].provider_name
            narrator_context['outlier_value'] = worst[1].estimated_value

    is_interesting = bool(discrepancies)
    return DiscrepancyReport(
        is_interesting=is_interesting,
        discrepancies=discrepancies,
        suggested_event_type=INTERESTING_EVENT if is_interesting else CLEAN_EVENT,
        narrator_context=narrator_context,
        narrator_prompt_hint='. '.join(d.description for d in discrepancies),
    )
