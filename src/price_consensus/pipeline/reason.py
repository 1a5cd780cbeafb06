"""
Reason stage: evidence-grounded valuation by several providers.

Every available reasoning provider receives the same evidence prompt and
votes independently. Votes are merged by weighted consensus.
"""

import asyncio
import statistics
import time
from dataclasses import dataclass, field
from typing import Any

from ..errors import MissingCredentialError, ProviderError
from ..logging import get_logger
from ..models.consensus import AnalysisQuality, ConsensusMetrics, ConsensusResult
from ..models.evidence import EvidenceSummary
from ..models.vote import Decision, ModelVote
from ..prompts.valuation import build_valuation_prompt
from ..providers.base import AnalysisProvider
from ..providers.registry import base_weight_for
from .blender import round_cents
from .confidence import quality_for_confidence

logger = get_logger(__name__)


@dataclass
class ReasonResult:
    """Output of the Reason stage."""

    consensus: ConsensusResult
    votes: list[ModelVote] = field(default_factory=list)
    stage_time_ms: int = 0

    @property
    def successful_votes(self) -> list[ModelVote]:
        return [v for v in self.votes if v.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            'consensus': self.consensus.model_dump(mode='json'),
            'votes': [v.model_dump(mode='json', exclude={'raw_response'}) for v in self.votes],
            'stage_time_ms': self.stage_time_ms,
        }


def calculate_consensus(votes: list[ModelVote], item_name: str) -> ConsensusResult:
    """
    Merge votes into one consensus.

    Only successful votes count. The value is the weight-averaged estimate
    over votes with a positive value (plain mean if every weight is zero).
    The decision is the BUY/SELL majority, ties going to SELL. Confidence
    (0..100) mixes decision agreement and average vote confidence evenly.

    With no successful votes the result is an explicit DEGRADED consensus
    with value 0; no price is invented.
    """
    successful = [v for v in votes if v.success]
    if not successful:
        return ConsensusResult(
            item_name=item_name,
            consensus_metrics=ConsensusMetrics(total_votes=len(votes)),
        )

    buy_votes = sum(1 for v in successful if v.decision is Decision.BUY)
    sell_votes = len(successful) - buy_votes
    decision = Decision.BUY if buy_votes > sell_votes else Decision.SELL
    decision_agreement = max(buy_votes, sell_votes) / len(successful)
    average_confidence = statistics.fmean(v.confidence for v in successful)

    valued = [v for v in successful if v.estimated_value > 0]
    total_weight = sum(v.weight for v in valued)
    if not valued:
        estimated_value = 0.0
    elif total_weight > 0:
        estimated_value = sum(v.estimated_value * v.weight for v in valued) / total_weight
    else:
        estimated_value = statistics.fmean(v.estimated_value for v in valued)

    value_agreement = 0.0
    if len(valued) == 1:
        value_agreement = 1.0
    elif len(valued) > 1:
        values = [v.estimated_value for v in valued]
        mean = statistics.fmean(values)
        cv = statistics.pstdev(values) / mean if mean > 0 else 1.0
        value_agreement = min(max(1.0 - cv, 0.0), 1.0)

    confidence = round(100 * (0.5 * decision_agreement + 0.5 * average_confidence))
    confidence = min(max(confidence, 0), 100)

    market_assessment = None
    for vote in sorted(successful, key=lambda v: v.weight, reverse=True):
        assessment = (vote.raw_response or {}).get('market_assessment')
        if assessment:
            market_assessment = assessment
            break

    return ConsensusResult(
        item_name=item_name,
        decision=decision,
        estimated_value=round_cents(estimated_value),
        confidence=confidence,
        analysis_quality=quality_for_confidence(confidence),
        consensus_metrics=ConsensusMetrics(
            total_votes=len(votes),
            successful_votes=len(successful),
            buy_votes=buy_votes,
            sell_votes=sell_votes,
            decision_agreement=round(decision_agreement, 4),
            average_confidence=round(average_confidence, 4),
            value_agreement=round(value_agreement, 4),
            total_weight=round(total_weight, 4),
        ),
        market_assessment=market_assessment,
    )


class ReasonStage:
    """
    Usage:
        stage = ReasonStage(registry.for_stage(Stage.REASON))
        result = await stage.run(item_name, category, condition, evidence, timeout=15)
    """

    def __init__(
        self,
        providers: list[AnalysisProvider],
        provider_weights: dict[str, float] | None = None,
    ):
        self.providers = providers
        self.provider_weights = provider_weights or {}

    async def run(
        self,
        item_name: str,
        category: str,
        condition: str,
        evidence: EvidenceSummary,
        buy_threshold: float = 2.0,
        additional_context: str | None = None,
        timeout: float = 15.0,
        provider_weights: dict[str, float] | None = None,
    ) -> ReasonResult:
        started = time.perf_counter()
        weights = {**self.provider_weights, **(provider_weights or {})}
        available = [p for p in self.providers if p.is_available]
        if not available:
            logger.warning('reason.no_providers')
            return ReasonResult(
                consensus=calculate_consensus([], item_name),
                stage_time_ms=_ms_since(started),
            )

        prompt = build_valuation_prompt(
            item_name, category, condition, evidence, buy_threshold, additional_context
        )
        logger.info('reason.started', providers=[p.name for p in available], timeout_s=timeout)

        tasks = {
            asyncio.create_task(self._reason_one(p, prompt, weights)): p for p in available
        }
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        votes: list[ModelVote] = []
        for task, provider in tasks.items():
            if task in done:
                vote = task.result()
                if vote is not None:
                    votes.append(vote)
            else:
                logger.warning('reason.provider_timeout', provider=provider.name, timeout_s=timeout)
                votes.append(ModelVote.failed(provider.name, 'timeout', _ms_since(started)))

        consensus = calculate_consensus(votes, item_name)
        elapsed = _ms_since(started)
        logger.info(
            'reason.complete',
            votes=len(votes),
            successful=consensus.consensus_metrics.successful_votes,
            decision=consensus.decision.value,
            estimated_value=consensus.estimated_value,
            confidence=consensus.confidence,
            quality=consensus.analysis_quality.value,
            stage_time_ms=elapsed,
        )
        return ReasonResult(consensus=consensus, votes=votes, stage_time_ms=elapsed)

    async def _reason_one(
        self,
        provider: AnalysisProvider,
        prompt: str,
        weights: dict[str, float],
    ) -> ModelVote | None:
        """One vote per call; None when the provider has no credentials."""
        started = time.perf_counter()
        try:
            response = await provider.analyze([], prompt)
        except MissingCredentialError:
            return None
        except ProviderError as e:
            return ModelVote.failed(provider.name, e.message, _ms_since(started))
        except Exception as e:
            logger.error('reason.provider_crashed', provider=provider.name, error=str(e))
            return ModelVote.failed(provider.name, f'unexpected error: {e}', _ms_since(started))

        if response.response is None:
            return ModelVote.failed(provider.name, 'empty response', response.response_time_ms)

        if provider.name in weights:
            base_weight = base_weight_for(provider.name, weights)
        else:
            base_weight = provider.base_weight
        return ModelVote.from_analysis(
            provider.name,
            response.response,
            confidence=response.confidence,
            base_weight=base_weight,
            response_time_ms=response.response_time_ms,
        )


def _ms_since(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
