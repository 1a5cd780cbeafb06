"""
Main pipeline orchestrator for evidence-based item valuation.

Provides end-to-end processing:
1. Identify the item from its images (first-responder race)
2. Fetch market, authority and web price evidence
3. Reason over the evidence with several providers
4. Validate the consensus (optional, fail-open)
5. Blend market and AI prices, score confidence, detect discrepancies
6. Record provider benchmarks (best-effort, bounded)

Every stage degrades instead of failing; run_pipeline always returns a
well-formed PipelineResult.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..benchmarks import (
    BenchmarkContext,
    BenchmarkRecorder,
    LoggingBenchmarkSink,
    PostgresBenchmarkSink,
)
from ..config import Settings, get_settings
from ..errors import StageError
from ..evidence import (
    BricksetSource,
    DiscogsSource,
    EbayMarketSource,
    EvidenceSource,
    GoogleBooksSource,
    NhtsaVinSource,
    NumistaSource,
    PokemonTcgSource,
    WebPriceSource,
)
from ..logging import PipelineTimer, get_logger, logging_context
from ..models.consensus import AnalysisQuality, DiscrepancyReport, ValidationFlag
from ..models.evidence import EvidenceSummary
from ..models.pipeline import PipelineConfig, PipelineOptions, PriceRange
from ..models.vote import Decision, ModelVote
from ..providers.base import AnalysisProvider
from ..providers.registry import ProviderRegistry, Stage
from .blender import blend_final_price
from .confidence import calculate_confidence, quality_for_confidence
from .discrepancy import detect_discrepancies
from .fetch_evidence import FetchEvidenceStage, FetchResult
from .identify import IdentifyResult, IdentifyStage
from .reason import ReasonResult, ReasonStage, calculate_consensus
from .validate import ValidateResult, ValidateStage
from .votes import VoteCollector

logger = get_logger(__name__)


@dataclass
class PipelineResult:
    """Result of valuing one item through the pipeline."""

    # Identity
    analysis_id: str
    item_name: str
    category: str
    condition: str = 'good'
    identifiers: dict[str, str] = field(default_factory=dict)

    # Valuation
    final_price: float = 0.0
    price_method: str = 'no_data'
    price_range: PriceRange = field(default_factory=PriceRange)
    decision: Decision = Decision.SELL
    confidence: int = 0
    analysis_quality: AnalysisQuality = AnalysisQuality.DEGRADED
    market_weight_pct: int = 0

    # Stage outputs
    evidence: EvidenceSummary = field(default_factory=EvidenceSummary.empty)
    ai_consensus_price: float = 0.0
    consensus_decision: Decision = Decision.SELL
    consensus_confidence: int = 0
    market_assessment: dict[str, Any] | None = None
    validation_valid: bool = True
    validation_flags: list[ValidationFlag] = field(default_factory=list)
    discrepancies: DiscrepancyReport = field(default_factory=DiscrepancyReport)

    # Votes per stage: identify, market_search, reason, validate
    votes: dict[str, list[ModelVote]] = field(default_factory=dict)

    # Timing
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    timing_ms: dict[str, int] = field(default_factory=dict)

    # Degradation tracking
    degraded_stages: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    stage_errors: list[StageError] = field(default_factory=list)

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded_stages) or self.analysis_quality is AnalysisQuality.DEGRADED

    @property
    def total_votes(self) -> int:
        return sum(len(v) for v in self.votes.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'analysis_id': self.analysis_id,
            'item_name': self.item_name,
            'category': self.category,
            'condition': self.condition,
            'identifiers': self.identifiers,
            'final_price': self.final_price,
            'price_method': self.price_method,
            'price_range': self.price_range.model_dump(),
            'decision': self.decision.value,
            'confidence': self.confidence,
            'analysis_quality': self.analysis_quality.value,
            'market_weight_pct': self.market_weight_pct,
            'market_price': self.evidence.market_price,
            'market_price_method': self.evidence.market_price_method,
            'market_confidence': self.evidence.market_confidence,
            'ai_consensus_price': self.ai_consensus_price,
            'consensus_decision': self.consensus_decision.value,
            'consensus_confidence': self.consensus_confidence,
            'market_assessment': self.market_assessment,
            'validation': {
                'valid': self.validation_valid,
                'flags': [f.model_dump(mode='json') for f in self.validation_flags],
            },
            'discrepancies': self.discrepancies.model_dump(mode='json'),
            'votes': {
                stage: [v.model_dump(mode='json', exclude={'raw_response'}) for v in votes]
                for stage, votes in self.votes.items()
            },
            'timing_ms': self.timing_ms,
            'degraded_stages': self.degraded_stages,
            'errors': self.errors,
        }


class ValuationPipeline:
    """
    End-to-end valuation of one item from its images.

    Orchestrates:
    - IdentifyStage: vision identification (first valid answer wins)
    - FetchEvidenceStage: marketplace, authority and web price evidence
    - ReasonStage: evidence-grounded consensus across providers
    - ValidateStage: advisory sanity check of the consensus
    - BenchmarkRecorder: per-vote accuracy records

    Usage:
        pipeline = ValuationPipeline.from_settings()
        result = await pipeline.run_pipeline(images, "Pyrex bowl")
        await pipeline.close()
    """

    def __init__(
        self,
        identify_providers: list[AnalysisProvider],
        reason_providers: list[AnalysisProvider],
        sources: list[EvidenceSource],
        validator: AnalysisProvider | None = None,
        recorder: BenchmarkRecorder | None = None,
        config: PipelineConfig | None = None,
        registry: ProviderRegistry | None = None,
    ):
        """
        Initialize the pipeline with its collaborators.

        Args:
            identify_providers: Vision-capable providers for the Identify race
            reason_providers: Providers that vote in the Reason stage
            sources: Evidence sources, including web-search wrappers
            validator: Optional fast provider for the Validate stage
            recorder: Optional benchmark recorder
            config: Default configuration; per-run overrides merge on top
            registry: Registry that owns the providers, closed by close()
        """
        self.config = config or PipelineConfig()
        self.identify_stage = IdentifyStage(identify_providers)
        self.fetch_stage = FetchEvidenceStage(sources)
        self.reason_stage = ReasonStage(reason_providers, self.config.provider_weights)
        self.validate_stage = ValidateStage(validator)
        self.recorder = recorder
        self.sources = sources
        self.registry = registry

    @classmethod
    def from_registry(
        cls,
        registry: ProviderRegistry,
        sources: list[EvidenceSource],
        recorder: BenchmarkRecorder | None = None,
        config: PipelineConfig | None = None,
    ) -> ValuationPipeline:
        validators = registry.for_stage(Stage.VALIDATE)
        return cls(
            identify_providers=registry.for_stage(Stage.IDENTIFY),
            reason_providers=registry.for_stage(Stage.REASON),
            sources=sources,
            validator=validators[0] if validators else None,
            recorder=recorder,
            config=config,
            registry=registry,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ValuationPipeline:
        """
        Build the full pipeline from settings.

        Providers without credentials are constructed but report themselves
        unavailable, so they contribute no votes.
        """
        settings = settings or get_settings()
        registry = ProviderRegistry.from_settings(settings)
        sources: list[EvidenceSource] = [
            EbayMarketSource(settings.EBAY_CLIENT_ID, settings.EBAY_CLIENT_SECRET),
            NhtsaVinSource(),
            GoogleBooksSource(settings.GOOGLE_BOOKS_API_KEY or None),
            PokemonTcgSource(settings.POKEMON_TCG_API_KEY or None),
            NumistaSource(settings.NUMISTA_API_KEY),
            DiscogsSource(settings.DISCOGS_USER_TOKEN),
            BricksetSource(
                settings.BRICKSET_API_KEY,
                settings.BRICKSET_USERNAME,
                settings.BRICKSET_PASSWORD,
            ),
        ]
        sources.extend(WebPriceSource(p) for p in registry.for_stage(Stage.WEB_SEARCH))

        config = settings.pipeline_config()
        if settings.BENCHMARK_DATABASE_URL:
            sink = PostgresBenchmarkSink(settings.BENCHMARK_DATABASE_URL)
            logger.info('pipeline.postgres_benchmarks_enabled')
        else:
            sink = LoggingBenchmarkSink()
        recorder = BenchmarkRecorder(sink, timeout=config.benchmark_timeout)
        return cls.from_registry(registry, sources, recorder=recorder, config=config)

    @classmethod
    def from_env(cls) -> ValuationPipeline:
        """Build from environment variables (and .env)."""
        return cls.from_settings(Settings())

    async def close(self) -> None:
        """Close provider, evidence source and benchmark sink connections."""
        if self.registry is not None:
            await self.registry.close()
        for source in self.sources:
            close = getattr(source, 'close', None)
            if close is not None:
                await close()
        if self.recorder is not None:
            await self.recorder.close()

    async def run_pipeline(
        self,
        images: list[str],
        item_name_hint: str | None = None,
        options: PipelineOptions | Mapping[str, Any] | None = None,
    ) -> PipelineResult:
        """
        Value one item.

        Args:
            images: Image URLs or data URIs
            item_name_hint: Caller's name for the item, used when
                identification fails
            options: Category/condition hints, free-text context, analysis
                ID and a partial PipelineConfig override

        Returns:
            PipelineResult. Never raises for provider, source or sink failures.
        """
        if options is None:
            options = PipelineOptions()
        elif not isinstance(options, PipelineOptions):
            options = PipelineOptions.model_validate(dict(options))
        config = self.config.merged(options.config)
        analysis_id = options.analysis_id or uuid.uuid4().hex
        timeouts = config.stage_timeouts
        timer = PipelineTimer()

        with logging_context(analysis_id=analysis_id):
            logger.info(
                'pipeline.started',
                images=len(images),
                item_name_hint=item_name_hint,
                category_hint=options.category_hint,
            )
            result = PipelineResult(
                analysis_id=analysis_id,
                item_name=item_name_hint or '',
                category='general',
            )

            # Stage 1: Identify
            with timer.stage('identify'):
                identify = await self._identify(images, item_name_hint, options, timeouts.identify, result)
            result.item_name = identify.item_name
            result.category = identify.category
            result.condition = identify.condition
            result.identifiers = identify.identifiers
            if identify.degraded:
                result.degraded_stages.append('identify')

            # Stage 2: Fetch evidence
            with timer.stage('fetch'):
                fetch = await self._fetch(identify, timeouts.fetch, result)
            result.evidence = fetch.evidence

            # Stage 3: Reason
            with timer.stage('reason'):
                reason = await self._reason(identify, fetch.evidence, options, config, result)
            consensus = reason.consensus
            result.ai_consensus_price = consensus.estimated_value
            result.consensus_decision = consensus.decision
            result.consensus_confidence = consensus.confidence
            result.market_assessment = consensus.market_assessment
            if consensus.consensus_metrics.successful_votes == 0:
                result.degraded_stages.append('reason')

            # Stage 4: Validate (optional)
            if config.enable_validation:
                with timer.stage('validate'):
                    validation = await self._validate(
                        reason, identify.category, fetch.evidence, timeouts.validate_, result
                    )
            else:
                validation = ValidateResult(skipped=True)
            result.validation_valid = validation.valid
            result.validation_flags = list(validation.flags)

            # Blend, score, detect
            blend = blend_final_price(
                fetch.evidence.market_price,
                consensus.estimated_value,
                fetch.evidence,
                validation.flags,
            )
            result.final_price = blend.final_price
            result.price_method = blend.price_method
            result.price_range = blend.price_range
            result.market_weight_pct = blend.market_weight_pct
            result.decision = (
                Decision.BUY if blend.final_price >= config.buy_threshold else Decision.SELL
            )
            result.confidence = calculate_confidence(
                fetch.evidence.market_confidence,
                consensus.confidence,
                validation.valid,
                consensus.consensus_metrics.successful_votes,
            )
            result.analysis_quality = quality_for_confidence(result.confidence)
            if blend.price_method == 'no_data':
                result.analysis_quality = AnalysisQuality.DEGRADED
            result.discrepancies = detect_discrepancies(consensus, reason.votes)

            # Identify stragglers stop here at the latest
            await identify.collector.close(reason='pipeline finished')
            result.votes = {
                'identify': identify.collector.votes,
                'market_search': list(fetch.votes),
                'reason': list(reason.votes),
                'validate': validation.votes,
            }

            result.completed_at = datetime.now()
            result.timing_ms = timer.timing_ms()

            logger.info(
                'pipeline.complete',
                item_name=result.item_name,
                category=result.category,
                final_price=result.final_price,
                price_method=result.price_method,
                decision=result.decision.value,
                confidence=result.confidence,
                quality=result.analysis_quality.value,
                interesting=result.discrepancies.is_interesting,
                degraded_stages=result.degraded_stages,
                **timer.summary(),
            )

            # Benchmark (best-effort, bounded, awaited inside this run's context)
            if config.enable_benchmarks and self.recorder is not None:
                await self.recorder.record(
                    {stage: list(votes) for stage, votes in result.votes.items()},
                    self._benchmark_context(result, config, had_image=bool(images)),
                    timeout=config.benchmark_timeout,
                )

            return result

    # =========================================================================
    # Stage wrappers: an unexpected exception degrades the stage
    # =========================================================================

    async def _identify(
        self,
        images: list[str],
        item_name_hint: str | None,
        options: PipelineOptions,
        timeout: float,
        result: PipelineResult,
    ) -> IdentifyResult:
        try:
            return await self.identify_stage.run(
                images,
                item_name_hint=item_name_hint,
                category_hint=options.category_hint,
                condition_hint=options.condition,
                additional_context=options.additional_context,
                timeout=timeout,
            )
        except Exception as e:
            self._stage_failed('identify', e, result)
            collector = VoteCollector('identify')
            await collector.close(reason='stage failed')
            return self.identify_stage.degraded_result(
                collector, item_name_hint, options.category_hint, options.condition,
                options.additional_context, started=time.perf_counter(),
            )

    async def _fetch(
        self,
        identify: IdentifyResult,
        timeout: float,
        result: PipelineResult,
    ) -> FetchResult:
        try:
            return await self.fetch_stage.run(
                identify.item_name,
                identify.category,
                identifiers=identify.identifiers,
                timeout=timeout,
            )
        except Exception as e:
            self._stage_failed('fetch', e, result)
            return FetchResult(evidence=EvidenceSummary.empty())

    async def _reason(
        self,
        identify: IdentifyResult,
        evidence: EvidenceSummary,
        options: PipelineOptions,
        config: PipelineConfig,
        result: PipelineResult,
    ) -> ReasonResult:
        try:
            return await self.reason_stage.run(
                identify.item_name,
                identify.category,
                identify.condition,
                evidence,
                buy_threshold=config.buy_threshold,
                additional_context=options.additional_context,
                timeout=config.stage_timeouts.reason,
                provider_weights=config.provider_weights,
            )
        except Exception as e:
            self._stage_failed('reason', e, result)
            return ReasonResult(consensus=calculate_consensus([], identify.item_name))

    async def _validate(
        self,
        reason: ReasonResult,
        category: str,
        evidence: EvidenceSummary,
        timeout: float,
        result: PipelineResult,
    ) -> ValidateResult:
        try:
            return await self.validate_stage.run(
                reason.consensus, category, evidence, timeout=timeout
            )
        except Exception as e:
            self._stage_failed('validate', e, result)
            return ValidateResult()

    def _stage_failed(self, stage: str, error: Exception, result: PipelineResult) -> None:
        stage_error = StageError(
            f'{stage} failed: {error}',
            context={'stage': stage, 'error_type': type(error).__name__},
        )
        stage_error.__cause__ = error
        logger.error('pipeline.stage_failed', error=stage_error.message, **stage_error.context)
        result.errors.append(stage_error.message)
        result.stage_errors.append(stage_error)
        if stage not in result.degraded_stages:
            result.degraded_stages.append(stage)

    def _benchmark_context(
        self,
        result: PipelineResult,
        config: PipelineConfig,
        had_image: bool,
    ) -> BenchmarkContext:
        evidence = result.evidence
        return BenchmarkContext(
            analysis_id=result.analysis_id,
            item_name=result.item_name,
            category=result.category,
            final_price=result.final_price,
            price_method=result.price_method,
            decision=result.decision,
            confidence=result.confidence,
            analysis_quality=result.analysis_quality.value,
            authority_source=evidence.authority.source if evidence.authority else None,
            authority_price=evidence.authority_price,
            market_median=evidence.median_price,
            market_listing_count=evidence.listing_count,
            market_confidence=evidence.market_confidence,
            consensus_price=result.ai_consensus_price,
            consensus_decision=result.consensus_decision,
            total_votes=result.total_votes,
            buy_threshold=config.buy_threshold,
            had_image=had_image,
        )
