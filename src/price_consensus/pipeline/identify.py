"""
Identify stage: what is this item?

First-responder race across vision-capable providers. The stage resolves
on the first valid identification; the other calls keep running in the
background until the stage deadline so their votes still land in the
stage's VoteCollector, then are abandoned.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Any

from ..errors import MissingCredentialError, ProviderError
from ..evidence.categories import detect_category
from ..evidence.identifiers import extract_identifiers
from ..logging import get_logger
from ..models.vote import ModelVote, ParsedAnalysis
from ..prompts.identify_item import build_identify_prompt
from ..providers.base import AnalysisProvider
from .votes import VoteCollector

logger = get_logger(__name__)

UNIDENTIFIED_ITEM = 'Unidentified Item'
DEFAULT_CONDITION = 'good'

GARBAGE_NAME_PATTERNS = (
    'google gemini',
    'openai analysis',
    'anthropic analysis',
    'claude analysis',
    'gpt analysis',
    'mistral analysis',
    'deepseek analysis',
    'groq analysis',
    'perplexity analysis',
    'xai analysis',
    'grok analysis',
    'analysis unavailable',
    'unidentified item',
    'unknown item',
    'general item',
    'unidentified general',
    'unidentified object',
    'unknown object',
    'item analysis',
    'image analysis',
    'photo analysis',
    'digital service',
    'ai analysis',
)
GENERIC_NAMES = frozenset({'unknown', 'item', 'object', 'product', 'thing', 'none', 'null', 'n/a'})
PROVIDER_BRANDS = ('gemini', 'claude', 'gpt-4', 'gpt4', 'mistral', 'llama', 'deepseek', 'grok')

_AI_TERM_PREFIX_RE = re.compile(
    r'^(the |a |an )?(analysis|service|model|provider|result|response|output)\b'
)
_CONDITIONS = ('mint', 'excellent', 'good', 'fair', 'poor')


def is_garbage_name(name: str | None) -> bool:
    """True for names that are not a real identification."""
    if not name or len(name.strip()) < 3:
        return True
    lower = name.strip().lower()
    if lower in GENERIC_NAMES:
        return True
    if any(pattern in lower for pattern in GARBAGE_NAME_PATTERNS):
        return True
    if _AI_TERM_PREFIX_RE.match(lower):
        return True
    # "Claude Analysis" is garbage; a "Grok" trading card or toy is not
    for brand in PROVIDER_BRANDS:
        if brand in lower and not any(w in lower for w in ('card', 'figure', 'toy')):
            return True
    return False


def normalize_condition(*candidates: str | None) -> str:
    """First recognisable condition among candidates, else 'good'."""
    for candidate in candidates:
        if not candidate:
            continue
        lower = candidate.strip().lower()
        for condition in _CONDITIONS:
            if condition in lower:
                return condition
        if 'new' in lower:
            return 'mint'
    return DEFAULT_CONDITION


@dataclass
class IdentifyResult:
    """Output of the Identify stage."""

    item_name: str
    category: str
    condition: str
    collector: VoteCollector
    identifiers: dict[str, str] = field(default_factory=dict)
    description: str | None = None
    ai_category: str | None = None
    primary_provider: str = 'none'
    confidence: float = 0.0
    degraded: bool = False
    stage_time_ms: int = 0

    @property
    def votes(self) -> list[ModelVote]:
        return self.collector.votes

    def to_dict(self) -> dict[str, Any]:
        return {
            'item_name': self.item_name,
            'category': self.category,
            'condition': self.condition,
            'identifiers': self.identifiers,
            'description': self.description,
            'primary_provider': self.primary_provider,
            'confidence': self.confidence,
            'degraded': self.degraded,
            'stage_time_ms': self.stage_time_ms,
            'vote_count': len(self.votes),
        }


@dataclass
class _Identification:
    provider_name: str
    analysis: ParsedAnalysis
    confidence: float


class IdentifyStage:
    """
    Vision identification with a first-responder race.

    Usage:
        stage = IdentifyStage(registry.for_stage(Stage.IDENTIFY))
        result = await stage.run(images, item_name_hint="Pikachu card", timeout=20)
    """

    def __init__(self, providers: list[AnalysisProvider]):
        self.providers = providers

    async def run(
        self,
        images: list[str],
        item_name_hint: str | None = None,
        category_hint: str | None = None,
        condition_hint: str | None = None,
        additional_context: str | None = None,
        timeout: float = 20.0,
    ) -> IdentifyResult:
        """
        Identify the item.

        Never raises for provider failures; with no valid identification
        before ``timeout`` the result is degraded and named from the hint.
        """
        started = time.perf_counter()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        collector = VoteCollector('identify')

        available = [p for p in self.providers if p.is_available]
        if not available or not images:
            logger.warning(
                'identify.skipped',
                reason='no vision providers' if not available else 'no images',
            )
            await collector.close(reason='nothing to run')
            return self.degraded_result(
                collector, item_name_hint, category_hint, condition_hint,
                additional_context, started,
            )

        prompt = build_identify_prompt(
            item_name_hint, category_hint, condition_hint, additional_context
        )
        logger.info('identify.started', providers=[p.name for p in available], timeout_s=timeout)

        pending: set[asyncio.Task] = set()
        for provider in available:
            task = asyncio.create_task(self._identify_one(provider, images, prompt, collector))
            collector.track(task, provider.name)
            pending.add(task)

        winner: _Identification | None = None
        while pending and winner is None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            done, pending = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                outcome = task.result()
                if outcome is not None and winner is None:
                    winner = outcome

        if winner is None:
            await collector.close(reason='no valid identification before deadline')
            logger.warning('identify.no_winner', votes=len(collector.votes))
            return self.degraded_result(
                collector, item_name_hint, category_hint, condition_hint,
                additional_context, started,
            )

        if pending:
            # Stragglers keep running until the stage deadline
            collector.expire_at(deadline)
        else:
            await collector.close(reason='all providers finished')

        analysis = winner.analysis
        identifiers = extract_identifiers(
            analysis.item_name,
            analysis.description,
            item_name_hint,
            additional_context,
            reported=analysis.identifiers,
        )
        category = detect_category(
            analysis.item_name,
            category_hint=category_hint,
            ai_category=analysis.category,
            identifiers=identifiers,
        )
        elapsed = int((time.perf_counter() - started) * 1000)
        logger.info(
            'identify.winner',
            provider=winner.provider_name,
            item_name=analysis.item_name,
            category=category,
            still_running=len(pending),
            stage_time_ms=elapsed,
        )
        return IdentifyResult(
            item_name=analysis.item_name,
            category=category,
            condition=normalize_condition(analysis.condition, condition_hint),
            collector=collector,
            identifiers=identifiers,
            description=analysis.description,
            ai_category=analysis.category,
            primary_provider=winner.provider_name,
            confidence=winner.confidence,
            stage_time_ms=elapsed,
        )

    async def _identify_one(
        self,
        provider: AnalysisProvider,
        images: list[str],
        prompt: str,
        collector: VoteCollector,
    ) -> _Identification | None:
        """One provider call. Writes exactly one vote unless the provider is absent."""
        started = time.perf_counter()
        try:
            response = await provider.analyze(images, prompt)
        except MissingCredentialError:
            return None
        except ProviderError as e:
            collector.add(ModelVote.failed(provider.name, e.message, _ms_since(started)))
            return None
        except Exception as e:
            logger.error('identify.provider_crashed', provider=provider.name, error=str(e))
            collector.add(ModelVote.failed(provider.name, f'unexpected error: {e}', _ms_since(started)))
            return None

        analysis = response.response
        if analysis is None or is_garbage_name(analysis.item_name):
            name = analysis.item_name if analysis else None
            collector.add(ModelVote.failed(
                provider.name,
                f'unusable identification: {name!r}',
                response.response_time_ms,
            ))
            return None

        collector.add(ModelVote.from_analysis(
            provider.name,
            analysis,
            confidence=response.confidence,
            base_weight=provider.base_weight,
            response_time_ms=response.response_time_ms,
        ))
        return _Identification(provider.name, analysis, response.confidence)

    def degraded_result(
        self,
        collector: VoteCollector,
        item_name_hint: str | None,
        category_hint: str | None,
        condition_hint: str | None,
        additional_context: str | None,
        started: float,
    ) -> IdentifyResult:
        item_name = (item_name_hint or '').strip() or UNIDENTIFIED_ITEM
        identifiers = extract_identifiers(item_name_hint, additional_context)
        return IdentifyResult(
            item_name=item_name,
            category=detect_category(item_name, category_hint=category_hint, identifiers=identifiers),
            condition=normalize_condition(condition_hint),
            collector=collector,
            identifiers=identifiers,
            degraded=True,
            stage_time_ms=_ms_since(started),
        )


def _ms_since(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
