"""
Fetch Evidence stage: gather market and authority data concurrently.

Every relevant source is queried at once. A source that is unavailable,
errors, or misses the stage deadline contributes nothing; the stage itself
never fails. All results are merged into one read-only EvidenceSummary.
"""

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..errors import EvidenceSourceError, EvidenceUnavailableError
from ..evidence.base import EvidenceSource
from ..logging import get_logger
from ..models.evidence import EvidenceSummary, SourceKind, SourceResult
from ..models.vote import ModelVote
from .blender import round_cents

logger = get_logger(__name__)

SOURCE_WEIGHTS: dict[SourceKind, float] = {
    SourceKind.AUTHORITY: 1.5,
    SourceKind.MARKETPLACE: 1.2,
}
AVERAGE_FALLBACK_FACTOR = 0.9


@dataclass
class FetchResult:
    """Output of the Fetch Evidence stage."""

    evidence: EvidenceSummary
    source_results: list[SourceResult] = field(default_factory=list)
    votes: list[ModelVote] = field(default_factory=list)
    stage_time_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            'evidence': self.evidence.model_dump(mode='json'),
            'sources': [
                {'source': r.source, 'available': r.available, 'error': r.error}
                for r in self.source_results
            ],
            'stage_time_ms': self.stage_time_ms,
        }


class FetchEvidenceStage:
    """
    Usage:
        stage = FetchEvidenceStage([ebay, nhtsa, google_books, *web_sources])
        result = await stage.run("2015 Honda Civic", "vehicles", timeout=10)
    """

    def __init__(self, sources: list[EvidenceSource]):
        self.sources = sources

    async def run(
        self,
        item_name: str,
        category: str,
        identifiers: Mapping[str, str] | None = None,
        timeout: float = 10.0,
    ) -> FetchResult:
        started = time.perf_counter()
        relevant = [s for s in self.sources if s.is_available and s.handles(category)]
        if not relevant:
            logger.warning('fetch.no_sources', category=category)
            return FetchResult(evidence=EvidenceSummary.empty(), stage_time_ms=_ms_since(started))

        logger.info('fetch.started', sources=[s.name for s in relevant], timeout_s=timeout)
        tasks = {
            asyncio.create_task(self._fetch_one(source, item_name, category, identifiers)): source
            for source in relevant
        }
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results: list[SourceResult] = []
        for task, source in tasks.items():
            if task in done:
                results.append(task.result())
                continue
            elapsed = _ms_since(started)
            logger.warning('fetch.source_timeout', source=source.name, timeout_s=timeout)
            vote = None
            if source.kind is SourceKind.WEB_SEARCH:
                vote = ModelVote.failed(source.name, 'timeout', elapsed)
            results.append(SourceResult.unavailable(
                source.name, source.kind, 'timeout', response_time_ms=elapsed, vote=vote,
            ))

        summary = build_evidence_summary(results, sources_queried=[s.name for s in relevant])
        elapsed = _ms_since(started)
        logger.info(
            'fetch.complete',
            available=summary.sources_available,
            market_price=summary.market_price,
            market_confidence=summary.market_confidence,
            stage_time_ms=elapsed,
        )
        return FetchResult(
            evidence=summary,
            source_results=results,
            votes=[r.vote for r in results if r.vote is not None],
            stage_time_ms=elapsed,
        )

    async def _fetch_one(
        self,
        source: EvidenceSource,
        item_name: str,
        category: str,
        identifiers: Mapping[str, str] | None,
    ) -> SourceResult:
        """Failure-isolated source call."""
        started = time.perf_counter()
        try:
            return await source.fetch(item_name, category, identifiers=identifiers)
        except EvidenceUnavailableError as e:
            logger.info('fetch.source_unavailable', source=source.name, reason=e.message)
            return SourceResult.unavailable(
                source.name, source.kind, e.message, response_time_ms=_ms_since(started)
            )
        except EvidenceSourceError as e:
            logger.warning('fetch.source_failed', source=source.name, error=e.message)
            return SourceResult.unavailable(
                source.name, source.kind, e.message, response_time_ms=_ms_since(started)
            )
        except Exception as e:
            logger.error('fetch.source_crashed', source=source.name, error=str(e))
            return SourceResult.unavailable(
                source.name, source.kind, f'unexpected error: {e}',
                response_time_ms=_ms_since(started),
            )


# =============================================================================
# Evidence Summary
# =============================================================================


def blend_market_price(results: list[SourceResult]) -> tuple[float, str]:
    """
    Weighted median over marketplace and authority prices.

    Authority sources weigh 1.5, marketplaces 1.2, anything else 1.0. A
    source without a median contributes its average at 0.9x weight.
    Web-search prices are AI-reported and excluded.

    Returns:
        (price rounded to cents, method tag)
    """
    entries: list[tuple[float, float, str]] = []
    for result in results:
        if not result.available or result.kind is SourceKind.WEB_SEARCH:
            continue
        analysis = result.price_analysis
        weight = SOURCE_WEIGHTS.get(result.kind, 1.0)
        if analysis is not None and analysis.median > 0:
            entries.append((analysis.median, weight, result.source))
        elif analysis is not None and analysis.average > 0:
            entries.append((analysis.average, weight * AVERAGE_FALLBACK_FACTOR, result.source))
        elif result.authority_data is not None and result.authority_data.price > 0:
            entries.append((result.authority_data.price, weight, result.source))

    if not entries:
        return 0.0, 'no_data'
    if len(entries) == 1:
        return round_cents(entries[0][0]), f'single_source_{entries[0][2]}'

    entries.sort(key=lambda e: e[0])
    half = sum(weight for _, weight, _ in entries) / 2
    cumulative = 0.0
    price = entries[-1][0]
    for value, weight, _ in entries:
        cumulative += weight
        if cumulative >= half:
            price = value
            break
    return round_cents(price), f'weighted_blend_{len(entries)}_sources'


def market_confidence_for(
    listing_count: int,
    has_authority: bool,
    has_web_prices: bool,
    market_price: float,
) -> float:
    """More corroborating sources and larger samples raise confidence; none gives 0."""
    score = 0.0
    if listing_count >= 10:
        score += 0.4
    elif listing_count >= 3:
        score += 0.2
    if has_authority:
        score += 0.3
    if has_web_prices:
        score += 0.2
    if market_price > 0:
        score += 0.1
    return round(min(score, 1.0), 2)


def build_evidence_summary(
    results: list[SourceResult],
    sources_queried: list[str] | None = None,
) -> EvidenceSummary:
    """Merge per-source results into one EvidenceSummary."""
    usable = [r for r in results if r.available]
    if not usable:
        return EvidenceSummary.empty(sources_queried)

    marketplace = next(
        (r for r in usable if r.kind is SourceKind.MARKETPLACE and r.price_analysis), None
    )
    authority_result = next(
        (r for r in usable if r.kind is SourceKind.AUTHORITY and r.authority_data), None
    )
    authority = authority_result.authority_data if authority_result else None
    authority_price = 0.0
    if authority_result is not None:
        authority_price = authority.price if authority else 0.0
        if not authority_price and authority_result.price_analysis:
            authority_price = authority_result.price_analysis.median

    web_prices = [p for r in usable if r.kind is SourceKind.WEB_SEARCH for p in r.web_prices]
    web_sources = [r.source for r in usable if r.kind is SourceKind.WEB_SEARCH and r.web_prices]

    market_price, method = blend_market_price(usable)
    pa = marketplace.price_analysis if marketplace else None
    listing_count = pa.sample_size if pa else 0
    matching = max(marketplace.total_listings, listing_count) if marketplace else 0

    summary_fields: dict[str, Any] = dict(
        listing_count=listing_count,
        matching_listings=matching,
        median_price=pa.median if pa else 0.0,
        low_price=pa.low if pa else 0.0,
        high_price=pa.high if pa else 0.0,
        marketplace_source=marketplace.source if marketplace else None,
        authority=authority,
        authority_price=round_cents(authority_price),
        web_price_low=min(web_prices) if web_prices else 0.0,
        web_price_high=max(web_prices) if web_prices else 0.0,
        web_sources=web_sources,
        market_price=market_price,
        market_price_method=method,
        market_confidence=market_confidence_for(
            listing_count, authority is not None, bool(web_prices), market_price
        ),
        sources_queried=sources_queried or [r.source for r in results],
        sources_available=[r.source for r in usable],
    )
    summary_fields['formatted_evidence'] = format_evidence(summary_fields)
    return EvidenceSummary(**summary_fields)


def format_evidence(fields: Mapping[str, Any]) -> str:
    """Render the evidence block shared by the reasoning prompts."""
    lines = ['MARKET EVIDENCE:']
    if fields['listing_count']:
        sampled = str(fields['listing_count'])
        if fields['matching_listings'] > fields['listing_count']:
            sampled = f"{sampled} of {fields['matching_listings']}"
        lines.append(
            f"- {fields['marketplace_source']}: median ${fields['median_price']:.2f} "
            f"from {sampled} listings "
            f"(range ${fields['low_price']:.2f}-${fields['high_price']:.2f})"
        )
    authority = fields['authority']
    if authority is not None:
        details = ', '.join(
            f'{k}={v}' for k, v in authority.item_details.items()
            if v is not None and not isinstance(v, (list, dict))
        )
        status = 'verified' if authority.verified else 'unverified'
        lines.append(f'- Authority ({authority.source}, {status}): {details}')
        if fields['authority_price']:
            lines.append(f"- Authority price: ${fields['authority_price']:.2f}")
    if fields['web_sources']:
        lines.append(
            f"- Web search ({', '.join(fields['web_sources'])}): "
            f"${fields['web_price_low']:.2f}-${fields['web_price_high']:.2f}"
        )
    if fields['market_price']:
        lines.append(
            f"- Blended market price: ${fields['market_price']:.2f} "
            f"({fields['market_price_method']})"
        )
    if len(lines) == 1:
        lines.append('- No market data available. Use your own knowledge.')
    return '\n'.join(lines)


def _ms_since(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
