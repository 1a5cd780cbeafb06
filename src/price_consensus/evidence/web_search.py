"""
General web price search through a search-grounded analysis provider.

Each call yields a vote (successful or failed) so web search providers show
up in benchmarks next to the other stages.
"""

import time
from collections.abc import Mapping
from typing import Any

from ..errors import MissingCredentialError, ProviderError
from ..logging import get_logger
from ..models.evidence import SourceKind, SourceResult
from ..models.vote import ModelVote, ParsedAnalysis
from ..prompts.web_search import build_web_search_prompt
from ..providers.base import AnalysisProvider
from ..providers.parsers import parse_price

logger = get_logger(__name__)

_PRICE_EXTRA_KEYS = ('averagePrice', 'average_price', 'medianPrice', 'median_price')
_SOLD_EXTRA_KEYS = ('recentSold', 'recent_sold', 'soldPrices', 'sold_prices')


class WebPriceSource:
    """Evidence source wrapping one web-search-capable provider."""

    kind = SourceKind.WEB_SEARCH

    def __init__(self, provider: AnalysisProvider, base_weight: float | None = None):
        self.provider = provider
        self.name = provider.name
        self.base_weight = provider.base_weight if base_weight is None else base_weight

    @property
    def is_available(self) -> bool:
        return self.provider.is_available

    def handles(self, category: str) -> bool:
        return True

    async def fetch(
        self,
        item_name: str,
        category: str,
        *,
        identifiers: Mapping[str, str] | None = None,
    ) -> SourceResult:
        prompt = build_web_search_prompt(item_name, category)
        started = time.perf_counter()
        try:
            response = await self.provider.analyze([], prompt)
        except MissingCredentialError:
            return SourceResult.unavailable(self.name, self.kind, 'credentials not configured')
        except ProviderError as e:
            elapsed = int((time.perf_counter() - started) * 1000)
            return SourceResult.unavailable(
                self.name,
                self.kind,
                e.message,
                response_time_ms=elapsed,
                vote=ModelVote.failed(self.name, e.message, elapsed),
            )

        if response.response is None:
            return SourceResult.unavailable(
                self.name,
                self.kind,
                'empty response',
                response_time_ms=response.response_time_ms,
                vote=ModelVote.failed(self.name, 'empty response', response.response_time_ms),
            )

        analysis = response.response
        vote = ModelVote.from_analysis(
            self.name,
            analysis,
            confidence=response.confidence,
            base_weight=self.base_weight,
            response_time_ms=response.response_time_ms,
        )
        prices = extract_web_prices(analysis)
        if not prices:
            return SourceResult.unavailable(
                self.name,
                self.kind,
                'no prices found',
                response_time_ms=response.response_time_ms,
                vote=vote,
            )

        return SourceResult(
            source=self.name,
            kind=self.kind,
            available=True,
            total_listings=len(prices),
            web_prices=prices,
            vote=vote,
            response_time_ms=response.response_time_ms,
        )


def extract_web_prices(analysis: ParsedAnalysis) -> list[float]:
    """
    Collect every positive price a web-search response reported.

    Sources: estimated value, average/median extras, recent-sold lists and
    dollar amounts quoted inside valuation factors.
    """
    prices: list[float] = []

    def add(value: Any) -> None:
        price = parse_price(value)
        if price > 0:
            prices.append(round(price, 2))

    add(analysis.estimated_value)
    for key in _PRICE_EXTRA_KEYS:
        add(analysis.extras.get(key))
    for key in _SOLD_EXTRA_KEYS:
        sold = analysis.extras.get(key)
        if isinstance(sold, list):
            for value in sold:
                add(value)
        else:
            add(sold)
    for factor in analysis.valuation_factors:
        if '$' in factor:
            for chunk in factor.split('$')[1:]:
                add(chunk.split()[0] if chunk.split() else '')
    return prices
