"""
Evidence models: what market and authority sources report, and the
normalized summary the Reason stage is prompted with.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .vote import ModelVote


class SourceKind(str, Enum):
    """Kind of evidence source."""

    MARKETPLACE = 'marketplace'
    AUTHORITY = 'authority'
    WEB_SEARCH = 'web_search'


class PriceAnalysis(BaseModel):
    """Aggregate over a set of observed listing prices."""

    median: float = Field(default=0.0, ge=0)
    low: float = Field(default=0.0, ge=0)
    high: float = Field(default=0.0, ge=0)
    average: float = Field(default=0.0, ge=0)
    sample_size: int = Field(default=0, ge=0)

    @classmethod
    def from_prices(cls, prices: list[float]) -> 'PriceAnalysis | None':
        """Summarize positive prices, or None when there are none."""
        values = sorted(p for p in prices if p > 0)
        if not values:
            return None
        n = len(values)
        mid = n // 2
        median = values[mid] if n % 2 else (values[mid - 1] + values[mid]) / 2
        return cls(
            median=round(median, 2),
            low=round(values[0], 2),
            high=round(values[-1], 2),
            average=round(sum(values) / n, 2),
            sample_size=n,
        )


class AuthorityData(BaseModel):
    """Structured facts about an item from a single authoritative source."""

    source: str
    verified: bool = False
    confidence: float | None = Field(default=None, ge=0, le=1)
    item_details: dict[str, Any] = Field(default_factory=dict)
    price_data: dict[str, float] | None = None

    @property
    def price(self) -> float:
        """Best single price the authority reports, 0 when none."""
        if not self.price_data:
            return 0.0
        for key in ('market', 'retail', 'list', 'value'):
            value = self.price_data.get(key)
            if value and value > 0:
                return float(value)
        return 0.0


class SourceResult(BaseModel):
    """
    Outcome of one evidence source lookup.

    ``total_listings`` is how many listings the source matched; the priced
    sample behind ``price_analysis`` is ``price_analysis.sample_size`` and
    can be smaller.
    """

    source: str
    kind: SourceKind
    available: bool = False
    total_listings: int = Field(default=0, ge=0)
    price_analysis: PriceAnalysis | None = None
    authority_data: AuthorityData | None = None
    web_prices: list[float] = Field(default_factory=list)
    vote: ModelVote | None = None
    error: str | None = None
    response_time_ms: int = 0

    @classmethod
    def unavailable(
        cls,
        source: str,
        kind: SourceKind,
        error: str,
        response_time_ms: int = 0,
        vote: ModelVote | None = None,
    ) -> 'SourceResult':
        return cls(
            source=source,
            kind=kind,
            available=False,
            error=error,
            response_time_ms=response_time_ms,
            vote=vote,
        )


class EvidenceSummary(BaseModel):
    """Normalized, read-only view of all fetch-stage results."""

    model_config = ConfigDict(frozen=True)

    # Priced listings behind median/low/high; matching_listings is the
    # marketplace-wide match count
    listing_count: int = Field(default=0, ge=0)
    matching_listings: int = Field(default=0, ge=0)
    median_price: float = Field(default=0.0, ge=0)
    low_price: float = Field(default=0.0, ge=0)
    high_price: float = Field(default=0.0, ge=0)
    marketplace_source: str | None = None

    authority: AuthorityData | None = None
    authority_price: float = Field(default=0.0, ge=0)

    web_price_low: float = Field(default=0.0, ge=0)
    web_price_high: float = Field(default=0.0, ge=0)
    web_sources: list[str] = Field(default_factory=list)

    market_price: float = Field(default=0.0, ge=0)
    market_price_method: str = 'no_data'
    market_confidence: float = Field(default=0.0, ge=0, le=1)

    sources_queried: list[str] = Field(default_factory=list)
    sources_available: list[str] = Field(default_factory=list)
    formatted_evidence: str = ''

    @property
    def has_authority(self) -> bool:
        return self.authority is not None

    @property
    def has_web_prices(self) -> bool:
        return self.web_price_low > 0 or self.web_price_high > 0

    @classmethod
    def empty(cls, sources_queried: list[str] | None = None) -> 'EvidenceSummary':
        """Summary for the case where no source returned usable data."""
        return cls(
            sources_queried=sources_queried or [],
            formatted_evidence='MARKET EVIDENCE: No market data available. Use your own knowledge.',
        )
