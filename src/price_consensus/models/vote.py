"""
Vote and parsed-analysis models.

A ModelVote is one provider's independent output for a single pipeline run.
Votes are frozen: stages append them to a collection and aggregates read
them, nothing edits them afterwards.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Decision(str, Enum):
    """Binary acquisition recommendation."""

    BUY = 'BUY'
    SELL = 'SELL'


class ParsedAnalysis(BaseModel):
    """Canonical shape every provider response is normalized into."""

    item_name: str = ''
    estimated_value: float = Field(default=0.0, ge=0)
    decision: Decision = Decision.SELL
    confidence: float | None = Field(default=None, ge=0, le=1)
    category: str | None = None
    condition: str | None = None
    description: str | None = None
    identifiers: dict[str, str] = Field(default_factory=dict)
    valuation_factors: list[str] = Field(default_factory=list)
    summary_reasoning: str | None = None
    flags: list[Any] = Field(default_factory=list)
    valid: bool | None = None
    market_assessment: dict[str, Any] | None = None
    extras: dict[str, Any] = Field(default_factory=dict)


class ModelVote(BaseModel):
    """One provider's vote. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    provider_name: str
    decision: Decision = Decision.SELL
    estimated_value: float = Field(default=0.0, ge=0)
    confidence: float = Field(default=0.0, ge=0, le=1)
    weight: float = Field(default=0.0, ge=0, le=1)
    success: bool
    response_time_ms: int = Field(default=0, ge=0)
    raw_response: dict[str, Any] | None = None
    item_name: str | None = None
    error: str | None = None

    @classmethod
    def from_analysis(
        cls,
        provider_name: str,
        analysis: ParsedAnalysis,
        confidence: float,
        base_weight: float,
        response_time_ms: int,
    ) -> 'ModelVote':
        """Build a successful vote; weight is base weight scaled by confidence."""
        confidence = min(max(confidence, 0.0), 1.0)
        return cls(
            provider_name=provider_name,
            decision=analysis.decision,
            estimated_value=analysis.estimated_value,
            confidence=confidence,
            weight=min(max(base_weight * confidence, 0.0), 1.0),
            success=True,
            response_time_ms=response_time_ms,
            raw_response=analysis.model_dump(mode='json'),
            item_name=analysis.item_name or None,
        )

    @classmethod
    def failed(
        cls,
        provider_name: str,
        error: str,
        response_time_ms: int = 0,
    ) -> 'ModelVote':
        """Build an unsuccessful vote. Carries no value, weight or confidence."""
        return cls(
            provider_name=provider_name,
            success=False,
            response_time_ms=max(response_time_ms, 0),
            error=error,
        )
