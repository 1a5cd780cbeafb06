"""
Consensus, validation and discrepancy models.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .vote import Decision


class AnalysisQuality(str, Enum):
    """Coarse confidence tier for one run."""

    EXCELLENT = 'EXCELLENT'
    GOOD = 'GOOD'
    FAIR = 'FAIR'
    DEGRADED = 'DEGRADED'


class ConsensusMetrics(BaseModel):
    """How the votes behind a consensus agreed with each other."""

    model_config = ConfigDict(frozen=True)

    total_votes: int = 0
    successful_votes: int = 0
    buy_votes: int = 0
    sell_votes: int = 0
    decision_agreement: float = Field(default=0.0, ge=0, le=1)
    average_confidence: float = Field(default=0.0, ge=0, le=1)
    value_agreement: float = Field(default=0.0, ge=0, le=1)
    total_weight: float = Field(default=0.0, ge=0)


class ConsensusResult(BaseModel):
    """The Reason stage's merged opinion, before blending with market price."""

    model_config = ConfigDict(frozen=True)

    item_name: str
    decision: Decision = Decision.SELL
    estimated_value: float = Field(default=0.0, ge=0)
    # 0..100 in this field only; votes carry 0..1
    confidence: int = Field(default=0, ge=0, le=100)
    analysis_quality: AnalysisQuality = AnalysisQuality.DEGRADED
    consensus_metrics: ConsensusMetrics = Field(default_factory=ConsensusMetrics)
    market_assessment: dict[str, Any] | None = None


# =============================================================================
# Validation
# =============================================================================


class FlagSeverity(str, Enum):
    INFO = 'info'
    WARNING = 'warning'
    ERROR = 'error'


class ValidationFlag(BaseModel):
    """One anomaly raised by the validator."""

    model_config = ConfigDict(frozen=True)

    type: str
    severity: FlagSeverity = FlagSeverity.WARNING
    message: str
    suggested_adjustment: float | None = None


# =============================================================================
# Discrepancies
# =============================================================================


class DiscrepancyType(str, Enum):
    PRICE_SPREAD = 'price_spread'
    LOW_CONFIDENCE = 'low_confidence'
    DECISION_SPLIT = 'decision_split'
    OUTLIER_VOTE = 'outlier_vote'


class Discrepancy(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: DiscrepancyType
    severity: str
    description: str
    details: dict[str, Any] = Field(default_factory=dict)


class DiscrepancyReport(BaseModel):
    """Structured QA / narration context. Never feeds back into pricing."""

    model_config = ConfigDict(frozen=True)

    is_interesting: bool = False
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    suggested_event_type: str = 'analysis_complete_clean'
    narrator_context: dict[str, Any] = Field(default_factory=dict)
    narrator_prompt_hint: str = ''
