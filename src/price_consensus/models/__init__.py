"""
Data models for the price consensus pipeline.

All models are created fresh per pipeline invocation; votes and summaries
are frozen once built.
"""

from .vote import Decision, ModelVote, ParsedAnalysis
from .evidence import (
    AuthorityData,
    EvidenceSummary,
    PriceAnalysis,
    SourceKind,
    SourceResult,
)
from .consensus import (
    AnalysisQuality,
    ConsensusMetrics,
    ConsensusResult,
    Discrepancy,
    DiscrepancyReport,
    DiscrepancyType,
    FlagSeverity,
    ValidationFlag,
)
from .pipeline import PipelineConfig, PipelineOptions, PriceRange, StageTimeouts

__all__ = [
    'Decision',
    'ModelVote',
    'ParsedAnalysis',
    'AuthorityData',
    'EvidenceSummary',
    'PriceAnalysis',
    'SourceKind',
    'SourceResult',
    'AnalysisQuality',
    'ConsensusMetrics',
    'ConsensusResult',
    'Discrepancy',
    'DiscrepancyReport',
    'DiscrepancyType',
    'FlagSeverity',
    'ValidationFlag',
    'PipelineConfig',
    'PipelineOptions',
    'PriceRange',
    'StageTimeouts',
]
