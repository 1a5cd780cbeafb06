"""
Price Consensus Pipeline

Evidence-based valuation of physical items from photos: identify the item
with vision models, gather marketplace and authority evidence, let several
reasoning models vote on a value, and blend the consensus with the market.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .pipeline import (
    ValuationPipeline,
    PipelineResult,
    IdentifyStage,
    FetchEvidenceStage,
    ReasonStage,
    ValidateStage,
    blend_final_price,
    calculate_confidence,
    detect_discrepancies,
)
from .models import (
    AnalysisQuality,
    ConsensusResult,
    Decision,
    EvidenceSummary,
    ModelVote,
    PipelineConfig,
    PipelineOptions,
)
from .providers import ProviderRegistry, ResilientProvider
from .benchmarks import BenchmarkRecorder, LoggingBenchmarkSink, PostgresBenchmarkSink
from .logging import (
    configure_logging,
    get_logger,
    logging_context,
    PipelineTimer,
)
from .errors import (
    PriceConsensusError,
    ProviderError,
    MissingCredentialError,
    RateLimitedError,
    ProviderTimeoutError,
    ParseFailureError,
    EvidenceSourceError,
    PipelineError,
    BenchmarkWriteError,
)

__all__ = [
    # Version
    '__version__',
    # Main Pipeline
    'ValuationPipeline',
    'PipelineResult',
    # Stages
    'IdentifyStage',
    'FetchEvidenceStage',
    'ReasonStage',
    'ValidateStage',
    # Pricing
    'blend_final_price',
    'calculate_confidence',
    'detect_discrepancies',
    # Models
    'AnalysisQuality',
    'ConsensusResult',
    'Decision',
    'EvidenceSummary',
    'ModelVote',
    'PipelineConfig',
    'PipelineOptions',
    # Providers
    'ProviderRegistry',
    'ResilientProvider',
    # Benchmarks
    'BenchmarkRecorder',
    'LoggingBenchmarkSink',
    'PostgresBenchmarkSink',
    # Logging
    'configure_logging',
    'get_logger',
    'logging_context',
    'PipelineTimer',
    # Errors
    'PriceConsensusError',
    'ProviderError',
    'MissingCredentialError',
    'RateLimitedError',
    'ProviderTimeoutError',
    'ParseFailureError',
    'EvidenceSourceError',
    'PipelineError',
    'BenchmarkWriteError',
]
