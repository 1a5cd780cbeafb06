"""
Valuation pipeline: the four stages, pricing math and the orchestrator.
"""

from .votes import VoteCollector
from .identify import IdentifyResult, IdentifyStage, is_garbage_name
from .fetch_evidence import FetchEvidenceStage, FetchResult, build_evidence_summary
from .reason import ReasonResult, ReasonStage, calculate_consensus
from .validate import ValidateResult, ValidateStage, parse_flags
from .blender import BlendResult, blend_final_price, market_weight_pct, round_cents
from .confidence import calculate_confidence, quality_for_confidence
from .discrepancy import detect_discrepancies
from .orchestrator import PipelineResult, ValuationPipeline

__all__ = [
    'VoteCollector',
    'IdentifyResult',
    'IdentifyStage',
    'is_garbage_name',
    'FetchEvidenceStage',
    'FetchResult',
    'build_evidence_summary',
    'ReasonResult',
    'ReasonStage',
    'calculate_consensus',
    'ValidateResult',
    'ValidateStage',
    'parse_flags',
    'BlendResult',
    'blend_final_price',
    'market_weight_pct',
    'round_cents',
    'calculate_confidence',
    'quality_for_confidence',
    'detect_discrepancies',
    'PipelineResult',
    'ValuationPipeline',
]
