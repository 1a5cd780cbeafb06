"""
Validate stage: a fast sanity check on the reasoning consensus.

The validator only raises flags; it never prices. Any failure here fails
open so a slow or broken validator can never block a result.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

from ..errors import MissingCredentialError, ProviderError, ProviderTimeoutError
from ..logging import get_logger
from ..models.consensus import ConsensusResult, FlagSeverity, ValidationFlag
from ..models.evidence import EvidenceSummary
from ..models.vote import ModelVote, ParsedAnalysis
from ..prompts.valuation import build_validation_prompt
from ..providers.base import AnalysisProvider
from ..providers.parsers import parse_price

logger = get_logger(__name__)

IMPLICIT_FLAG_TERMS = ('concern', 'mismatch', 'discrepancy')
DEFAULT_FLAG_TYPE = 'price_mismatch'


@dataclass
class ValidateResult:
    """Output of the Validate stage."""

    valid: bool = True
    flags: list[ValidationFlag] = field(default_factory=list)
    vote: ModelVote | None = None
    skipped: bool = False
    stage_time_ms: int = 0

    @property
    def votes(self) -> list[ModelVote]:
        return [self.vote] if self.vote is not None else []

    def to_dict(self) -> dict[str, Any]:
        return {
            'valid': self.valid,
            'flags': [f.model_dump(mode='json') for f in self.flags],
            'skipped': self.skipped,
            'stage_time_ms': self.stage_time_ms,
        }


def _severity(value: Any) -> FlagSeverity:
    try:
        return FlagSeverity(str(value).strip().lower())
    except ValueError:
        return FlagSeverity.WARNING


def parse_flags(analysis: ParsedAnalysis) -> list[ValidationFlag]:
    """
    Extract validation flags from a validator response.

    An explicit ``valid: true`` means no flags. String flags become
    warnings; object flags keep their type, severity, message and suggested
    adjustment. Valuation factors that mention a concern, mismatch or
    discrepancy are promoted to warnings.
    """
    if analysis.valid is True:
        return []

    flags: list[ValidationFlag] = []
    for raw in analysis.flags:
        if isinstance(raw, str):
            if raw.strip():
                flags.append(ValidationFlag(type=DEFAULT_FLAG_TYPE, message=raw.strip()))
        elif isinstance(raw, dict):
            message = raw.get('message') or raw.get('description') or 'Unspecified flag'
            adjustment = raw.get('suggestedAdjustment', raw.get('suggested_adjustment', raw.get('adjustment')))
            flags.append(ValidationFlag(
                type=str(raw.get('type') or DEFAULT_FLAG_TYPE),
                severity=_severity(raw.get('severity', 'warning')),
                message=str(message),
                suggested_adjustment=parse_price(adjustment) if adjustment is not None else None,
            ))

    for factor in analysis.valuation_factors:
        lower = factor.lower()
        if any(term in lower for term in IMPLICIT_FLAG_TERMS):
            flags.append(ValidationFlag(type=DEFAULT_FLAG_TYPE, message=factor))
    return flags


class ValidateStage:
    """
    Usage:
        stage = ValidateStage(registry.get('groq'))
        result = await stage.run(consensus, category, evidence, timeout=3)
    """

    def __init__(self, provider: AnalysisProvider | None):
        self.provider = provider

    async def run(
        self,
        consensus: ConsensusResult,
        category: str,
        evidence: EvidenceSummary,
        timeout: float = 3.0,
    ) -> ValidateResult:
        started = time.perf_counter()
        provider = self.provider
        if provider is None or not provider.is_available:
            logger.info('validate.skipped', reason='validator unavailable')
            return ValidateResult(skipped=True)

        prompt = build_validation_prompt(consensus, category, evidence)
        try:
            response = await _with_deadline(provider.analyze([], prompt), timeout)
        except MissingCredentialError:
            return ValidateResult(skipped=True)
        except ProviderError as e:
            logger.warning('validate.failed_open', provider=provider.name, error=e.message)
            elapsed = _ms_since(started)
            return ValidateResult(
                vote=ModelVote.failed(provider.name, e.message, elapsed),
                stage_time_ms=elapsed,
            )
        except Exception as e:
            logger.error('validate.provider_crashed', provider=provider.name, error=str(e))
            elapsed = _ms_since(started)
            return ValidateResult(
                vote=ModelVote.failed(provider.name, f'unexpected error: {e}', elapsed),
                stage_time_ms=elapsed,
            )

        if response.response is None:
            logger.warning('validate.failed_open', provider=provider.name, error='empty response')
            return ValidateResult(
                vote=ModelVote.failed(provider.name, 'empty response', response.response_time_ms),
                stage_time_ms=_ms_since(started),
            )

        analysis = response.response
        flags = parse_flags(analysis)
        valid = not any(f.severity is FlagSeverity.ERROR for f in flags)
        vote = ModelVote.from_analysis(
            provider.name,
            analysis,
            confidence=response.confidence,
            base_weight=provider.base_weight,
            response_time_ms=response.response_time_ms,
        )
        elapsed = _ms_since(started)
        logger.info('validate.complete', valid=valid, flags=len(flags), stage_time_ms=elapsed)
        return ValidateResult(valid=valid, flags=flags, vote=vote, stage_time_ms=elapsed)


async def _with_deadline(coro, timeout: float):
    """Await ``coro`` under the stage deadline, as a ProviderTimeoutError."""
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ProviderTimeoutError(
            'Validation deadline exceeded', {'timeout_s': timeout}
        ) from e


def _ms_since(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
