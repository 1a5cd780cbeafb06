"""
Pipeline configuration and invocation options.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StageTimeouts(BaseModel):
    """Per-stage deadlines in seconds."""

    # "validate" would shadow a BaseModel attribute, hence the alias
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    identify: float = Field(default=20.0, gt=0)
    fetch: float = Field(default=10.0, gt=0)
    reason: float = Field(default=15.0, gt=0)
    validate_: float = Field(default=3.0, gt=0, alias='validate')


class PipelineConfig(BaseModel):
    """Injected, immutable configuration for one pipeline run."""

    model_config = ConfigDict(frozen=True)

    stage_timeouts: StageTimeouts = Field(default_factory=StageTimeouts)
    enable_validation: bool = True
    enable_benchmarks: bool = True
    buy_threshold: float = Field(default=2.0, ge=0)
    benchmark_timeout: float = Field(default=2.0, gt=0)
    provider_weights: dict[str, float] = Field(default_factory=dict)

    def merged(self, overrides: Mapping[str, Any] | None) -> 'PipelineConfig':
        """
        Apply a partial override, returning a new config.

        Nested ``stage_timeouts`` may itself be partial, e.g.
        ``{'stage_timeouts': {'reason': 5}}`` keeps the other deadlines.
        """
        if not overrides:
            return self

        data = self.model_dump(by_alias=True)
        for key, value in overrides.items():
            if key == 'stage_timeouts' and isinstance(value, Mapping):
                data['stage_timeouts'] = {**data['stage_timeouts'], **value}
            elif key == 'provider_weights' and isinstance(value, Mapping):
                data['provider_weights'] = {**data['provider_weights'], **value}
            else:
                data[key] = value
        return PipelineConfig.model_validate(data)


class PipelineOptions(BaseModel):
    """Caller-supplied options for run_pipeline."""

    category_hint: str | None = None
    condition: str | None = None
    additional_context: str | None = None
    analysis_id: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class PriceRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    low: float = Field(default=0.0, ge=0)
    high: float = Field(default=0.0, ge=0)
