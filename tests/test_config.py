"""
Tests for settings and pipeline configuration.
"""

import pytest
from pydantic import ValidationError

from price_consensus.config import PROVIDER_KEY_FIELDS, Settings
from price_consensus.models.pipeline import PipelineConfig, PipelineOptions, StageTimeouts


def _settings(**overrides) -> Settings:
    """Settings with every credential blank unless overridden."""
    blank = {field: '' for field in PROVIDER_KEY_FIELDS.values()}
    blank.update(EBAY_CLIENT_ID='', EBAY_CLIENT_SECRET='', BENCHMARK_DATABASE_URL='')
    blank.update(overrides)
    return Settings(**blank)


class TestSettings:
    """Test environment-backed settings."""

    def test_defaults(self):
        settings = _settings()

        assert settings.STAGE_TIMEOUT_IDENTIFY == 20.0
        assert settings.STAGE_TIMEOUT_FETCH == 10.0
        assert settings.STAGE_TIMEOUT_REASON == 15.0
        assert settings.STAGE_TIMEOUT_VALIDATE == 3.0
        assert settings.BUY_THRESHOLD == 2.0

    def test_missing_provider_keys(self):
        settings = _settings(ANTHROPIC_API_KEY='sk-ant', GROQ_API_KEY='gsk')

        missing = settings.missing_provider_keys()

        assert 'anthropic' not in missing
        assert 'groq' not in missing
        assert 'openai' in missing
        assert settings.provider_key('anthropic') == 'sk-ant'
        assert settings.provider_key('unknown') == ''

    def test_bounds_enforced(self):
        with pytest.raises(ValidationError):
            _settings(PROVIDER_MAX_ATTEMPTS=0)

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv('STAGE_TIMEOUT_REASON', '7.5')
        monkeypatch.setenv('ENABLE_VALIDATION', 'false')

        settings = _settings()

        assert settings.STAGE_TIMEOUT_REASON == 7.5
        assert settings.ENABLE_VALIDATION is False

    def test_pipeline_config(self):
        settings = _settings(STAGE_TIMEOUT_VALIDATE=2.5, BUY_THRESHOLD=5.0, ENABLE_BENCHMARKS=False)

        config = settings.pipeline_config()

        assert config.stage_timeouts.validate_ == 2.5
        assert config.buy_threshold == 5.0
        assert config.enable_benchmarks is False


class TestPipelineConfig:
    """Test per-run config overrides."""

    def test_merged_partial_stage_timeouts(self):
        base = PipelineConfig()

        merged = base.merged({'stage_timeouts': {'reason': 5}})

        assert merged.stage_timeouts.reason == 5
        assert merged.stage_timeouts.identify == 20.0
        assert merged.stage_timeouts.validate_ == 3.0
        # Base is untouched
        assert base.stage_timeouts.reason == 15.0

    def test_merged_validate_alias(self):
        merged = PipelineConfig().merged({'stage_timeouts': {'validate': 1.5}})

        assert merged.stage_timeouts.validate_ == 1.5

    def test_merged_provider_weights_combine(self):
        base = PipelineConfig(provider_weights={'anthropic': 0.9})

        merged = base.merged({'provider_weights': {'deepseek': 0.5}})

        assert merged.provider_weights == {'anthropic': 0.9, 'deepseek': 0.5}

    def test_merged_none_returns_self(self):
        base = PipelineConfig()

        assert base.merged(None) is base
        assert base.merged({}) is base

    def test_merged_rejects_bad_values(self):
        with pytest.raises(ValidationError):
            PipelineConfig().merged({'stage_timeouts': {'fetch': -1}})

    def test_config_is_frozen(self):
        config = PipelineConfig()

        with pytest.raises(ValidationError):
            config.enable_validation = False

    def test_options_defaults(self):
        options = PipelineOptions()

        assert options.config == {}
        assert options.analysis_id is None

    def test_stage_timeouts_by_name(self):
        timeouts = StageTimeouts(validate_=4.0)

        assert timeouts.validate_ == 4.0
