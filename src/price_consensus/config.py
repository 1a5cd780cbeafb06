"""
Configuration management for the price consensus pipeline.

Loads settings from environment variables (and a project-root .env file)
with sensible defaults. Every provider key is optional: a missing key means
the provider is skipped, not that the pipeline fails.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from .models.pipeline import PipelineConfig

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)

PROVIDER_KEY_FIELDS: dict[str, str] = {
    'openai': 'OPENAI_API_KEY',
    'anthropic': 'ANTHROPIC_API_KEY',
    'google': 'GOOGLE_AI_API_KEY',
    'mistral': 'MISTRAL_API_KEY',
    'groq': 'GROQ_API_KEY',
    'xai': 'XAI_API_KEY',
    'deepseek': 'DEEPSEEK_API_KEY',
    'perplexity': 'PERPLEXITY_API_KEY',
}


class Settings(BaseSettings):
    """Pipeline settings loaded from environment variables."""

    model_config = SettingsConfigDict(extra='ignore')

    # Provider credentials
    OPENAI_API_KEY: str = ''
    ANTHROPIC_API_KEY: str = ''
    GOOGLE_AI_API_KEY: str = ''
    MISTRAL_API_KEY: str = ''
    GROQ_API_KEY: str = ''
    XAI_API_KEY: str = ''
    DEEPSEEK_API_KEY: str = ''
    PERPLEXITY_API_KEY: str = ''

    # Evidence sources
    EBAY_CLIENT_ID: str = ''
    EBAY_CLIENT_SECRET: str = ''
    GOOGLE_BOOKS_API_KEY: str = ''
    POKEMON_TCG_API_KEY: str = ''
    NUMISTA_API_KEY: str = ''
    DISCOGS_USER_TOKEN: str = ''
    BRICKSET_API_KEY: str = ''
    BRICKSET_USERNAME: str = ''
    BRICKSET_PASSWORD: str = ''

    # Benchmarks
    BENCHMARK_DATABASE_URL: str = ''

    # Logging
    LOG_LEVEL: str = 'INFO'
    LOG_JSON: bool = False

    # Provider call policy
    PROVIDER_TIMEOUT_SECONDS: float = Field(default=15.0, gt=0, le=120)
    PROVIDER_MAX_ATTEMPTS: int = Field(default=3, ge=1, le=5)
    PROVIDER_BACKOFF_SECONDS: float = Field(default=1.0, ge=0, le=10)

    # Stage deadlines (seconds)
    STAGE_TIMEOUT_IDENTIFY: float = Field(default=20.0, gt=0, le=120)
    STAGE_TIMEOUT_FETCH: float = Field(default=10.0, gt=0, le=120)
    STAGE_TIMEOUT_REASON: float = Field(default=15.0, gt=0, le=120)
    STAGE_TIMEOUT_VALIDATE: float = Field(default=3.0, gt=0, le=60)

    # Pipeline behaviour
    ENABLE_VALIDATION: bool = True
    ENABLE_BENCHMARKS: bool = True
    BUY_THRESHOLD: float = Field(default=2.0, ge=0)
    BENCHMARK_TIMEOUT_SECONDS: float = Field(default=2.0, gt=0, le=30)

    def provider_key(self, provider: str) -> str:
        """Credential for a provider name, empty string when unset."""
        field_name = PROVIDER_KEY_FIELDS.get(provider)
        if field_name is None:
            return ''
        return getattr(self, field_name)

    def missing_provider_keys(self) -> list[str]:
        """
        List providers that will be skipped for lack of a credential.

        Returns:
            Provider names whose API key is not configured
        """
        return [name for name in PROVIDER_KEY_FIELDS if not self.provider_key(name)]

    def pipeline_config(self) -> PipelineConfig:
        """Default PipelineConfig derived from these settings."""
        from .models.pipeline import PipelineConfig, StageTimeouts

        return PipelineConfig(
            stage_timeouts=StageTimeouts(
                identify=self.STAGE_TIMEOUT_IDENTIFY,
                fetch=self.STAGE_TIMEOUT_FETCH,
                reason=self.STAGE_TIMEOUT_REASON,
                validate=self.STAGE_TIMEOUT_VALIDATE,
            ),
            enable_validation=self.ENABLE_VALIDATION,
            enable_benchmarks=self.ENABLE_BENCHMARKS,
            buy_threshold=self.BUY_THRESHOLD,
            benchmark_timeout=self.BENCHMARK_TIMEOUT_SECONDS,
        )


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
