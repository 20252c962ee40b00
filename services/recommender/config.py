"""Settings definitions for the NDC recommender service."""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_SETTINGS_CONFIG = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


class AppSettings(BaseSettings):
    """Runtime configuration for the FastAPI application instance."""

    service_name: str = Field(
        default="ndc_recommender",
        description="Identifier attached to every log entry.",
        validation_alias=AliasChoices("RECOMMENDER_SERVICE_NAME", "SERVICE_NAME"),
    )
    host: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("RECOMMENDER_HOST", "HOST"),
    )
    port: int = Field(
        default=8010,
        validation_alias=AliasChoices("RECOMMENDER_PORT", "PORT"),
    )

    model_config = _SETTINGS_CONFIG


class LoggingSettings(BaseSettings):
    """Logging configuration for the service."""

    level: str = Field(
        default="info",
        description="Logging verbosity level (e.g. debug, info, warning).",
        validation_alias=AliasChoices("RECOMMENDER_LOG_LEVEL", "LOG_LEVEL"),
    )
    json_logs: bool = Field(
        default=True,
        description="Emit structured JSON logs when set to true.",
        validation_alias=AliasChoices("RECOMMENDER_LOG_JSON", "LOG_JSON"),
    )

    model_config = _SETTINGS_CONFIG


class RxNormSettings(BaseSettings):
    """Connectivity for the RxNav REST API used to normalize drug names."""

    base_url: str = Field(
        default="https://rxnav.nlm.nih.gov/REST",
        validation_alias=AliasChoices("RECOMMENDER_RXNORM_BASE_URL", "RXNORM_BASE_URL"),
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        validation_alias=AliasChoices("RECOMMENDER_RXNORM_TIMEOUT", "RXNORM_TIMEOUT"),
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        validation_alias=AliasChoices(
            "RECOMMENDER_RXNORM_RETRY_ATTEMPTS", "RXNORM_RETRY_ATTEMPTS"
        ),
    )
    max_approximate_entries: int = Field(
        default=10,
        ge=1,
        description="Upper bound on approximate-match candidates requested per query.",
        validation_alias=AliasChoices(
            "RECOMMENDER_RXNORM_MAX_ENTRIES", "RXNORM_MAX_ENTRIES"
        ),
    )

    model_config = _SETTINGS_CONFIG


class OpenFDASettings(BaseSettings):
    """Connectivity for the openFDA NDC directory."""

    base_url: str = Field(
        default="https://api.fda.gov/drug",
        validation_alias=AliasChoices("RECOMMENDER_OPENFDA_BASE_URL", "OPENFDA_BASE_URL"),
    )
    api_key: str | None = Field(
        default=None,
        description="Optional openFDA key raising the anonymous rate limit.",
        validation_alias=AliasChoices("RECOMMENDER_OPENFDA_API_KEY", "OPENFDA_API_KEY"),
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        validation_alias=AliasChoices("RECOMMENDER_OPENFDA_TIMEOUT", "OPENFDA_TIMEOUT"),
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        validation_alias=AliasChoices(
            "RECOMMENDER_OPENFDA_RETRY_ATTEMPTS", "OPENFDA_RETRY_ATTEMPTS"
        ),
    )
    page_limit: int = Field(
        default=100,
        ge=1,
        le=1000,
        validation_alias=AliasChoices("RECOMMENDER_OPENFDA_LIMIT", "OPENFDA_LIMIT"),
    )

    model_config = _SETTINGS_CONFIG


class NormalizationSettings(BaseSettings):
    """Policy knobs for the drug-name normalization fallback chain."""

    min_confidence: float = Field(
        default=0.5,
        gt=0.0,
        le=1.0,
        description="Confidence a strategy must reach to stop the fallback chain.",
        validation_alias=AliasChoices(
            "RECOMMENDER_MIN_CONFIDENCE", "NORMALIZATION_MIN_CONFIDENCE"
        ),
    )
    fuzzy_score_scale: float = Field(
        default=100.0,
        gt=0.0,
        description="Raw approximate-match score mapped to confidence 1.0.",
        validation_alias=AliasChoices(
            "RECOMMENDER_FUZZY_SCORE_SCALE", "NORMALIZATION_FUZZY_SCORE_SCALE"
        ),
    )
    fuzzy_rank_decay: float = Field(
        default=0.9,
        gt=0.0,
        le=1.0,
        description="Multiplicative confidence penalty per rank position.",
        validation_alias=AliasChoices(
            "RECOMMENDER_FUZZY_RANK_DECAY", "NORMALIZATION_FUZZY_RANK_DECAY"
        ),
    )
    spelling_ceiling: float = Field(
        default=0.45,
        gt=0.0,
        description="Confidence of the first spelling suggestion.",
        validation_alias=AliasChoices(
            "RECOMMENDER_SPELLING_CEILING", "NORMALIZATION_SPELLING_CEILING"
        ),
    )
    spelling_decay: float = Field(
        default=0.9,
        gt=0.0,
        le=1.0,
        validation_alias=AliasChoices(
            "RECOMMENDER_SPELLING_DECAY", "NORMALIZATION_SPELLING_DECAY"
        ),
    )
    max_alternatives: int = Field(
        default=4,
        ge=0,
        validation_alias=AliasChoices(
            "RECOMMENDER_MAX_ALTERNATIVES", "NORMALIZATION_MAX_ALTERNATIVES"
        ),
    )
    ambiguity_epsilon: float = Field(
        default=0.05,
        ge=0.0,
        validation_alias=AliasChoices(
            "RECOMMENDER_AMBIGUITY_EPSILON", "NORMALIZATION_AMBIGUITY_EPSILON"
        ),
    )
    batch_concurrency: int = Field(
        default=5,
        ge=1,
        validation_alias=AliasChoices(
            "RECOMMENDER_BATCH_CONCURRENCY", "NORMALIZATION_BATCH_CONCURRENCY"
        ),
    )

    model_config = _SETTINGS_CONFIG

    @model_validator(mode="after")
    def _spelling_below_threshold(self) -> "NormalizationSettings":
        if self.spelling_ceiling >= self.min_confidence:
            raise ValueError("spelling_ceiling must be lower than min_confidence")
        return self


class CacheSettings(BaseSettings):
    """Cache TTLs and the key-derivation secret."""

    enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("RECOMMENDER_CACHE_ENABLED", "CACHE_ENABLED"),
    )
    key_secret: str = Field(
        default="local-development-cache-secret",
        description="HMAC secret used to derive cache keys; override in production.",
        validation_alias=AliasChoices("RECOMMENDER_CACHE_KEY_SECRET", "CACHE_KEY_SECRET"),
    )
    normalization_ttl_seconds: int = Field(
        default=24 * 60 * 60,
        gt=0,
        validation_alias=AliasChoices(
            "RECOMMENDER_CACHE_NORMALIZATION_TTL", "CACHE_NORMALIZATION_TTL"
        ),
    )
    package_ttl_seconds: int = Field(
        default=60 * 60,
        gt=0,
        validation_alias=AliasChoices("RECOMMENDER_CACHE_PACKAGE_TTL", "CACHE_PACKAGE_TTL"),
    )
    max_entries: int = Field(
        default=10_000,
        ge=1,
        validation_alias=AliasChoices("RECOMMENDER_CACHE_MAX_ENTRIES", "CACHE_MAX_ENTRIES"),
    )

    model_config = _SETTINGS_CONFIG


class AISettings(BaseSettings):
    """AI enhancement toggles and circuit-breaker tuning."""

    enabled: bool = Field(
        default=False,
        description="Enable LLM re-ranking of algorithmic selections.",
        validation_alias=AliasChoices("RECOMMENDER_AI_ENABLED", "ENABLE_OPENAI"),
    )
    provider: str = Field(
        default="openai/gpt-4o-mini",
        validation_alias=AliasChoices("RECOMMENDER_AI_PROVIDER", "AI_PROVIDER"),
    )
    temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=2.0,
        validation_alias=AliasChoices("RECOMMENDER_AI_TEMPERATURE", "AI_TEMPERATURE"),
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias=AliasChoices("RECOMMENDER_AI_TIMEOUT", "AI_TIMEOUT"),
    )
    failure_threshold: int = Field(
        default=5,
        ge=1,
        validation_alias=AliasChoices(
            "RECOMMENDER_AI_FAILURE_THRESHOLD", "AI_FAILURE_THRESHOLD"
        ),
    )
    cooldown_seconds: float = Field(
        default=300.0,
        gt=0,
        validation_alias=AliasChoices("RECOMMENDER_AI_COOLDOWN", "AI_COOLDOWN"),
    )

    model_config = _SETTINGS_CONFIG


class Settings(BaseSettings):
    """Aggregated settings namespace for the recommender service."""

    app: AppSettings = Field(default_factory=AppSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    rxnorm: RxNormSettings = Field(default_factory=RxNormSettings)
    openfda: OpenFDASettings = Field(default_factory=OpenFDASettings)
    normalization: NormalizationSettings = Field(default_factory=NormalizationSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    ai: AISettings = Field(default_factory=AISettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()


__all__ = [
    "AISettings",
    "AppSettings",
    "CacheSettings",
    "LoggingSettings",
    "NormalizationSettings",
    "OpenFDASettings",
    "RxNormSettings",
    "Settings",
    "get_settings",
]
