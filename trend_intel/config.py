"""
Configuration management for the Trend Intelligence Engine.

Every threshold and horizon the engine applies lives here so it can be tuned
through the environment (or a .env file) without touching code. Concurrency
values are DEFAULTS only: batch operations accept their own limit per call.
"""

import json
from functools import lru_cache
from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # LLM Configuration
    # Provider priority: OpenAI → Groq → Ollama
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4.1-mini", alias="OPENAI_MODEL")

    groq_api_key: str = Field(default="", alias="GROQ_API_KEY")
    groq_model: str = Field(default="llama-3.3-70b-versatile", alias="GROQ_MODEL")

    use_ollama: bool = Field(default=False, alias="USE_OLLAMA")
    ollama_model: str = Field(default="mistral", alias="OLLAMA_MODEL")
    ollama_base_url: str = Field(default="http://localhost:11434", alias="OLLAMA_BASE_URL")

    llm_json_max_retries: int = Field(default=2, alias="LLM_JSON_MAX_RETRIES")
    # Base 429 cooldown doubles per consecutive rate limit, capped here
    provider_ratelimit_max_seconds: float = Field(default=120.0, alias="PROVIDER_RATELIMIT_MAX_SECONDS")
    mock_mode: bool = Field(default=False, alias="MOCK_MODE")

    # ── Relevance scoring ──
    # Records scoring below this are never persisted (hard filter, not a sort key)
    min_relevance_score: int = Field(default=40, alias="MIN_RELEVANCE_SCORE")
    # Neutral score used when the scorer fails, times out or answers garbage
    relevance_fallback_score: int = Field(default=50, alias="RELEVANCE_FALLBACK_SCORE")
    relevance_timeout_seconds: float = Field(default=20.0, alias="RELEVANCE_TIMEOUT_SECONDS")
    business_context: str = Field(
        default="a dry cleaning/laundry marketplace business",
        alias="BUSINESS_CONTEXT",
    )
    # Ask the LLM for related keywords when a source returns none
    expand_related_keywords: bool = Field(default=False, alias="EXPAND_RELATED_KEYWORDS")

    # ── Trend records ──
    trend_ttl_days: int = Field(default=7, alias="TREND_TTL_DAYS")
    max_related_keywords: int = Field(default=10, alias="MAX_RELATED_KEYWORDS")
    active_min_relevance: int = Field(default=60, alias="ACTIVE_MIN_RELEVANCE")
    active_trend_limit: int = Field(default=50, alias="ACTIVE_TREND_LIMIT")
    pillar_trend_limit: int = Field(default=20, alias="PILLAR_TREND_LIMIT")
    # Substring rules, evaluated in order; a keyword may land in several pillars
    pillar_rules: str = Field(
        default=(
            '{"sustainability":["sustain","eco","green"],'
            '"technology":["tech","ai","automat"],'
            '"business":["business","entrepreneur"],'
            '"local":["local","community"],'
            '"core-service":["clean","laundry","dry clean"]}'
        ),
        alias="PILLAR_RULES",
    )

    # ── Velocity / peak prediction ──
    history_window_days: int = Field(default=30, alias="HISTORY_WINDOW_DAYS")
    # heuristic | model | hybrid | auto (model with heuristic fallback)
    prediction_strategy: str = Field(default="auto", alias="PREDICTION_STRATEGY")
    forecast_timeout_seconds: float = Field(default=30.0, alias="FORECAST_TIMEOUT_SECONDS")
    max_forecast_days: int = Field(default=30, alias="MAX_FORECAST_DAYS")

    # ── Opportunity window ──
    window_lead_days: int = Field(default=5, alias="WINDOW_LEAD_DAYS")
    window_tail_days: int = Field(default=1, alias="WINDOW_TAIL_DAYS")
    escalation_velocity: float = Field(default=20.0, alias="ESCALATION_VELOCITY")
    early_signal_min_days: int = Field(default=7, alias="EARLY_SIGNAL_MIN_DAYS")
    early_signal_max_days: int = Field(default=14, alias="EARLY_SIGNAL_MAX_DAYS")
    early_signal_min_confidence: int = Field(default=60, alias="EARLY_SIGNAL_MIN_CONFIDENCE")

    # ── Algorithm experiments ──
    significance_threshold: float = Field(default=10.0, alias="SIGNIFICANCE_THRESHOLD")
    hybrid_margin: float = Field(default=5.0, alias="HYBRID_MARGIN")
    experiment_window: int = Field(default=50, alias="EXPERIMENT_WINDOW")
    auto_experiment_limit: int = Field(default=10, alias="AUTO_EXPERIMENT_LIMIT")

    # ── Concurrency defaults (callers may override per batch) ──
    default_max_concurrent: int = Field(default=5, alias="DEFAULT_MAX_CONCURRENT")
    repository_timeout_seconds: float = Field(default=10.0, alias="REPOSITORY_TIMEOUT_SECONDS")
    # LLM-written parts of trend analysis (content ideas, strategy, sentiment)
    analysis_timeout_seconds: float = Field(default=30.0, alias="ANALYSIS_TIMEOUT_SECONDS")

    # Database
    database_url: str = Field(default="sqlite:///./trends.db", alias="DATABASE_URL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    def get_pillar_rules(self) -> Dict[str, List[str]]:
        """Parse PILLAR_RULES into {pillar: [substrings]}."""
        return json.loads(self.pillar_rules)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
