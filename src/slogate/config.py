"""
Application settings and configuration.

Provides environment-based configuration loading with SLOGATE_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./slogate.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    # Debug
    debug: bool = False
    log_level: str = "INFO"

    # Event buckets
    bucket_seconds: int = 60
    retention_days: int = 400

    # Budget cache
    budget_cache_ttl_seconds: int = 300
    cache_backend: str = "memory"  # memory, redis
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 10

    # Status tiers (fraction of total budget remaining)
    warning_threshold: float = 0.5
    critical_threshold: float = 0.2

    # Burn event detection
    burn_spike_rate: float = 10.0  # 1h burn rate, multiple of sustainable
    low_budget_ratio: float = 0.1
    burn_event_dedupe_minutes: int = 60

    # Week-over-week trend: change in remaining budget, percent of total
    trend_change_percent: float = 5.0

    # Deploy gate overrides
    override_role_ranks: dict[str, int] = {
        "engineer": 0,
        "tech_lead": 1,
        "engineering_manager": 2,
        "sre_lead": 3,
        "director": 4,
    }
    override_levels: dict[str, str] = {
        "critical": "tech_lead",
        "exhausted": "engineering_manager",
        "evaluation_unavailable": "sre_lead",
    }

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "SLOGATE_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
