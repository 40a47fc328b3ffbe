"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore", # Allow extra env vars without failing
    )

    # App
    app_name: str = "YachtOps"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"
    tracing_enabled: bool = True
    tracing_exporter: str = "console"  # "console" or "none"
    # Secret key MUST be provided via environment (e.g. SECRET_KEY in .env)
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    anonymous_user_id: str = "anonymous"

    # API
    api_prefix: str = "/api/v1"
    # Default for local frontend; override via ALLOWED_ORIGINS env for cloud
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Database
    database_url: str = "sqlite+aiosqlite:///./yachtops.db"
    db_ssl_mode: str = "disable" # "require" for production
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Cross-module integration policy
    cost_overrun_ratio: float = 1.10        # finance total vs. job estimate
    high_cost_threshold: float = 10000.0    # approval gate, and cost alert when no estimate
    default_min_stock: int = 1
    reservation_valid_days: int = 7
    maintenance_interval_days: int = 180
    compliance_due_days: int = 7
    certification_warning_days: int = 30
    context_history_limit: int = 5         # recent jobs per equipment or inventory item

    # Behavior pattern analysis
    pattern_window_size: int = 100
    pattern_min_actions: int = 10
    frequent_action_threshold: int = 5      # count >= threshold
    suggestion_frequency_threshold: int = 10  # frequency > threshold
    suggestion_expiry_days: int = 7

    # Behavior analytics summary
    analytics_window_days: int = 30
    automation_threshold: int = 20          # count > threshold
    automation_minutes_per_action: float = 0.5
    module_switch_threshold: int = 5
    max_opportunities: int = 5
    underutilized_threshold: int = 3
    underutilized_min_modules: int = 3
    error_gap_threshold: int = 5

    # Periodic re-analysis of recently active users
    behavior_reanalysis_enabled: bool = True
    behavior_reanalysis_interval_seconds: int = 3600


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
