"""Configuration settings for the Care Fayre backend."""

from functools import lru_cache

from pydantic_settings import BaseSettings

from carefayre.config import DEFAULT_MAX_QUERIES, DEFAULT_QUERY_RESPONSE_HOURS, MarketplaceConfig
from carefayre.registry import CQC_API_BASE, CQC_PARTNER_CODE


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Storage
    database_path: str | None = None  # Defaults to ~/.carefayre/carefayre.db

    # Supabase (identity directory: user_roles table + auth admin)
    supabase_url: str | None = None
    supabase_secret_key: str | None = None
    # Legacy key name, still accepted
    supabase_service_role_key: str | None = None

    # JWT
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 1 week

    # Email (Resend). Emails are skipped when no key is set.
    resend_api_key: str | None = None
    email_from: str = "Care Fayre <noreply@carefayre.co.uk>"

    # CQC registry
    cqc_api_base: str = CQC_API_BASE
    cqc_partner_code: str = CQC_PARTNER_CODE

    # Marketplace
    app_base_url: str = "http://localhost:8080"
    support_user_id: str | None = None
    query_response_hours: int = DEFAULT_QUERY_RESPONSE_HOURS
    max_queries_before_escalation: int = DEFAULT_MAX_QUERIES
    # "advisory" leaves overdue queries alone; "auto_settle" enforces the deadline
    query_expiry_policy: str = "advisory"

    # App
    debug: bool = False
    rate_limit_enabled: bool = True
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8080",
        "https://carefayre.co.uk",
        "https://www.carefayre.co.uk",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    def marketplace_config(self) -> MarketplaceConfig:
        return MarketplaceConfig(
            query_response_hours=self.query_response_hours,
            max_queries_before_escalation=self.max_queries_before_escalation,
            app_base_url=self.app_base_url,
            support_user_id=self.support_user_id,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
