from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # `.env.local` takes priority over `.env`
        env_file=(".env", ".env.local"),
        extra="ignore",
    )

    # Postgres connection of the managed backend (SQLite for local dev)
    database_url: str = "sqlite:///./ghl_hire.db"

    # Managed backend project settings
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    # Bypasses row-level security; only the maintenance scripts read it
    supabase_service_role_key: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None
    supabase_jwt_audience: str = "authenticated"

    openai_api_key: Optional[str] = None

    # Resend email settings
    resend_api_key: Optional[str] = None
    resend_from_email: str = "GHL Hire <noreply@ghlhire.com>"
    resend_api_url: str = "https://api.resend.com"

    # Maya payment gateway settings
    maya_public_key: Optional[str] = None
    maya_secret_key: Optional[str] = None
    maya_webhook_secret: Optional[str] = None
    maya_api_url: str = "https://pg-sandbox.paymaya.com"

    # Application base URL (for email links, redirects and the sitemap)
    app_base_url: str = "https://ghlhire.com"
    app_env: str = "development"

    # Support ticket forwarding (n8n workflow webhook)
    n8n_support_webhook_url: Optional[str] = None

    # Logging and CloudWatch metrics
    log_format: str = "json"
    log_level: str = "INFO"
    service_name: str = "ghl-hire"
    metrics_namespace: str = "GHLHire"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
