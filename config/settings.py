"""
Configuration settings for Discubot.
All sensitive values are loaded from environment variables.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Discubot"
    app_version: str = Field(default="1.0.0", env="APP_VERSION")
    debug: bool = Field(default=False, env="DEBUG")
    environment: str = Field(default="production", env="ENVIRONMENT")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    # Server
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=8000, env="PORT")
    base_url: str = Field(default="http://localhost:8000", env="BASE_URL")
    cors_origins: str = Field(default="*", env="CORS_ORIGINS")

    # Database
    database_url: str = Field(default="", env="DATABASE_URL")
    db_pool_size: int = Field(default=10, env="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=20, env="DB_MAX_OVERFLOW")
    db_pool_timeout: int = Field(default=30, env="DB_POOL_TIMEOUT")
    db_pool_recycle: int = Field(default=1800, env="DB_POOL_RECYCLE")
    database_echo: bool = Field(default=False, env="DATABASE_ECHO")

    # AI (any OpenAI-compatible endpoint)
    ai_api_key: str = Field(default="", env="AI_API_KEY")
    ai_base_url: str = Field(default="https://api.openai.com/v1", env="AI_BASE_URL")
    ai_model: str = Field(default="gpt-4o-mini", env="AI_MODEL")
    ai_max_tokens: int = Field(default=2000, env="AI_MAX_TOKENS")
    ai_cache_ttl_seconds: int = Field(default=3600, env="AI_CACHE_TTL_SECONDS")

    # Notion
    notion_api_url: str = Field(default="https://api.notion.com/v1", env="NOTION_API_URL")
    notion_api_version: str = Field(default="2022-06-28", env="NOTION_API_VERSION")
    notion_webhook_secret: str = Field(default="", env="NOTION_WEBHOOK_SECRET")
    notion_task_delay_ms: int = Field(default=200, env="NOTION_TASK_DELAY_MS")

    # Slack
    slack_client_id: str = Field(default="", env="SLACK_CLIENT_ID")
    slack_client_secret: str = Field(default="", env="SLACK_CLIENT_SECRET")
    slack_signing_secret: str = Field(default="", env="SLACK_SIGNING_SECRET")
    slack_api_url: str = Field(default="https://slack.com/api", env="SLACK_API_URL")

    # Figma
    figma_api_url: str = Field(default="https://api.figma.com", env="FIGMA_API_URL")
    figma_email_domain: str = Field(default="email.figma.com", env="FIGMA_EMAIL_DOMAIN")

    # Inbound email
    mailgun_signing_key: str = Field(default="", env="MAILGUN_SIGNING_KEY")
    resend_api_key: str = Field(default="", env="RESEND_API_KEY")
    resend_webhook_secret: str = Field(default="", env="RESEND_WEBHOOK_SECRET")
    resend_api_url: str = Field(default="https://api.resend.com", env="RESEND_API_URL")

    # Security
    encryption_key: str = Field(default="", env="ENCRYPTION_KEY")
    oauth_state_ttl_seconds: int = Field(default=300, env="OAUTH_STATE_TTL_SECONDS")
    rate_limit_enabled: bool = Field(default=True, env="RATE_LIMIT_ENABLED")

    # Scheduler Settings
    timezone: str = Field(default="UTC", env="TIMEZONE")
    job_retention_days: int = Field(default=30, env="JOB_RETENTION_DAYS")
    job_cleanup_interval_hours: int = Field(default=24, env="JOB_CLEANUP_INTERVAL_HOURS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def cors_origin_list(self) -> list:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Global settings instance
settings = Settings()


@lru_cache()
def get_settings() -> Settings:
    """Get the application settings."""
    return settings
