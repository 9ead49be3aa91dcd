from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from functools import lru_cache


WEAK_SECRETS = {
    "changeme",
    "secret",
    "password",
    "cron",
    "webhook",
    "development-cron-secret",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/reviewflow"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # Shared secrets
    CRON_SECRET: str | None = None
    WEBHOOK_SHARED_SECRET: str | None = None
    INTERNAL_API_KEY: str | None = None

    # Brevo (email)
    BREVO_API_KEY: str | None = None
    EMAIL_FROM_ADDRESS: str = "noreply@reviewflow.app"
    EMAIL_FROM_NAME: str = "ReviewFlow"

    # Twilio (SMS)
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_PHONE_NUMBER: str | None = None

    # Delivery
    SEND_TIMEOUT_SECONDS: float = 20.0
    APP_BASE_URL: str = "https://reviewflow.app"
    FRONTEND_URL: str = "http://localhost:3000"
    SMS_OPT_OUT_FOOTER: str = "Reply STOP to opt out."

    # Executor
    EXECUTOR_BATCH_SIZE: int = 20
    EXECUTOR_INTERVAL_MINUTES: int = 5
    AUTOMATION_SCHEDULER_ENABLED: bool = False
    PROCESSING_VISIBILITY_TIMEOUT_MINUTES: int = 15
    MAX_SEND_ATTEMPTS: int = 3
    RETRY_BACKOFF_BASE_SECONDS: int = 300

    # Safety rule defaults (per-business columns override these)
    DEFAULT_TIMEZONE: str = "America/New_York"
    DEFAULT_QUIET_HOURS_START: int = 21
    DEFAULT_QUIET_HOURS_END: int = 8
    DEFAULT_HOURLY_SEND_LIMIT: int = 50
    DEFAULT_DAILY_SEND_LIMIT: int = 500
    DEFAULT_COOLDOWN_DAYS: int = 7

    # Observability
    SENTRY_DSN: str | None = None
    VERSION: str = "1.0.0"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True
    SQL_ECHO: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True

    @model_validator(mode="after")
    def validate_production(self) -> "Settings":
        """Harden settings when running in production."""
        if self.is_production:
            if not self.CRON_SECRET:
                raise ValueError("CRON_SECRET must be set in production")
            if self.CRON_SECRET.lower() in WEAK_SECRETS or len(self.CRON_SECRET) < 16:
                raise ValueError("CRON_SECRET is too weak for production")
            self.DEBUG = False
            self.DOCS_ENABLED = False
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() in ("production", "staging")

    @property
    def sqlalchemy_echo(self) -> bool:
        """SQL echo leaks parameters; only allowed outside production."""
        return self.SQL_ECHO and not self.is_production


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
