from datetime import timedelta
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Supabase settings
    SUPABASE_URL: str | None = None
    SUPABASE_JWKS_URL: str | None = None
    SUPABASE_DB_URL: str | None = None

    # Mail transport (hosted email API)
    EMAIL_API_BASE_URL: str = "https://a2wzu306xj.execute-api.us-east-1.amazonaws.com"
    EMAIL_API_TIMEOUT_SECONDS: float = 30.0

    # OpenAI settings for draft generation
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_MAX_TOKENS: int = 1500
    OPENAI_TEMPERATURE: float = 0.7
    GENERATION_TIMEOUT_SECONDS: float = 30.0

    # =================================================================
    # OUTREACH RULES
    # =================================================================
    OUTREACH_COOLDOWN_DAYS: int = 7
    FOLLOW_UP_DELAY_HOURS: int = 24
    PROFILE_COMPLETION_THRESHOLD: int = 85
    DEFAULT_EMAIL_LIMIT: int = 125

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 3
    DB_POOL_MAX_SIZE: int = 12
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def jwks_url(self) -> str:
        if self.SUPABASE_JWKS_URL:
            return self.SUPABASE_JWKS_URL
        if not self.SUPABASE_URL:
            raise ValueError("SUPABASE_URL or SUPABASE_JWKS_URL must be configured")
        base = self.SUPABASE_URL.rstrip("/")
        return f"{base}/auth/v1/.well-known/jwks.json"

    def outreach_cooldown(self) -> timedelta:
        return timedelta(days=self.OUTREACH_COOLDOWN_DAYS)

    def follow_up_delay(self) -> timedelta:
        return timedelta(hours=self.FOLLOW_UP_DELAY_HOURS)

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Development runs with a smaller pool and a shorter timeout.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update({"min_size": 2, "max_size": 6, "timeout": 15.0})

        return config


settings = Settings()
