from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = ConfigDict(env_file=".env", case_sensitive=True)

    DATABASE_URL: str
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Redis configuration for rule-list caching and round-robin rotation
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_CACHE_TTL: int = 300  # 5 minutes for cached active rule lists

    # Workflow engine configuration
    ACTION_TIMEOUT_SECONDS: float = 30.0
    ESCALATION_CHECK_INTERVAL_SECONDS: int = 900
    DEFAULT_REMINDER_DELAY_HOURS: int = 24
    HIGH_VALUE_BALANCE_THRESHOLD: float = 10000.0

    # Transactional email API; an empty URL logs emails instead of sending
    EMAIL_API_URL: str = ""
    EMAIL_API_KEY: str = ""
    EMAIL_FROM: str = "CRM Notifications <notifications@example.com>"

    # CORS configuration: comma-separated origins
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8080"


settings = Settings()
