from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # core
    ENV: str = "dev"
    API_PREFIX: str = "/api"

    # database & redis
    # Plain strings so sqlite:/// and redis:// URLs are always accepted
    DATABASE_URL: str
    REDIS_URL: str = "redis://localhost:6379/0"

    # deep research provider
    OPENAI_API_KEY: str | None = None
    DEEP_RESEARCH_MODEL: str = "o4-mini-deep-research"
    # Job-level ceiling; the SDK timeout is never lower than DEEP_RESEARCH_SDK_MIN_TIMEOUT_SECONDS
    DEEP_RESEARCH_TIMEOUT_SECONDS: int = 1200
    DEEP_RESEARCH_SDK_MIN_TIMEOUT_SECONDS: int = 3600
    DEEP_RESEARCH_SUBMIT_MAX_RETRIES: int = 3
    LLM_PRICEBOOK_JSON: str | None = None
    WEB_SEARCH_PER_CALL_USD: float = 0.01

    # keyword analytics
    KEYWORD_ANALYTICS_API_URL: str | None = None
    KEYWORD_ANALYTICS_API_KEY: str | None = None
    KEYWORD_ANALYTICS_TIMEOUT_SECONDS: int = 30
    KEYWORD_ANALYTICS_COST_PER_CALL: float = 0.35
    KEYWORD_CACHE_TTL_HOURS: int = 24

    # auth / security
    API_AUTH_KEY: str | None = None
    FRONTEND_ORIGIN: str | None = None
    # Explicit debug-only switch for wide-open CORS in non-prod envs
    CORS_ALLOW_ALL_ORIGINS: bool = False

    # rate limiting ("redis" or "memory")
    RATE_LIMIT_BACKEND: str = "redis"
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_KEYWORDS_PER_WINDOW: int = 10
    RATE_LIMIT_RESEARCH_PER_WINDOW: int = 5

    # data retention (in days)
    RESEARCH_RETENTION_DAYS: int = 90

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
