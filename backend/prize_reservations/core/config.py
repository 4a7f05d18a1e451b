"""
Application configuration using pydantic-settings.
All config is loaded from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Prize Reservations API"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Key-value store: "redis" (local / single node) or "upstash" (managed REST)
    STORE_BACKEND: str = "redis"
    REDIS_URL: str = "redis://localhost:6379/0"
    UPSTASH_REDIS_REST_URL: str = ""
    UPSTASH_REDIS_REST_TOKEN: str = ""

    # Ticket reservation
    TICKET_RESERVATION_TTL: int = 600  # 10 minutes
    MAX_TICKETS_PER_REQUEST: int = 50
    LOCK_SCAN_PAGE_SIZE: int = 100

    # Skill question
    MAX_QCM_ATTEMPTS: int = 3
    QCM_LOCKOUT_SECONDS: int = 900  # 15 minutes
    QCM_PASSED_TTL: int = 3600  # enough time to complete checkout

    # Captcha (Cloudflare Turnstile). Empty secret disables verification.
    TURNSTILE_SECRET_KEY: str = ""

    # Development seed for the in-memory competition directory (load tests)
    DEMO_COMPETITION_ID: str = ""
    DEMO_COMPETITION_TICKETS: int = 100
    DEMO_COMPETITION_ANSWER: int = 0

    # Rate limiting: bucket -> (max requests, window)
    RATE_LIMITS: dict[str, tuple[int, str]] = {
        "login": (5, "15 m"),
        "signup": (3, "1 h"),
        "password-reset": (3, "1 h"),
        "ticket-reserve": (10, "1 m"),
        "checkout": (5, "5 m"),
        "contact": (3, "1 h"),
        "global-auth": (100, "1 m"),
        "global-unauth": (30, "1 m"),
    }

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
    }


@lru_cache()
def get_settings() -> Settings:
    return Settings()
