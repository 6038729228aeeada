import os
from functools import lru_cache

from pydantic import BaseModel


class Settings(BaseModel):
    database_url: str = os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://marketplace:marketplace@db:5432/marketplace",
    )
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Auth
    jwt_secret: str = os.getenv("JWT_SECRET", "changeme")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_expire_minutes: int = int(os.getenv("JWT_EXPIRE_MINUTES", "1440"))
    admin_email: str | None = os.getenv("ADMIN_EMAIL")
    admin_password: str | None = os.getenv("ADMIN_PASSWORD")

    # Whish payment gateway
    whish_base_url: str = os.getenv(
        "WHISH_BASE_URL", "https://api.sandbox.whish.money/itel-service/api/"
    )
    whish_channel: str | None = os.getenv("WHISH_CHANNEL")
    whish_secret: str | None = os.getenv("WHISH_SECRET")
    whish_website_url: str | None = os.getenv("WHISH_WEBSITE_URL")
    whish_currency: str = os.getenv("WHISH_CURRENCY", "USD")
    whish_timeout: float = float(os.getenv("WHISH_TIMEOUT", "30"))
    whish_debug: bool = os.getenv("WHISH_DEBUG", "false").lower() == "true"

    # Callback / redirect targets
    base_url: str = os.getenv("BASE_URL", "http://localhost:8000")
    app_url: str = os.getenv("APP_URL", "marketplace://payment")

    # SMTP
    smtp_host: str | None = os.getenv("SMTP_HOST")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_username: str | None = os.getenv("SMTP_USERNAME")
    smtp_password: str | None = os.getenv("SMTP_PASSWORD")
    smtp_from: str = os.getenv("SMTP_FROM", "no-reply@marketplace.local")
    smtp_use_ssl: bool = os.getenv("SMTP_USE_SSL", "false").lower() == "true"

    # Business rules
    referral_points: int = int(os.getenv("REFERRAL_POINTS", "5"))
    otp_ttl_seconds: int = int(os.getenv("OTP_TTL_SECONDS", "900"))
    otp_max_attempts: int = int(os.getenv("OTP_MAX_ATTEMPTS", "3"))
    reset_token_ttl_seconds: int = int(os.getenv("RESET_TOKEN_TTL_SECONDS", "3600"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
