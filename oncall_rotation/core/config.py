# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Core configuration, all env-driven, zero hardcode.
Single source of truth for every tunable parameter.
"""

import json
import os


def _json_env(name: str, default: str) -> dict[str, str]:
    raw = os.getenv(name, default)
    try:
        value = json.loads(raw)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


class Settings:
    """Application settings loaded from environment variables."""

    SERVICE_NAME: str = os.getenv("SERVICE_NAME", "rotation-service")
    SERVICE_VERSION: str = os.getenv("SERVICE_VERSION", "1.0.0")
    SERVICE_PORT: int = int(os.getenv("SERVICE_PORT", "8005"))

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./rotation.db")
    POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "300"))
    DB_MAX_RETRIES: int = int(os.getenv("DB_MAX_RETRIES", "3"))
    DB_RETRY_BACKOFF: float = float(os.getenv("DB_RETRY_BACKOFF", "0.5"))

    ROTATION_TIMEZONE: str = os.getenv("ROTATION_TIMEZONE", "America/Los_Angeles")
    CUTOVER_HOUR: int = int(os.getenv("CUTOVER_HOUR", "8"))
    NOTIFICATION_DELIVERY_HOUR: int = int(os.getenv("NOTIFICATION_DELIVERY_HOUR", "8"))

    ROTATION_ROLES: list[str] = [
        r.strip()
        for r in os.getenv("ROTATION_ROLES", "account,producer,po,uiEng,beEng").split(",")
        if r.strip()
    ]
    FALLBACK_USERS: dict[str, str] = _json_env("FALLBACK_USERS", "{}")

    CRON_SECRET: str = os.getenv("CRON_SECRET", "")
    CRON_SIGNATURE_HEADER: str = os.getenv("CRON_SIGNATURE_HEADER", "X-Cron-Signature")

    SLACK_BOT_TOKEN: str = os.getenv("SLACK_BOT_TOKEN", "")
    SLACK_API_URL: str = os.getenv("SLACK_API_URL", "https://slack.com/api")
    ADMIN_CHANNEL_ID: str = os.getenv("ADMIN_CHANNEL_ID", "")
    TRIAGE_CHANNEL_ID: str = os.getenv("TRIAGE_CHANNEL_ID", "")
    TRIAGE_CHANNEL_NAME: str = os.getenv("TRIAGE_CHANNEL_NAME", "#lcom-bug-triage")
    ONCALL_USERGROUP_ID: str = os.getenv("ONCALL_USERGROUP_ID", "")
    DISPATCH_TIMEOUT: float = float(os.getenv("DISPATCH_TIMEOUT", "3.0"))
    DISPATCH_MAX_RETRIES: int = int(os.getenv("DISPATCH_MAX_RETRIES", "3"))
    DISPATCH_RETRY_BACKOFF: float = float(os.getenv("DISPATCH_RETRY_BACKOFF", "0.5"))

    REDIS_URL: str = os.getenv("REDIS_URL", "")
    CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "300"))
    CACHE_KEY_PREFIX: str = os.getenv("CACHE_KEY_PREFIX", "rotation:")

    DEFAULT_HISTORY_LIMIT: int = int(os.getenv("DEFAULT_HISTORY_LIMIT", "100"))
    STATE_LOCK_TIMEOUT: float = float(os.getenv("STATE_LOCK_TIMEOUT", "30"))

    CORS_ORIGINS: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
