import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    seed_database: bool
    log_level: str
    csrf_enabled: bool


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getflag(name: str, default: str = "") -> bool:
    return _getenv(name, default).lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///swiftship.db"),
        seed_database=_getflag("SEED_DATABASE"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        csrf_enabled=_getflag("CSRF_ENABLED", "true"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "SEED_DATABASE": s.seed_database,
        "LOG_LEVEL": s.log_level,
        "CSRF_ENABLED": s.csrf_enabled,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # JSON bodies only; nothing here needs more than 1MB
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
