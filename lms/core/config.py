from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./lms-dev.db"
_TRUTHY = ("1", "true", "yes", "on")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _getbool(name: str) -> bool:
    return _getenv(name, "").lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str
    redis_url: str | None

    # payment provider
    stripe_secret_key: str | None
    stripe_webhook_secret: str | None

    # access control
    admin_emails: frozenset[str]
    admin_open: bool
    entitlements_enforce: bool
    track_public: bool

    debug_errors: bool
    app_base_url: str
    cert_asset_base: str

    jwt_private_key: str | None = None
    jwt_public_key: str | None = None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def is_admin_email(self, email: str | None) -> bool:
        if not email:
            return False
        return email.strip().lower() in self.admin_emails


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    database_url = _getenv("DATABASE_URL", "") or _DEFAULT_DATABASE_URL
    if app_env_raw == "prod" and database_url.startswith("sqlite"):
        raise ValueError("DATABASE_URL must point at PostgreSQL when APP_ENV=prod")

    admin_emails = frozenset(
        e.strip().lower() for e in _getenv("ADMIN_EMAILS", "").split(",") if e.strip()
    )

    app_base_url = _getenv("APP_BASE_URL", "http://localhost:8000").rstrip("/")
    cert_asset_base = (
        _getenv("CERT_ASSET_BASE", "") or f"{app_base_url}/certificates"
    ).rstrip("/")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON"),
        port=port,
        database_url=database_url,
        redis_url=_getenv("REDIS_URL", "") or None,
        stripe_secret_key=_getenv("STRIPE_SECRET_KEY", "") or None,
        stripe_webhook_secret=_getenv("STRIPE_WEBHOOK_SECRET", "") or None,
        admin_emails=admin_emails,
        # the open-admin override never applies in production
        admin_open=_getbool("ADMIN_OPEN") and app_env_raw != "prod",
        entitlements_enforce=_getbool("ENTITLEMENTS_ENFORCE"),
        track_public=_getbool("TRACK_PUBLIC"),
        debug_errors=_getbool("DEBUG_ERRORS"),
        app_base_url=app_base_url,
        cert_asset_base=cert_asset_base,
        jwt_private_key=_getenv("JWT_PRIVATE_KEY", "") or None,
        jwt_public_key=_getenv("JWT_PUBLIC_KEY", "") or None,
    )


SETTINGS = load_settings()
