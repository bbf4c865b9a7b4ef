from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it's easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: str = "false") -> bool:
    raw = _getenv(name, default).lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _getint(name: str, default: str) -> int:
    raw = _getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    jwt_public_key: str | None = None
    cert_quiz_weight: float = 0.4
    cert_validity_days: int = 0
    attempt_sweep_interval: int = 60

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
    def cert_assignment_weight(self) -> float:
        return round(1.0 - self.cert_quiz_weight, 6)


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getint("PORT", "8000")
    log_json = _getbool("LOG_JSON")

    weight_raw = _getenv("CERT_QUIZ_WEIGHT", "0.4")
    try:
        quiz_weight = float(weight_raw)
    except ValueError:
        raise ValueError(
            f"CERT_QUIZ_WEIGHT must be a number (got {weight_raw!r})"
        ) from None
    if not 0.0 <= quiz_weight <= 1.0:
        raise ValueError(f"CERT_QUIZ_WEIGHT must be within [0, 1] (got {quiz_weight})")

    validity_days = _getint("CERT_VALIDITY_DAYS", "0")
    if validity_days < 0:
        raise ValueError(f"CERT_VALIDITY_DAYS must be >= 0 (got {validity_days})")

    sweep_interval = _getint("ATTEMPT_SWEEP_INTERVAL", "60")
    if sweep_interval < 0:
        raise ValueError(
            f"ATTEMPT_SWEEP_INTERVAL must be >= 0 (got {sweep_interval})"
        )

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None
    jwt_public_key = os.environ.get("JWT_PUBLIC_KEY", "").strip() or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json,
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        jwt_public_key=jwt_public_key,
        cert_quiz_weight=quiz_weight,
        cert_validity_days=validity_days,
        attempt_sweep_interval=sweep_interval,
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
