from __future__ import annotations

import pytest

from app.core.config import AppEnv, Settings, load_settings

# ---- valid values ----


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("LOG_LEVEL", "error")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "error"


def test_load_settings_normalizes_case(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "PROD")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "debug"


def test_load_settings_strips_whitespace(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "  test  ")
    monkeypatch.setenv("LOG_LEVEL", "  warning  ")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "warning"


# ---- invalid APP_ENV ----


def test_load_settings_rejects_invalid_app_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("LOG_LEVEL", "info")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_load_settings_rejects_empty_app_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


# ---- invalid LOG_LEVEL ----


def test_load_settings_rejects_invalid_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


def test_load_settings_rejects_empty_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
    )


def test_settings_is_dev() -> None:
    s = _make_settings("dev")
    assert s.is_dev is True
    assert s.is_test is False
    assert s.is_prod is False


def test_settings_is_test() -> None:
    s = _make_settings("test")
    assert s.is_dev is False
    assert s.is_test is True
    assert s.is_prod is False


def test_settings_is_prod() -> None:
    s = _make_settings("prod")
    assert s.is_dev is False
    assert s.is_test is False
    assert s.is_prod is True


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.app_env = "prod"  # type: ignore[misc]


def test_settings_assignment_weight_complements_quiz_weight() -> None:
    s = _make_settings()
    assert s.cert_quiz_weight == 0.4
    assert s.cert_assignment_weight == 0.6


# ---- assessment settings ----


def test_load_settings_assessment_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("CERT_QUIZ_WEIGHT", "CERT_VALIDITY_DAYS", "ATTEMPT_SWEEP_INTERVAL"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.cert_quiz_weight == 0.4
    assert settings.cert_validity_days == 0
    assert settings.attempt_sweep_interval == 60


def test_load_settings_reads_assessment_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CERT_QUIZ_WEIGHT", "0.25")
    monkeypatch.setenv("CERT_VALIDITY_DAYS", "365")
    monkeypatch.setenv("ATTEMPT_SWEEP_INTERVAL", "0")
    settings = load_settings()
    assert settings.cert_quiz_weight == 0.25
    assert settings.cert_assignment_weight == 0.75
    assert settings.cert_validity_days == 365
    assert settings.attempt_sweep_interval == 0


@pytest.mark.parametrize("raw", ["heavy", "1.5", "-0.1"])
def test_load_settings_rejects_bad_quiz_weight(
    monkeypatch: pytest.MonkeyPatch, raw: str
) -> None:
    monkeypatch.setenv("CERT_QUIZ_WEIGHT", raw)
    with pytest.raises(ValueError, match="CERT_QUIZ_WEIGHT"):
        load_settings()


def test_load_settings_rejects_negative_validity(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CERT_VALIDITY_DAYS", "-1")
    with pytest.raises(ValueError, match="CERT_VALIDITY_DAYS must be >= 0"):
        load_settings()


def test_load_settings_rejects_non_integer_sweep_interval(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("ATTEMPT_SWEEP_INTERVAL", "soon")
    with pytest.raises(ValueError, match="ATTEMPT_SWEEP_INTERVAL must be an integer"):
        load_settings()


def test_load_settings_blank_urls_mean_in_memory(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("DATABASE_URL", "  ")
    monkeypatch.setenv("REDIS_URL", "")
    settings = load_settings()
    assert settings.database_url is None
    assert settings.redis_url is None
