import pytest

from phoneauth.config import Settings, parse_duration
from phoneauth.errors import ConfigError
from phoneauth.main import create_app


@pytest.mark.parametrize(
    "raw, expected",
    [("15m", 900), ("168h", 604800), ("1h30m", 5400), ("45s", 45), ("300", 300)],
)
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == expected


@pytest.mark.parametrize("raw", ["", "ten minutes", "15x", "m15"])
def test_parse_duration_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_duration(raw)


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("JWT_SECRET_KEY", "x" * 40)
    monkeypatch.setenv("JWT_ACCESS_EXPIRY", "5m")
    monkeypatch.setenv("OTP_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("OTP_DEBUG", "yes")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")

    settings = Settings()

    assert settings.jwt_secret == "x" * 40
    assert settings.access_token_ttl_seconds == 300
    assert settings.otp_max_attempts == 3
    assert settings.otp_debug is True
    assert settings.cors_origins == ("http://a.test", "http://b.test")


def test_invalid_integer_in_environment(monkeypatch):
    monkeypatch.setenv("OTP_LENGTH", "six")
    with pytest.raises(ConfigError):
        Settings()


def test_missing_secret_fails_validation(settings):
    with pytest.raises(ConfigError, match="required"):
        Settings(jwt_secret="", store_backend="sql").validate()


def test_short_secret_fails_validation():
    with pytest.raises(ConfigError, match="32 bytes"):
        Settings(jwt_secret="too-short", store_backend="sql").validate()


def test_non_hmac_algorithm_rejected():
    with pytest.raises(ConfigError):
        Settings(jwt_secret="s" * 32, jwt_algorithm="RS256", store_backend="sql").validate()


def test_app_refuses_to_start_with_short_secret(store):
    with pytest.raises(ConfigError):
        create_app(Settings(jwt_secret="short", store_backend="sql"), store=store)


def test_valid_settings_pass(settings):
    assert settings.validate() is settings
