"""Tests for environment configuration."""

from florist_server.config import Settings


def test_defaults(monkeypatch):
    for name in ("FLORIST_API_KEY", "FLORIST_API_PASSWORD", "FLORIST_STOREFRONT_API", "PORT"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.storefront_api == "http://localhost:8080/api"
    assert settings.port == 8080
    assert not settings.has_credentials


def test_values_from_environment(monkeypatch):
    monkeypatch.setenv("FLORIST_API_KEY", "key123")
    monkeypatch.setenv("FLORIST_API_PASSWORD", "secret")
    monkeypatch.setenv("FLORIST_TOTAL_DEBOUNCE", "0.25")
    monkeypatch.setenv("PORT", "9090")

    settings = Settings.from_env()

    assert settings.has_credentials
    assert settings.total_debounce == 0.25
    assert settings.port == 9090


def test_summary_does_not_reveal_secrets(monkeypatch, caplog):
    caplog.set_level("INFO")
    Settings(api_key="key123", api_password="secret").log_summary()

    assert "key..." in caplog.text
    assert "secret" not in caplog.text
