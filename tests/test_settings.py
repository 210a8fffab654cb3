"""
Tests for environment-driven settings.
"""

import pytest

from ftt.settings import Settings, clear_settings_cache, get_settings


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    for name in (
        "FTT_ENV",
        "FTT_DATABASE_URL",
        "FTT_SHARE_BASE_URL",
        "FTT_SYNC_INTERVAL_SECONDS",
        "FTT_SHARE_TIMEOUT_SECONDS",
        "FTT_LOG_LEVEL",
        "FTT_DEVICE_ROLE",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


def test_local_defaults():
    """Test that a bare environment gives a working local setup."""
    settings = Settings(_env_file=None)

    assert settings.env == "local"
    assert settings.database_url.startswith("sqlite+aiosqlite")
    assert settings.share_base_url == ""
    assert settings.device_role == "instructor"


def test_reads_prefixed_environment(monkeypatch):
    """Test that FTT_* variables are picked up and cached."""
    monkeypatch.setenv("FTT_SHARE_BASE_URL", "https://share.test")
    monkeypatch.setenv("FTT_SYNC_INTERVAL_SECONDS", "15")
    monkeypatch.setenv("FTT_DEVICE_ROLE", "student")

    settings = get_settings()

    assert settings.share_base_url == "https://share.test"
    assert settings.sync_interval_seconds == 15.0
    assert settings.device_role == "student"
    assert get_settings() is settings


def test_prod_requires_share_url_and_server_database(monkeypatch):
    """Test that every prod problem is reported in one error."""
    monkeypatch.setenv("FTT_ENV", "prod")

    with pytest.raises(ValueError) as exc_info:
        Settings(_env_file=None)

    message = str(exc_info.value)
    assert "FTT_SHARE_BASE_URL" in message
    assert "FTT_DATABASE_URL" in message


def test_prod_with_full_config(monkeypatch):
    """Test a valid prod configuration."""
    monkeypatch.setenv("FTT_ENV", "prod")
    monkeypatch.setenv("FTT_SHARE_BASE_URL", "https://share.test")
    monkeypatch.setenv("FTT_DATABASE_URL", "postgresql+asyncpg://ftt@db/ftt")

    settings = Settings(_env_file=None)

    assert settings.env == "prod"


@pytest.mark.parametrize(
    "name, value",
    [
        ("FTT_SYNC_INTERVAL_SECONDS", "0"),
        ("FTT_SHARE_TIMEOUT_SECONDS", "-1"),
        ("FTT_LOG_LEVEL", "LOUD"),
    ],
)
def test_invalid_values_rejected(monkeypatch, name, value):
    """Test that nonsensical values fail at startup."""
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=name):
        Settings(_env_file=None)


def test_unknown_device_role_rejected(monkeypatch):
    """Test that the device role is one of the two sides of a share."""
    monkeypatch.setenv("FTT_DEVICE_ROLE", "examiner")

    with pytest.raises(ValueError, match="device_role"):
        Settings(_env_file=None)
