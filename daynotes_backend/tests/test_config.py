import pytest

from daynotes_backend.config import DEFAULT_BACKUP_INTERVAL_SECONDS, load_settings, parse_chat_ids
from daynotes_backend.errors import ConfigurationError

BASE_ENV = {
    "DATABASE_URL": "sqlite:///notes.db",
    "TELEGRAM_BOT_TOKEN": "123456:TOKEN",
    "TELEGRAM_CHAT_IDS": "-1001, 42",
}


def test_minimal_settings_use_defaults():
    settings = load_settings(dict(BASE_ENV))
    assert settings.database_url == "sqlite:///notes.db"
    assert settings.telegram_chat_ids == (-1001, 42)
    assert settings.backup_interval_seconds == DEFAULT_BACKUP_INTERVAL_SECONDS
    assert settings.delivery_timeout_seconds == 60
    assert (settings.host, settings.port) == ("127.0.0.1", 3000)


def test_overrides():
    env = dict(BASE_ENV, BACKUP_INTERVAL_SECONDS="3600", DELIVERY_TIMEOUT_SECONDS="2.5", PORT="8080", LOG_LEVEL="debug")
    settings = load_settings(env)
    assert settings.backup_interval_seconds == 3600
    assert settings.delivery_timeout_seconds == 2.5
    assert settings.port == 8080
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("missing", ["DATABASE_URL", "TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_IDS"])
def test_missing_required_variable_is_fatal(missing):
    env = dict(BASE_ENV)
    del env[missing]
    with pytest.raises(ConfigurationError, match=missing):
        load_settings(env)


@pytest.mark.parametrize(
    "override",
    [
        {"TELEGRAM_CHAT_IDS": "abc, ,"},
        {"BACKUP_INTERVAL_SECONDS": "daily"},
        {"BACKUP_INTERVAL_SECONDS": "0"},
        {"DELIVERY_TIMEOUT_SECONDS": "-1"},
        {"PORT": "http"},
    ],
)
def test_invalid_values_are_fatal(override):
    with pytest.raises(ConfigurationError):
        load_settings(dict(BASE_ENV, **override))


def test_parse_chat_ids_skips_junk_and_duplicates():
    assert parse_chat_ids("1, x, 2,,1, -3 ") == (1, 2, -3)
