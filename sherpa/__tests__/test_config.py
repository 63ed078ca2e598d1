import pytest
from pydantic_settings import BaseSettings

from sherpa.config import (
    ConfigBase,
    get_config,
    get_config_or_default,
    register_config_in_context,
    unregister_config,
)


class DatabaseSettings(BaseSettings):
    DATABASE_URL: str = "postgresql://localhost/app"


class AppConfig(ConfigBase, DatabaseSettings):
    pass


def test_merge_configs():
    config = AppConfig(DATABASE_URL="postgresql://db/app", RENDER_MODE="stream")

    assert config.DATABASE_URL == "postgresql://db/app"
    assert config.RENDER_MODE == "stream"
    assert get_config() is config


def test_only_one_config():
    ConfigBase(ENVIRONMENT="production")

    with pytest.raises(ValueError, match="already registered"):
        ConfigBase(ENVIRONMENT="staging")


def test_get_config_requires_registration():
    with pytest.raises(ValueError, match="Configuration not registered"):
        get_config()


def test_config_or_default_does_not_register():
    config = get_config_or_default()

    assert config.RENDER_MODE == "string"
    assert config.development_enabled
    with pytest.raises(ValueError):
        get_config()


def test_environment_variables(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SHERPA_RENDER_MODE", "stream")
    monkeypatch.setenv("SHERPA_ENVIRONMENT", "production")
    monkeypatch.setenv("SHERPA_SLOW_RENDER_THRESHOLD", "0.5")

    config = ConfigBase()
    assert config.RENDER_MODE == "stream"
    assert not config.development_enabled
    assert config.SLOW_RENDER_THRESHOLD == 0.5


def test_register_config_in_context():
    outer = ConfigBase()
    unregister_config()
    inner = ConfigBase(ENVIRONMENT="production")
    unregister_config()

    with register_config_in_context(inner):
        assert get_config() is inner
    with pytest.raises(ValueError):
        get_config()

    with register_config_in_context(outer):
        assert get_config() is outer
