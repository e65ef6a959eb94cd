import os

import pytest

from a2hmarket.config import (
    DEFAULT_API_VERSION,
    DEFAULT_BASE_URL,
    Config,
    default_config,
    load_config,
)
from a2hmarket.errors import AppError, ErrorCode


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    for name in ("A2H_BASE_URL", "A2H_API_VERSION", "A2H_DEBUG", "A2H_MQTT_TIMEOUT", "A2H_AUTH_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def test_default_config_values(home):
    cfg = default_config()
    assert cfg.base_url == DEFAULT_BASE_URL
    assert cfg.api_version == DEFAULT_API_VERSION
    assert cfg.config_dir == os.path.join(str(home), ".a2hmarket")
    assert cfg.debug is False


def test_urls_built_from_base():
    cfg = Config(base_url="http://h", api_version="v1", config_dir="/x")
    assert cfg.auth_url() == "http://h/v1/auth"
    assert cfg.init_login_url() == "http://h/v1/auth/init-login"
    assert cfg.check_auth_url() == "http://h/v1/auth/check"
    assert cfg.credentials_path() == os.path.join("/x", "credentials.json")


def test_load_creates_dir_and_applies_env(home, monkeypatch):
    monkeypatch.setenv("A2H_BASE_URL", "http://localhost:9")
    monkeypatch.setenv("A2H_AUTH_TIMEOUT", "7")
    monkeypatch.setenv("A2H_DEBUG", "true")
    cfg = load_config()
    assert os.path.isdir(cfg.config_dir)
    assert cfg.base_url == "http://localhost:9"
    assert cfg.auth_timeout == 7
    assert cfg.debug is True


def test_load_reads_yaml(home):
    d = home / ".a2hmarket"
    d.mkdir()
    (d / "config.yaml").write_text("mqtt_timeout: 12\napi_version: v2\n")
    cfg = load_config()
    assert cfg.mqtt_timeout == 12
    assert cfg.api_version == "v2"


def test_load_invalid_int_raises(home, monkeypatch):
    monkeypatch.setenv("A2H_MQTT_TIMEOUT", "abc")
    with pytest.raises(AppError) as info:
        load_config()
    assert info.value.code is ErrorCode.CONFIG_ERROR