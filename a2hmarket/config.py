"""CLI configuration: defaults, YAML config file and environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from a2hmarket.errors import config_error

DEFAULT_BASE_URL = "https://a2hmarket.ai"
DEFAULT_API_VERSION = "v1"
DEFAULT_CONFIG_DIR = ".a2hmarket"
DEFAULT_CREDENTIALS_FILE = "credentials.json"
SYSTEM_CONFIG_DIR = "/etc/a2hmarket/"

_ENV_BINDINGS = {
    "base_url": "A2H_BASE_URL",
    "api_version": "A2H_API_VERSION",
    "debug": "A2H_DEBUG",
    "mqtt_timeout": "A2H_MQTT_TIMEOUT",
    "auth_timeout": "A2H_AUTH_TIMEOUT",
}
_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _home_dir() -> Path:
    try:
        return Path.home()
    except RuntimeError:
        return Path(".")


@dataclass
class Config:
    """Settings for the command-line client."""

    base_url: str = DEFAULT_BASE_URL
    api_version: str = DEFAULT_API_VERSION
    config_dir: str = field(default_factory=lambda: str(_home_dir() / DEFAULT_CONFIG_DIR))
    debug: bool = False
    mqtt_timeout: int = 30
    auth_timeout: int = 300

    def auth_url(self) -> str:
        return f"{self.base_url}/{self.api_version}/auth"

    def init_login_url(self) -> str:
        return f"{self.base_url}/{self.api_version}/auth/init-login"

    def check_auth_url(self) -> str:
        return f"{self.base_url}/{self.api_version}/auth/check"

    def credentials_path(self) -> str:
        return os.path.join(self.config_dir, DEFAULT_CREDENTIALS_FILE)


def default_config() -> Config:
    """Configuration with built-in defaults only."""
    return Config()


def _read_config_file(dirs: list[str]) -> dict[str, Any]:
    for directory in dirs:
        path = Path(directory) / "config.yaml"
        if not path.is_file():
            continue
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError):
            return {}
        return data if isinstance(data, dict) else {}
    return {}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value)
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"invalid boolean: {value!r}")


def load_config() -> Config:
    """Load defaults, then config.yaml, then A2H_* environment variables.

    Creates the config directory if missing. Raises AppError on bad values.
    """
    cfg = default_config()
    values: dict[str, Any] = dict(_read_config_file([cfg.config_dir, SYSTEM_CONFIG_DIR]))
    for key, env_name in _ENV_BINDINGS.items():
        if env_name in os.environ:
            values[key] = os.environ[env_name]

    try:
        if "base_url" in values:
            cfg.base_url = str(values["base_url"])
        if "api_version" in values:
            cfg.api_version = str(values["api_version"])
        if "config_dir" in values:
            cfg.config_dir = str(values["config_dir"])
        if "debug" in values:
            cfg.debug = _to_bool(values["debug"])
        if "mqtt_timeout" in values:
            cfg.mqtt_timeout = int(values["mqtt_timeout"])
        if "auth_timeout" in values:
            cfg.auth_timeout = int(values["auth_timeout"])
    except (TypeError, ValueError) as exc:
        raise config_error("无法解析配置", exc) from exc

    try:
        os.makedirs(cfg.config_dir, mode=0o755, exist_ok=True)
    except OSError as exc:
        raise config_error("无法创建配置目录", exc) from exc
    return cfg