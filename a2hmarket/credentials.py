"""Persisted agent credentials and listener settings."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from a2hmarket.errors import credential_error
from a2hmarket.logger import get_logger

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``12h``, ``1h30m`` or ``500ms``; raise ValueError otherwise."""
    s = text
    sign = 1
    if s[:1] in "+-" and s:
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    if s == "0":
        return timedelta(0)
    if not s:
        raise ValueError(f"invalid duration {text!r}")
    pos = 0
    seconds = 0.0
    while pos < len(s):
        match = _DURATION_PART.match(s, pos)
        if not match:
            raise ValueError(f"invalid duration {text!r}")
        seconds += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    return timedelta(seconds=sign * seconds)


def parse_rfc3339(text: str) -> datetime:
    """Parse an RFC 3339 timestamp; raise ValueError if malformed."""
    if not re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})$", text):
        raise ValueError(f"invalid RFC 3339 time {text!r}")
    value = text[:-1] + "+00:00" if text.endswith("Z") else text
    main, _, rest = value.partition(".")
    if rest:
        digits = re.match(r"\d+", rest).group(0)
        value = f"{main}.{digits[:6].ljust(6, '0')}{rest[len(digits):]}"
    return datetime.fromisoformat(value)


def format_rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


@dataclass
class ListenerConfig:
    """Optional listener settings; intervals are duration strings."""

    update_check_interval_spec: str = ""
    flush_interval_spec: str = ""

    def update_check_interval(self) -> timedelta:
        """Interval between update checks; 12h when unset, invalid or under a minute."""
        return self._parse(self.update_check_interval_spec, timedelta(hours=12), timedelta(minutes=1))

    def flush_interval(self) -> timedelta:
        """Outbox flush interval; 5s when unset, invalid or under a second."""
        return self._parse(self.flush_interval_spec, timedelta(seconds=5), timedelta(seconds=1))

    @staticmethod
    def _parse(spec: str, default: timedelta, minimum: timedelta) -> timedelta:
        if not spec:
            return default
        try:
            value = parse_duration(spec)
        except ValueError:
            return default
        return default if value < minimum else value

    def to_dict(self) -> dict[str, str]:
        out = {}
        if self.update_check_interval_spec:
            out["update_check_interval"] = self.update_check_interval_spec
        if self.flush_interval_spec:
            out["flush_interval"] = self.flush_interval_spec
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ListenerConfig:
        return cls(
            update_check_interval_spec=str(data.get("update_check_interval") or ""),
            flush_interval_spec=str(data.get("flush_interval") or ""),
        )


@dataclass
class Credentials:
    """Agent credentials as stored on disk."""

    agent_id: str = ""
    agent_key: str = ""
    api_url: str = ""
    mqtt_url: str = ""
    expire_at: datetime = ZERO_TIME
    created_at: datetime = ZERO_TIME
    push_enabled: bool = False
    listener: ListenerConfig | None = None

    def is_expired(self) -> bool:
        expire = self.expire_at
        if expire.tzinfo is None:
            expire = expire.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) > expire

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "agent_id": self.agent_id,
            "agent_key": self.agent_key,
            "api_url": self.api_url,
            "mqtt_url": self.mqtt_url,
            "expire_at": format_rfc3339(self.expire_at),
            "created_at": format_rfc3339(self.created_at),
            "push_enabled": self.push_enabled,
        }
        if self.listener is not None:
            out["listener"] = self.listener.to_dict()
        return out

    def save(self, path: str) -> None:
        """Write the credentials as indented JSON with mode 0600."""
        data = json.dumps(self.to_dict(), indent=2, ensure_ascii=False)
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
            os.chmod(path, 0o600)
        except OSError as exc:
            raise credential_error("保存凭证失败", exc) from exc
        get_logger().info("凭证已保存到: %s", path)


def load_credentials(path: str) -> Credentials:
    """Read credentials; ``push_enabled`` defaults to True when absent."""
    if not os.path.exists(path):
        raise credential_error("凭证文件不存在")
    try:
        with open(path, encoding="utf-8") as fh:
            raw = fh.read()
    except OSError as exc:
        raise credential_error("读取凭证文件失败", exc) from exc
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("not a JSON object")
    except ValueError as exc:
        raise credential_error("解析凭证文件失败", exc) from exc

    push = data.get("push_enabled")
    listener = data.get("listener")
    creds = Credentials(
        agent_id=str(data.get("agent_id") or ""),
        agent_key=str(data.get("agent_key") or ""),
        api_url=str(data.get("api_url") or ""),
        mqtt_url=str(data.get("mqtt_url") or ""),
        push_enabled=True if push is None else bool(push),
        listener=ListenerConfig.from_dict(listener) if isinstance(listener, dict) else None,
    )
    expires = data.get("expires_at")
    if isinstance(expires, str) and expires:
        try:
            creds.expire_at = parse_rfc3339(expires)
        except ValueError:
            pass
    return creds


def delete_credentials(path: str) -> None:
    """Remove the credentials file; a missing file is not an error."""
    if not os.path.exists(path):
        return
    try:
        os.remove(path)
    except OSError as exc:
        raise credential_error("删除凭证文件失败", exc) from exc
    get_logger().info("凭证已删除: %s", path)