"""Request and response shapes of the login/authorisation endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class InitLoginRequest:
    timestamp: int
    mac: str
    feishu_user_id: str = ""


@dataclass
class InitLoginResponse:
    code: str = ""
    url: str = ""
    error: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InitLoginResponse:
        return cls(
            code=str(data.get("code") or ""),
            url=str(data.get("url") or ""),
            error=str(data.get("error") or ""),
        )


@dataclass
class AuthCredentials:
    """Credentials as returned by the server (``agentId`` / ``secret``)."""

    agent_id: str = ""
    agent_key: str = ""
    api_url: str = ""
    mqtt_url: str = ""
    expire_at: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthCredentials:
        return cls(
            agent_id=str(data.get("agentId") or ""),
            agent_key=str(data.get("secret") or ""),
            api_url=str(data.get("api_url") or ""),
            mqtt_url=str(data.get("mqtt_url") or ""),
            expire_at=str(data.get("expire_at") or ""),
        )


@dataclass
class CheckAuthResponse:
    """``code`` 200 without data means pending; with data, authorised."""

    code: str = ""
    message: str = ""
    data: AuthCredentials | None = None

    def is_success(self) -> bool:
        return self.code == "200"

    def is_authorized(self) -> bool:
        return self.is_success() and self.data is not None and self.data.agent_id != ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckAuthResponse:
        payload = data.get("data")
        return cls(
            code=str(data.get("code") or ""),
            message=str(data.get("message") or ""),
            data=AuthCredentials.from_dict(payload) if isinstance(payload, dict) else None,
        )