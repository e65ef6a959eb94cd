"""HTTP client for the login and authorisation-check endpoints."""

from __future__ import annotations

from typing import Any

import requests

from a2hmarket.auth_types import CheckAuthResponse, InitLoginRequest, InitLoginResponse
from a2hmarket.config import Config
from a2hmarket.errors import auth_failed_error, network_error
from a2hmarket.logger import get_logger


class AuthClient:
    """Talks to ``/v1/auth/*`` on the configured base URL."""

    def __init__(self, cfg: Config):
        self.base_url = cfg.base_url
        self.timeout = float(cfg.auth_timeout) if cfg.auth_timeout > 0 else None
        self._session = requests.Session()

    def _decode(self, resp: requests.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise network_error("解析响应失败", exc) from exc
        if not isinstance(data, dict):
            raise network_error("解析响应失败", ValueError("response is not a JSON object"))
        return data

    def init_login(self, req: InitLoginRequest) -> InitLoginResponse:
        """Start a login; raises AppError on network, parse or server error."""
        url = f"{self.base_url}/v1/auth/init-login"
        form = {"timestamp": str(req.timestamp), "mac": req.mac, "feishu_user_id": req.feishu_user_id}
        get_logger().debug("发送初始化登录请求: %s", url)
        try:
            resp = self._session.post(url, data=form, timeout=self.timeout)
        except requests.RequestException as exc:
            raise network_error("初始化登录请求失败", exc) from exc
        result = InitLoginResponse.from_dict(self._decode(resp))
        if result.error:
            raise auth_failed_error(result.error)
        return result

    def check_auth(self, code: str) -> CheckAuthResponse:
        """Query the authorisation state for ``code``."""
        url = f"{self.base_url}/v1/auth/check"
        get_logger().debug("发送检查鉴权请求: %s?code=%s", url, code)
        try:
            resp = self._session.get(url, params={"code": code}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise network_error("检查鉴权请求失败", exc) from exc
        return CheckAuthResponse.from_dict(self._decode(resp))