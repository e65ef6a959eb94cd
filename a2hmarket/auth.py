"""Login flow: auth-code generation, authorisation polling and stored credentials."""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timedelta, timezone

from a2hmarket.auth_client import AuthClient
from a2hmarket.auth_types import InitLoginRequest, InitLoginResponse
from a2hmarket.config import Config
from a2hmarket.credentials import Credentials, delete_credentials, load_credentials, parse_rfc3339
from a2hmarket.errors import auth_failed_error, credential_error
from a2hmarket.logger import get_logger

DEFAULT_API_URL = "https://api.a2hmarket.ai"
DEFAULT_MQTT_URL = "mqtts://post-cn-e4k4o78q702.mqtt.aliyuncs.com:8883"


def get_mac_address() -> str:
    """Hardware address of this host as ``aa:bb:cc:dd:ee:ff``."""
    node = uuid.getnode()
    # A set multicast bit means the value was generated randomly, not read from a NIC.
    if (node >> 40) & 1:
        raise auth_failed_error("无法获取MAC地址")
    mac = ":".join(f"{(node >> shift) & 0xFF:02x}" for shift in range(40, -1, -8))
    get_logger().debug("获取到MAC地址: %s", mac)
    return mac


def parse_urls(api_url: str) -> tuple[str, str]:
    """Strip the scheme from ``api_url`` and derive the matching MQTT URL."""
    api_base = api_url.removeprefix("https://").removeprefix("http://")
    mqtt_url = "mqtts://" + api_base.replace("api.", "mqtt.", 1)
    if not mqtt_url.endswith(":8883"):
        mqtt_url += ":8883"
    return api_base, mqtt_url


class Auth:
    """Authorisation service bound to a configuration."""

    def __init__(self, cfg: Config):
        self.config = cfg
        self.client = AuthClient(cfg)

    def gen_auth_code(self, feishu_user_id: str) -> InitLoginResponse:
        log = get_logger()
        mac = get_mac_address()
        timestamp = int(time.time())
        log.info("正在生成鉴权码...")
        log.info("MAC: %s", mac)
        log.info("Timestamp: %d", timestamp)
        log.info("FeishuUserID: %s", feishu_user_id)
        resp = self.client.init_login(
            InitLoginRequest(timestamp=timestamp, mac=mac, feishu_user_id=feishu_user_id)
        )
        log.info("鉴权码生成成功!")
        log.info("Code: %s", resp.code)
        log.info("URL: %s", resp.url)
        return resp

    def get_auth(self, code: str, poll: bool = False, interval: int = 2) -> Credentials:
        """Check (or poll) the authorisation; save and return credentials once granted."""
        log = get_logger()
        if interval <= 0:
            interval = 2
        while True:
            log.info("正在检查鉴权状态...")
            resp = self.client.check_auth(code)
            if not resp.is_success():
                raise auth_failed_error(f"服务器错误 (code={resp.code}): {resp.message}")

            if resp.is_authorized():
                data = resp.data
                now = datetime.now(timezone.utc)
                try:
                    expire_at = parse_rfc3339(data.expire_at)
                except ValueError as exc:
                    log.warning("无法解析过期时间，使用默认: %s", exc)
                    try:
                        expire_at = now.replace(year=now.year + 1)
                    except ValueError:
                        expire_at = now + timedelta(days=366)
                creds = Credentials(
                    agent_id=data.agent_id,
                    agent_key=data.agent_key,
                    api_url=data.api_url or DEFAULT_API_URL,
                    mqtt_url=data.mqtt_url or DEFAULT_MQTT_URL,
                    expire_at=expire_at,
                    created_at=now,
                )
                creds.save(self.config.credentials_path())
                log.info("授权成功!")
                log.info("AgentID: %s", creds.agent_id)
                log.info("APIURL: %s", creds.api_url)
                log.info("MQTTURL: %s", creds.mqtt_url)
                return creds

            log.info("等待授权中 (pending)...")
            if not poll:
                raise auth_failed_error("等待授权中，请使用 --poll 参数轮询")
            log.info("%d秒后重试...", interval)
            time.sleep(interval)

    def get_saved_credentials(self) -> Credentials:
        creds = load_credentials(self.config.credentials_path())
        if creds.is_expired():
            get_logger().warning("凭证已过期")
            raise credential_error("凭证已过期")
        return creds

    def clear_credentials(self) -> None:
        delete_credentials(self.config.credentials_path())