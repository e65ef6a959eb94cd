"""MQTT client identifiers, topics and the temporary-credential token client.

Token endpoint: ``POST {api_url}/mqtt-token/api/v1/token``, signed like the
platform API.
"""

from __future__ import annotations

import json
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Any

import requests

from a2hmarket.signer import compute_http_signature

TOKEN_PATH = "/mqtt-token/api/v1/token"
MQTT_CLIENT_GROUP_ID = "GID_agent"
TOKEN_REFRESH_THRESHOLD_MS = 30 * 60 * 1000
TOKEN_REQUEST_TIMEOUT = 15.0
TOPIC_PREFIX = "P2P_TOPIC"

_MAX_RESPONSE_BYTES = 16 * 1024
_SEND_SUFFIX_CHARS = "abcdef0123456789"


class MqttTokenError(Exception):
    """A failed request to the MQTT token server."""


@dataclass(frozen=True)
class MqttCredential:
    """Temporary MQTT credential; ``expire_time`` is in Unix milliseconds."""

    client_id: str
    username: str
    password: str
    expire_time: int

    def is_valid(self) -> bool:
        """True while more than 30 minutes of validity remain."""
        remaining_ms = self.expire_time - int(time.time() * 1000)
        return remaining_ms > TOKEN_REFRESH_THRESHOLD_MS


def build_client_id(agent_id: str) -> str:
    """Base client id of an agent, used for its topic: ``GID_agent@@@{agent_id}``."""
    return f"{MQTT_CLIENT_GROUP_ID}@@@{agent_id}"


def build_connection_client_id(agent_id: str, instance_id: str) -> str:
    """Instance-unique client id so that runtimes do not kick each other off."""
    return f"{MQTT_CLIENT_GROUP_ID}@@@{agent_id}_rt_{instance_id}"


def build_send_client_id(agent_id: str) -> str:
    """Short-lived client id with a random 8-character suffix for one-shot publishing."""
    suffix = "".join(_SEND_SUFFIX_CHARS[b % 16] for b in secrets.token_bytes(8))
    return f"{MQTT_CLIENT_GROUP_ID}@@@{agent_id}_pub_{suffix}"


def incoming_topic(agent_id: str) -> str:
    """P2P topic this agent subscribes to."""
    return f"{TOPIC_PREFIX}/p2p/{build_client_id(agent_id)}"


def outgoing_topic(target_agent_id: str) -> str:
    """P2P topic for publishing to ``target_agent_id``."""
    return f"{TOPIC_PREFIX}/p2p/{build_client_id(target_agent_id)}"


def _trim(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError) as exc:
        raise MqttTokenError(f"mqtt token: parse response: {exc}") from exc


class TokenClient:
    """Fetches MQTT credentials and caches them per client id."""

    def __init__(self, api_url: str, agent_id: str, agent_key: str):
        self.api_url = api_url.rstrip("/")
        self.agent_id = agent_id
        self.agent_key = agent_key
        self._session = requests.Session()
        self._lock = threading.Lock()
        self._cache: dict[str, MqttCredential] = {}

    def __enter__(self) -> TokenClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    def get_token(self, client_id: str, force_refresh: bool = False) -> MqttCredential:
        """Cached credential for ``client_id`` if still valid, else a fresh one."""
        with self._lock:
            if not force_refresh:
                cached = self._cache.get(client_id)
                if cached is not None and cached.is_valid():
                    return cached
            self._cache.pop(client_id, None)
            cred = self._fetch(client_id)
            self._cache[client_id] = cred
            return cred

    def invalidate(self, client_id: str) -> None:
        """Drop the cached credential for ``client_id``."""
        with self._lock:
            self._cache.pop(client_id, None)

    def _fetch(self, client_id: str) -> MqttCredential:
        timestamp = str(int(time.time()))
        headers = {
            "Content-Type": "application/json",
            "X-Agent-Id": self.agent_id,
            "X-Timestamp": timestamp,
            "X-Agent-Signature": compute_http_signature(
                self.agent_key, "POST", TOKEN_PATH, self.agent_id, timestamp
            ),
        }
        body = json.dumps({"client_id": client_id}).encode()
        try:
            resp = self._session.post(
                self.api_url + TOKEN_PATH,
                data=body,
                headers=headers,
                timeout=TOKEN_REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise MqttTokenError(f"mqtt token: request failed: {exc}") from exc

        raw = resp.content[:_MAX_RESPONSE_BYTES]
        if resp.status_code != 200:
            text = raw.decode("utf-8", "replace")
            raise MqttTokenError(f"mqtt token: HTTP {resp.status_code}: {_trim(text, 200)}")

        try:
            wrapper = json.loads(raw)
        except ValueError as exc:
            raise MqttTokenError(f"mqtt token: parse response: {exc}") from exc
        if not isinstance(wrapper, dict):
            raise MqttTokenError("mqtt token: parse response: not a JSON object")
        if wrapper.get("success") is not True:
            error = wrapper.get("error")
            raise MqttTokenError(f"mqtt token: server error: {'' if error is None else error}")

        data = wrapper.get("data")
        if not isinstance(data, dict):
            data = {}
        return MqttCredential(
            client_id=str(data.get("client_id") or ""),
            username=str(data.get("username") or ""),
            password=str(data.get("password") or ""),
            expire_time=_int(data.get("expire_time")),
        )