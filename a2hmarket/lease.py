"""Client for the control-plane lease API that elects the active runtime instance."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import requests

from a2hmarket.signer import compute_http_signature

PATH_ACQUIRE = "/agent-service/api/v1/agent-runtime/lease/acquire"
PATH_HEARTBEAT = "/agent-service/api/v1/agent-runtime/lease/heartbeat"
PATH_TAKEOVER = "/agent-service/api/v1/agent-runtime/lease/takeover"
PATH_STATUS = "/agent-service/api/v1/agent-runtime/lease/status"

REQUEST_TIMEOUT = 10.0
_MAX_RESPONSE_BYTES = 64 * 1024


class Role(str, Enum):
    """Whether this instance is active or on standby."""

    LEADER = "leader"
    FOLLOWER = "follower"
    STANDALONE = "standalone"


class LeaseError(Exception):
    """A failed lease API call."""


def _role(value: Any) -> Role | str:
    text = str(value or "")
    try:
        return Role(text)
    except ValueError:
        return text


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError) as exc:
        raise LeaseError(f"lease: unmarshal data: {exc}") from exc


def _str(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass
class AcquireRequest:
    instance_id: str
    client_id: str
    device_label: str = ""
    hostname: str = ""
    runtime_version: str = ""
    ip: str = ""
    force_takeover: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"instanceId": self.instance_id, "clientId": self.client_id}
        optional = {
            "deviceLabel": self.device_label,
            "hostname": self.hostname,
            "runtimeVersion": self.runtime_version,
            "ip": self.ip,
            "forceTakeover": self.force_takeover,
        }
        out.update({k: v for k, v in optional.items() if v})
        return out


@dataclass
class TakeoverRequest:
    instance_id: str
    client_id: str
    device_label: str = ""
    hostname: str = ""
    runtime_version: str = ""
    ip: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"instanceId": self.instance_id, "clientId": self.client_id}
        optional = {
            "deviceLabel": self.device_label,
            "hostname": self.hostname,
            "runtimeVersion": self.runtime_version,
            "ip": self.ip,
        }
        out.update({k: v for k, v in optional.items() if v})
        return out


@dataclass
class AcquireResult:
    role: Role | str = ""
    epoch: int = 0
    lease_until: int = 0
    leader_instance_id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AcquireResult:
        return cls(
            role=_role(data.get("role")),
            epoch=_int(data.get("epoch")),
            lease_until=_int(data.get("leaseUntil")),
            leader_instance_id=_str(data.get("leaderInstanceId")),
        )


@dataclass
class HeartbeatResult:
    ok: bool = False
    reason: str = ""
    epoch: int = 0
    lease_until: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HeartbeatResult:
        return cls(
            ok=bool(data.get("ok")),
            reason=_str(data.get("reason")),
            epoch=_int(data.get("epoch")),
            lease_until=_int(data.get("leaseUntil")),
        )


@dataclass
class TakeoverResult:
    role: Role | str = ""
    epoch: int = 0
    prev_leader_id: str = ""
    lease_until: int = 0
    leader_instance_id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TakeoverResult:
        return cls(
            role=_role(data.get("role")),
            epoch=_int(data.get("epoch")),
            prev_leader_id=_str(data.get("prevLeaderId")),
            lease_until=_int(data.get("leaseUntil")),
            leader_instance_id=_str(data.get("leaderInstanceId")),
        )


@dataclass
class StatusResult:
    leader_instance_id: str = ""
    epoch: int = 0
    lease_until: int = 0
    my_role: Role | str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatusResult:
        return cls(
            leader_instance_id=_str(data.get("leaderInstanceId")),
            epoch=_int(data.get("epoch")),
            lease_until=_int(data.get("leaseUntil")),
            my_role=_role(data.get("myRole")),
        )


def _trim(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class LeaseClient:
    """Signed HTTP client for the lease endpoints."""

    def __init__(self, base_url: str, agent_id: str, agent_key: str):
        self.base_url = base_url.rstrip("/")
        self.agent_id = agent_id
        self.agent_key = agent_key
        self._session = requests.Session()

    def __enter__(self) -> LeaseClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    def acquire(self, req: AcquireRequest) -> AcquireResult:
        """Request or renew the leader lease for this instance."""
        return AcquireResult.from_dict(self._post(PATH_ACQUIRE, req.to_dict()))

    def heartbeat(self, instance_id: str, epoch: int) -> HeartbeatResult:
        """Renew the lease held with ``epoch``."""
        body = {"instanceId": instance_id, "epoch": epoch}
        return HeartbeatResult.from_dict(self._post(PATH_HEARTBEAT, body))

    def takeover(self, req: TakeoverRequest) -> TakeoverResult:
        """Seize the leader role; the previous leader demotes on its next heartbeat."""
        return TakeoverResult.from_dict(self._post(PATH_TAKEOVER, req.to_dict()))

    def status(self, instance_id: str = "") -> StatusResult:
        """Current lease state; ``my_role`` is filled when ``instance_id`` is given."""
        api_path = PATH_STATUS
        if instance_id:
            api_path += "?instanceId=" + instance_id
        return StatusResult.from_dict(self._send("GET", api_path, PATH_STATUS, None))

    def _headers(self, method: str, path: str) -> dict[str, str]:
        timestamp = str(int(time.time()))
        return {
            "Content-Type": "application/json",
            "X-Agent-Id": self.agent_id,
            "X-Timestamp": timestamp,
            "X-Agent-Signature": compute_http_signature(
                self.agent_key, method, path, self.agent_id, timestamp
            ),
        }

    def _post(self, api_path: str, body: dict[str, Any]) -> dict[str, Any]:
        return self._send("POST", api_path, api_path, json.dumps(body).encode())

    def _send(self, method: str, api_path: str, sign_path: str, data: bytes | None) -> dict[str, Any]:
        try:
            resp = self._session.request(
                method,
                self.base_url + api_path,
                data=data,
                headers=self._headers(method, sign_path),
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise LeaseError(f"lease: request: {exc}") from exc

        raw = resp.content[:_MAX_RESPONSE_BYTES]
        if not 200 <= resp.status_code < 300:
            text = raw.decode("utf-8", "replace")
            raise LeaseError(f"lease: HTTP {resp.status_code}: {_trim(text, 200)}")

        try:
            wrapper = json.loads(raw)
        except ValueError as exc:
            raise LeaseError(f"lease: parse response: {exc}") from exc
        if wrapper is None:
            wrapper = {}
        if not isinstance(wrapper, dict):
            raise LeaseError("lease: parse response: not a JSON object")
        if wrapper.get("success") is not True:
            raise LeaseError(f"lease: server error: {_str(wrapper.get('error'))}")

        payload = wrapper.get("data")
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise LeaseError("lease: unmarshal data: not a JSON object")
        return payload