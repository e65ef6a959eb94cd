"""HMAC request signing for the platform HTTP API."""

from __future__ import annotations

import hashlib
import hmac


def compute_http_signature(
    agent_key: str, method: str, path: str, agent_id: str, timestamp_sec: str
) -> str:
    """Return hex HMAC-SHA256 of ``METHOD&path&agent_id&timestamp`` keyed by ``agent_key``."""
    payload = f"{method.upper()}&{path}&{agent_id}&{timestamp_sec}"
    return hmac.new(agent_key.encode(), payload.encode(), hashlib.sha256).hexdigest()