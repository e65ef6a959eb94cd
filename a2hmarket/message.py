"""Message utilities: previews, deduplication hashes, push text and delivery hints."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any

DEFAULT_PREVIEW_CHARS = 80

QR_LABEL = "[收款二维码]"
IMAGE_LABEL = "[图片]"
DEFAULT_ATTACHMENT_NAME = "文件"

_DELIVERABLE_KINDS = frozenset({"direct", "dm", "group", "channel"})
_UNDELIVERABLE_CHANNELS = frozenset({"main", "subagent"})


def _go_format(value: Any) -> str:
    """Render a decoded JSON value the way a default value formatter prints it."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, dict):
        items = " ".join(f"{k}:{_go_format(value[k])}" for k in sorted(value, key=str))
        return f"map[{items}]"
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_go_format(item) for item in value) + "]"
    return str(value)


def _normalize_ws(text: str) -> str:
    """Turn CR, LF and tab into spaces and collapse runs of spaces."""
    out: list[str] = []
    in_ws = False
    for ch in text:
        if ch in "\r\n\t":
            ch = " "
        if ch == " ":
            if not in_ws:
                out.append(ch)
            in_ws = True
        else:
            in_ws = False
            out.append(ch)
    return "".join(out)


def sanitize_preview(text: str, max_chars: int = DEFAULT_PREVIEW_CHARS) -> str:
    """Compress whitespace and truncate to ``max_chars`` characters (80 when <= 0)."""
    if max_chars <= 0:
        max_chars = DEFAULT_PREVIEW_CHARS
    compact = _normalize_ws(text).strip()
    if len(compact) <= max_chars:
        return compact
    limit = max(max_chars - 3, 0)
    return compact[:limit] + "..."


def to_event_hash(peer_id: str, message_ts: int, message_text: str, message_id: str = "") -> str:
    """Deterministic SHA-256 hex digest used to deduplicate events."""
    if message_id:
        raw = "id:" + message_id
    else:
        raw = f"{peer_id}|{message_ts}|{message_text}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _extract_payment_qr(payload: dict[str, Any]) -> str:
    for key in ("payment_qr", "image"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _extract_attachment(payload: dict[str, Any]) -> dict[str, Any] | None:
    att = payload.get("attachment")
    if isinstance(att, dict) and "url" in att:
        return att
    return None


def _format_attachment_label(att: dict[str, Any]) -> str:
    name = att.get("name")
    if not isinstance(name, str) or not name:
        name = DEFAULT_ATTACHMENT_NAME
    mime = att.get("mime_type")
    if isinstance(mime, str) and mime.startswith("image/"):
        return f"[图片: {name}]"
    if "expires_at" in att:
        return f"[附件: {name}（24h有效）]"
    return f"[附件: {name}]"


def _extract_full_text(payload: dict[str, Any] | None) -> str:
    if not payload:
        return ""
    text = ""
    if "text" in payload:
        text = _go_format(payload["text"]).strip()
    elif "message" in payload:
        text = _go_format(payload["message"]).strip()

    lines: list[str] = []
    if text:
        lines.append(text)
    qr = _extract_payment_qr(payload)
    if qr:
        lines.append(f"{QR_LABEL}: {qr}")
    att = _extract_attachment(payload)
    if att is not None:
        url = att.get("url")
        lines.append(f"{_format_attachment_label(att)}: {url if isinstance(url, str) else ''}")
    return "\n".join(lines)


def extract_preview(payload: dict[str, Any] | None, max_chars: int = DEFAULT_PREVIEW_CHARS) -> str:
    """Human-readable, whitespace-compressed preview of a message payload."""
    full = _extract_full_text(payload)
    if not full:
        return ""
    return sanitize_preview(full, max_chars)


@dataclass(frozen=True)
class PushImage:
    """A media URL found in a payload; ``kind`` is ``payment_qr`` or ``image``."""

    url: str
    kind: str


def extract_push_image(payload: dict[str, Any] | None) -> PushImage | None:
    """First media URL in the payload suitable for a push notification."""
    if payload is None:
        return None
    qr = _extract_payment_qr(payload)
    if qr:
        return PushImage(url=qr, kind="payment_qr")
    att = _extract_attachment(payload)
    if att is not None:
        mime = att.get("mime_type")
        url = att.get("url")
        if isinstance(mime, str) and mime.startswith("image/") and isinstance(url, str) and url:
            return PushImage(url=url.strip(), kind="image")
    return None


def extract_payload_from_envelope(payload_json: str) -> dict[str, Any] | None:
    """Payload dict from either a full envelope (``payload`` key) or a bare payload."""
    if not payload_json:
        return None
    try:
        envelope = json.loads(payload_json)
    except ValueError:
        return None
    if not isinstance(envelope, dict):
        return None
    sub = envelope.get("payload")
    if isinstance(sub, dict):
        return sub
    return envelope


def _body_lines(preview: str, payload_json: str) -> list[str]:
    payload = extract_payload_from_envelope(payload_json)
    full_text = _extract_full_text(payload) or sanitize_preview(preview, 200)
    lines = [full_text]
    image = extract_push_image(payload)
    if image is not None and image.url not in full_text:
        label = IMAGE_LABEL if image.kind == "image" else QR_LABEL
        lines.append(f"{label}: {image.url}")
    return lines


def format_system_event_text(peer_id: str, event_id: str, preview: str, payload_json: str) -> str:
    """Event rendered as a system notification message."""
    header = f"[A2H Market | from:{peer_id} | event:{event_id}]"
    lines = [header, "", *_body_lines(preview, payload_json)]
    lines += ["", f"event_id: {event_id}", f"inbox get --event-id {event_id}"]
    return "\n".join(lines)


def format_direct_push_text(peer_id: str, event_id: str, preview: str, payload_json: str) -> str:
    """Event rendered as a direct push notification."""
    lines = [f"📩 [A2H Market] 来自 {peer_id}:", "", *_body_lines(preview, payload_json)]
    lines += ["", f"📌 event: {event_id}"]
    return "\n".join(lines)


@dataclass(frozen=True)
class DeliveryHints:
    """Channel and recipient parsed from a session key."""

    channel: str
    to: str


def parse_delivery_hints_from_session_key(session_key: str) -> DeliveryHints | None:
    """Parse ``[agent:]<channel>:<kind>:<target>``; None when not deliverable."""
    raw = session_key.strip()
    if not raw:
        return None
    parts = [p for p in raw.split(":") if p]
    if len(parts) >= 3 and parts[0] == "agent":
        parts = parts[1:]
    if len(parts) < 3:
        return None
    channel_raw, kind = parts[0], parts[1]
    to = ":".join(parts[2:])
    if not to or kind not in _DELIVERABLE_KINDS:
        return None
    channel = channel_raw.lower()
    if channel in _UNDELIVERABLE_CHANNELS:
        return None
    return DeliveryHints(channel=channel, to=to)