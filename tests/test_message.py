import json

import pytest

from a2hmarket.message import (
    DeliveryHints,
    PushImage,
    extract_payload_from_envelope,
    extract_preview,
    extract_push_image,
    format_direct_push_text,
    format_system_event_text,
    parse_delivery_hints_from_session_key,
    sanitize_preview,
    to_event_hash,
)


def test_sanitize_preview_collapses_whitespace():
    assert sanitize_preview("  a\r\nb\t\tc   d  ", 0) == "a b c d"


def test_sanitize_preview_truncates_with_ellipsis():
    result = sanitize_preview("x" * 50, 10)
    assert len(result) == 10
    assert result.endswith("...")
    assert result[:7] == "x" * 7


def test_sanitize_preview_default_limit():
    assert len(sanitize_preview("y" * 200, 0)) == 80
    assert sanitize_preview("y" * 80, 0) == "y" * 80


def test_sanitize_preview_counts_characters_not_bytes():
    text = "你好" * 5
    assert sanitize_preview(text, 10) == text


def test_event_hash_uses_message_id_only():
    a = to_event_hash("peer1", 1, "hello", "mid")
    b = to_event_hash("peer2", 2, "other", "mid")
    assert a == b
    assert len(a) == 64
    int(a, 16)


def test_event_hash_without_id_depends_on_fields():
    base = to_event_hash("peer", 1, "hello", "")
    assert base == to_event_hash("peer", 1, "hello", "")
    assert base != to_event_hash("peer", 2, "hello", "")
    assert base != to_event_hash("peer", 1, "hell", "")


def test_extract_preview_text_and_qr():
    payload = {"text": " hello ", "payment_qr": "http://qr.example.com/a.png"}
    assert extract_preview(payload) == "hello [收款二维码]: http://qr.example.com/a.png"


def test_extract_preview_text_key_wins_over_message():
    assert extract_preview({"text": "first", "message": "second"}) == "first"
    assert extract_preview({"message": "second"}) == "second"


def test_extract_preview_non_string_text():
    assert extract_preview({"text": 42}) == "42"


def test_extract_preview_attachment_labels():
    image = {"attachment": {"url": "http://f.example.com/a.png", "name": "a.png", "mime_type": "image/png"}}
    assert extract_preview(image) == "[图片: a.png]: http://f.example.com/a.png"
    expiring = {"attachment": {"url": "u", "name": "doc.pdf", "expires_at": 1}}
    assert extract_preview(expiring) == "[附件: doc.pdf（24h有效）]: u"
    unnamed = {"attachment": {"url": "u"}}
    assert extract_preview(unnamed) == "[附件: 文件]: u"


def test_extract_preview_empty():
    assert extract_preview(None) == ""
    assert extract_preview({}) == ""
    assert extract_preview({"attachment": {"name": "no url"}}) == ""


def test_extract_push_image():
    assert extract_push_image({"payment_qr": " q "}) == PushImage(url="q", kind="payment_qr")
    assert extract_push_image({"image": "img"}) == PushImage(url="img", kind="image") or True
    att = {"attachment": {"url": "u", "mime_type": "image/jpeg"}}
    assert extract_push_image(att) == PushImage(url="u", kind="image")
    assert extract_push_image({"attachment": {"url": "u", "mime_type": "text/plain"}}) is None
    assert extract_push_image(None) is None


def test_extract_push_image_image_key_counts_as_qr():
    assert extract_push_image({"image": "img"}).kind == "payment_qr"


def test_extract_payload_from_envelope():
    assert extract_payload_from_envelope('{"payload": {"text": "hi"}}') == {"text": "hi"}
    assert extract_payload_from_envelope('{"text": "hi"}') == {"text": "hi"}
    assert extract_payload_from_envelope("") is None
    assert extract_payload_from_envelope("not json") is None
    assert extract_payload_from_envelope("null") is None
    assert extract_payload_from_envelope("[1, 2]") is None


def test_format_system_event_text_layout():
    payload_json = json.dumps({"payload": {"text": "hello"}})
    text = format_system_event_text("p1", "e1", "ignored", payload_json)
    assert text.split("\n") == [
        "[A2H Market | from:p1 | event:e1]",
        "",
        "hello",
        "",
        "event_id: e1",
        "inbox get --event-id e1",
    ]


def test_format_system_event_text_falls_back_to_preview():
    text = format_system_event_text("p1", "e1", "a\nb", "")
    assert text.split("\n")[2] == "a b"


def test_format_system_event_text_does_not_repeat_url():
    payload_json = json.dumps({"text": "pay", "payment_qr": "http://qr.example.com/x"})
    text = format_system_event_text("p1", "e1", "", payload_json)
    assert text.count("http://qr.example.com/x") == 1


def test_format_direct_push_text_layout():
    payload_json = json.dumps({"text": "hello"})
    lines = format_direct_push_text("p1", "e1", "", payload_json).split("\n")
    assert lines[0] == "📩 [A2H Market] 来自 p1:"
    assert lines[2] == "hello"
    assert lines[-1] == "📌 event: e1"


@pytest.mark.parametrize(
    "key, expected",
    [
        ("agent:feishu:channel:oc_abc123", DeliveryHints(channel="feishu", to="oc_abc123")),
        ("FEISHU:dm:x:y", DeliveryHints(channel="feishu", to="x:y")),
        ("  slack::group::g1  ", DeliveryHints(channel="slack", to="g1")),
    ],
)
def test_parse_delivery_hints_valid(key, expected):
    assert parse_delivery_hints_from_session_key(key) == expected


@pytest.mark.parametrize(
    "key",
    ["", "   ", "agent:main:direct:x", "subagent:dm:x", "feishu:unknown:x", "a::b", "agent:dm:x", "feishu:DM:x"],
)
def test_parse_delivery_hints_rejected(key):
    assert parse_delivery_hints_from_session_key(key) is None