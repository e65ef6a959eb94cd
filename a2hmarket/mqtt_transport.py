"""MQTT connection lifecycle: connect, subscribe, publish and reconnect."""

from __future__ import annotations

import dataclasses
import json
import ssl
import threading
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from a2hmarket.logger import get_logger
from a2hmarket.mqtt_token import build_connection_client_id, incoming_topic, outgoing_topic

DEFAULT_QOS = 1
KEEP_ALIVE = 60
CONNECT_TIMEOUT = 15.0
UNSUBSCRIBE_TIMEOUT = 5.0
RECONNECT_DELAYS = (1, 2, 4, 8, 16, 30)


class MqttTransportError(Exception):
    """A failed MQTT connect, subscribe or publish."""


@dataclass(frozen=True)
class Message:
    """A received MQTT message."""

    topic: str
    payload: str


def normalize_broker_url(raw: str) -> str:
    """Map ``mqtts://`` to ``ssl://`` and ``mqtt://`` to ``tcp://``; bare ``host:port`` means ``ssl://``."""
    raw = raw.strip()
    if raw.startswith(("ssl://", "tcp://")):
        return raw
    if raw.startswith("mqtts://"):
        return "ssl://" + raw[len("mqtts://"):]
    if raw.startswith("mqtt://"):
        return "tcp://" + raw[len("mqtt://"):]
    return "ssl://" + raw


def _split_broker(url: str) -> tuple[str, int, bool]:
    parts = urlsplit(url)
    use_tls = parts.scheme == "ssl"
    host = parts.hostname or ""
    port = parts.port or (8883 if use_tls else 1883)
    return host, port, use_tls


def _json_default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"cannot encode {type(obj).__name__} as JSON")


class _Acks:
    """Completion records for subscribe/unsubscribe packets, keyed by message id."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._done: dict[int, list[Any]] = {}

    def complete(self, mid: int, reason_codes: list[Any]) -> None:
        with self._cond:
            self._done[mid] = reason_codes
            self._cond.notify_all()

    def wait(self, mid: int, timeout: float) -> list[Any] | None:
        with self._cond:
            if not self._cond.wait_for(lambda: mid in self._done, timeout):
                return None
            return self._done.pop(mid)


class Transport:
    """One MQTT connection for an agent, with automatic reconnection after loss."""

    def __init__(self, broker_url: str, token_client: Any, agent_id: str, instance_id: str):
        self.broker_url = normalize_broker_url(broker_url)
        self.token_client = token_client
        self.agent_id = agent_id
        self.instance_id = instance_id
        self.connection_client_id = ""
        self.clean_session = False
        self._lock = threading.Lock()
        self._client: mqtt.Client | None = None
        self._message_handler: Callable[[Message], None] | None = None
        self._reconnect_handler: Callable[[], None] | None = None
        self._acks = _Acks()
        self._closed = threading.Event()

    @classmethod
    def with_client_id(
        cls, broker_url: str, token_client: Any, agent_id: str, client_id: str
    ) -> Transport:
        """Transport with an explicit client id and a clean session (one-shot publishers)."""
        transport = cls(broker_url, token_client, agent_id, "")
        transport.connection_client_id = client_id
        transport.clean_session = True
        return transport

    def on_message(self, handler: Callable[[Message], None]) -> None:
        """Register the handler for incoming messages."""
        self._message_handler = handler

    def on_reconnect(self, handler: Callable[[], None]) -> None:
        """Register a callback run after each successful reconnect."""
        self._reconnect_handler = handler

    def connect(self) -> None:
        """Fetch a token and connect to the broker."""
        client_id = self.connection_client_id or build_connection_client_id(
            self.agent_id, self.instance_id
        )
        try:
            cred = self.token_client.get_token(client_id, False)
        except Exception as exc:
            raise MqttTransportError(f"mqtt connect: get token: {exc}") from exc

        client = self._open(client_id, self.clean_session, cred.username, cred.password)
        self._closed.clear()
        with self._lock:
            self._client = client
            self.connection_client_id = client_id

    def subscribe(self) -> None:
        """Subscribe to this agent's incoming P2P topic."""
        client = self._current()
        if client is None:
            raise MqttTransportError("mqtt: not connected")
        result, mid = client.subscribe(incoming_topic(self.agent_id), qos=DEFAULT_QOS)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise MqttTransportError(f"mqtt subscribe: {mqtt.error_string(result)}")
        codes = self._acks.wait(mid, CONNECT_TIMEOUT)
        if codes is None:
            raise MqttTransportError("mqtt subscribe: timeout")
        failed = [code for code in codes if getattr(code, "is_failure", False)]
        if failed:
            raise MqttTransportError(f"mqtt subscribe: {failed[0]}")

    def unsubscribe(self) -> None:
        """Drop the P2P subscription so the broker stops routing messages here."""
        client = self._current()
        if client is None or not client.is_connected():
            return
        result, mid = client.unsubscribe(incoming_topic(self.agent_id))
        if result == mqtt.MQTT_ERR_SUCCESS:
            self._acks.wait(mid, UNSUBSCRIBE_TIMEOUT)

    def publish(self, target_agent_id: str, payload: Any) -> None:
        """Publish ``payload`` as JSON to the target agent's topic.

        ``bytes`` are taken to be JSON already and sent unchanged.
        """
        client = self._current()
        if client is None:
            raise MqttTransportError("mqtt: not connected")
        if isinstance(payload, (bytes, bytearray)):
            data = bytes(payload)
        else:
            try:
                data = json.dumps(
                    payload, ensure_ascii=False, separators=(",", ":"), default=_json_default
                ).encode()
            except (TypeError, ValueError) as exc:
                raise MqttTransportError(f"mqtt publish: marshal: {exc}") from exc

        info = client.publish(outgoing_topic(target_agent_id), data, qos=DEFAULT_QOS, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise MqttTransportError(f"mqtt publish: {mqtt.error_string(info.rc)}")
        try:
            info.wait_for_publish(timeout=CONNECT_TIMEOUT)
        except (RuntimeError, ValueError) as exc:
            raise MqttTransportError(f"mqtt publish: {exc}") from exc
        if not info.is_published():
            raise MqttTransportError("mqtt publish: timeout")

    def is_connected(self) -> bool:
        client = self._current()
        return client is not None and client.is_connected()

    def close(self) -> None:
        """Disconnect from the broker and stop any reconnection attempts."""
        self._closed.set()
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            client.disconnect()
            client.loop_stop()

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _current(self) -> mqtt.Client | None:
        with self._lock:
            return self._client

    def _dispatch(self, message: mqtt.MQTTMessage) -> None:
        handler = self._message_handler
        if handler is not None:
            payload = message.payload.decode("utf-8", "replace")
            handler(Message(topic=message.topic, payload=payload))

    def _open(self, client_id: str, clean_session: bool, username: str, password: str) -> mqtt.Client:
        host, port, use_tls = _split_broker(self.broker_url)
        client = mqtt.Client(
            CallbackAPIVersion.VERSION2,
            client_id=client_id,
            clean_session=clean_session,
            reconnect_on_failure=False,
        )
        client.username_pw_set(username, password)
        if use_tls:
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            client.tls_set_context(context)
        client.connect_timeout = CONNECT_TIMEOUT

        settled = threading.Event()
        outcome: dict[str, Any] = {}

        def handle_connect(_c, _userdata, _flags, reason_code, _properties):
            outcome["rc"] = reason_code
            settled.set()

        def handle_disconnect(c, _userdata, _flags, reason_code, _properties):
            if not settled.is_set():
                outcome["lost"] = reason_code
                settled.set()
                return
            if c is self._current() and not self._closed.is_set():
                get_logger().warning("mqtt: connection lost: %s", reason_code)
                threading.Thread(
                    target=self._reconnect_loop, args=(client_id,), daemon=True
                ).start()

        client.on_connect = handle_connect
        client.on_disconnect = handle_disconnect
        client.on_message = lambda _c, _userdata, msg: self._dispatch(msg)
        client.on_subscribe = lambda _c, _u, mid, codes, _p: self._acks.complete(mid, list(codes))
        client.on_unsubscribe = lambda _c, _u, mid, codes, _p: self._acks.complete(mid, list(codes))

        try:
            client.connect(host, port, keepalive=KEEP_ALIVE)
        except (OSError, ValueError) as exc:
            raise MqttTransportError(f"mqtt connect: {exc}") from exc
        client.loop_start()

        if not settled.wait(CONNECT_TIMEOUT):
            client.loop_stop()
            raise MqttTransportError("mqtt connect: timeout")
        if "lost" in outcome:
            client.loop_stop()
            raise MqttTransportError(f"mqtt connect: {outcome['lost']}")
        reason = outcome["rc"]
        if getattr(reason, "is_failure", False):
            client.disconnect()
            client.loop_stop()
            raise MqttTransportError(f"mqtt connect: {reason}")
        return client

    def _reconnect_loop(self, client_id: str) -> None:
        log = get_logger()
        attempt = 0
        while True:
            delay = RECONNECT_DELAYS[min(attempt, len(RECONNECT_DELAYS) - 1)]
            if self._closed.wait(delay):
                return
            attempt += 1
            try:
                cred = self.token_client.get_token(client_id, True)
                client = self._open(client_id, False, cred.username, cred.password)
            except Exception as exc:
                log.debug("mqtt: reconnect attempt %d failed: %s", attempt, exc)
                continue
            if self._closed.is_set():
                client.disconnect()
                client.loop_stop()
                return
            with self._lock:
                self._client = client
            try:
                self.subscribe()
            except MqttTransportError as exc:
                log.warning("mqtt: resubscribe failed: %s", exc)
            handler = self._reconnect_handler
            if handler is not None:
                handler()
            return