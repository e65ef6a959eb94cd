import pytest

from a2hmarket.mqtt_token import MqttCredential, MqttTokenError, build_connection_client_id
from a2hmarket.mqtt_transport import MqttTransportError, Transport, normalize_broker_url


class StubTokenClient:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def get_token(self, client_id, force_refresh=False):
        self.calls.append((client_id, force_refresh))
        if self.error is not None:
            raise self.error
        return MqttCredential(client_id, "user", "password", 10**15)


@pytest.mark.parametrize("host_port", ["broker.example.com:8883", "10.0.0.1:1"])
def test_normalize_mqtts_and_bare(host_port):
    assert normalize_broker_url("mqtts://" + host_port) == "ssl://" + host_port
    assert normalize_broker_url(host_port) == "ssl://" + host_port
    assert normalize_broker_url("  " + host_port + " ") == "ssl://" + host_port


def test_normalize_mqtt_to_tcp():
    assert normalize_broker_url("mqtt://broker.example.com:1883") == "tcp://broker.example.com:1883"


@pytest.mark.parametrize(
    "url", ["ssl://broker.example.com:8883", "tcp://broker.example.com:1883"]
)
def test_normalize_keeps_known_schemes(url):
    assert normalize_broker_url(url) == url


@pytest.mark.parametrize("raw", ["mqtts://h:1", "mqtt://h:2", "h:3", "ssl://h:4"])
def test_normalize_is_idempotent(raw):
    once = normalize_broker_url(raw)
    assert normalize_broker_url(once) == once


def test_constructor_normalizes_and_defaults():
    transport = Transport("mqtts://broker.example.com:8883", StubTokenClient(), "ag", "inst")
    assert transport.broker_url == "ssl://broker.example.com:8883"
    assert transport.clean_session is False
    assert transport.connection_client_id == ""
    assert transport.is_connected() is False


def test_with_client_id_uses_clean_session():
    transport = Transport.with_client_id("h:1", StubTokenClient(), "ag", "my-client")
    assert transport.clean_session is True
    assert transport.connection_client_id == "my-client"
    assert transport.instance_id == ""


def test_publish_without_connection_fails():
    transport = Transport("h:1", StubTokenClient(), "ag", "inst")
    with pytest.raises(MqttTransportError, match="not connected"):
        transport.publish("other", {"a": 1})


def test_subscribe_without_connection_fails():
    transport = Transport("h:1", StubTokenClient(), "ag", "inst")
    with pytest.raises(MqttTransportError, match="not connected"):
        transport.subscribe()


def test_connect_token_failure_is_wrapped():
    tokens = StubTokenClient(error=MqttTokenError("denied"))
    transport = Transport("tcp://127.0.0.1:1", tokens, "ag", "inst")
    with pytest.raises(MqttTransportError, match="get token: denied"):
        transport.connect()
    assert tokens.calls == [(build_connection_client_id("ag", "inst"), False)]


def test_connect_refused_raises_and_stays_disconnected():
    tokens = StubTokenClient()
    transport = Transport("tcp://127.0.0.1:1", tokens, "ag", "inst")
    with pytest.raises(MqttTransportError, match="mqtt connect"):
        transport.connect()
    assert transport.is_connected() is False
    assert transport.connection_client_id == ""


def test_connect_with_explicit_client_id_requests_that_token():
    tokens = StubTokenClient()
    transport = Transport.with_client_id("tcp://127.0.0.1:1", tokens, "ag", "pub-client")
    with pytest.raises(MqttTransportError):
        transport.connect()
    assert tokens.calls == [("pub-client", False)]


def test_close_without_connection_leaves_disconnected():
    transport = Transport("h:1", StubTokenClient(), "ag", "inst")
    transport.close()
    assert transport.is_connected() is False
    with pytest.raises(MqttTransportError):
        transport.publish("other", {})