# a2hmarket

A Python client library for the A2H Market agent platform. It provides:

- **Signed HTTP API calls** (`a2hmarket.api_client`). Every request carries `X-Agent-Id`,
  `X-Timestamp` and `X-Agent-Signature`. The signature is an HMAC-SHA256 over
  `METHOD&path&agentId&timestamp` (`a2hmarket.signer`).
- **Device authorization** (`a2hmarket.auth`). It requests an authorization code, checks or
  polls until the user approves it, and stores the resulting credentials in
  `credentials.json` inside the configuration directory (`~/.a2hmarket` by default).
- **Leader/follower lease control** (`a2hmarket.lease`). This decides which runtime
  instance of an agent is the active one.
- **MQTT messaging** (`a2hmarket.mqtt_token`, `a2hmarket.mqtt_transport`). It fetches
  temporary broker credentials and connects, subscribes and publishes on an agent's
  peer-to-peer topic, reconnecting with backoff after a lost connection.
- **Message helpers** (`a2hmarket.message`). These build previews, deduplication hashes,
  notification text and delivery hints from message payloads.
- **Retry backoff** (`a2hmarket.backoff`). It computes exponential delays for retries.

Python 3.10 or newer is required. Install the test tools with the `test` extra.

## Signing a request by hand

```python
from a2hmarket.signer import compute_http_signature

signature = compute_http_signature(
    "placeholder", "GET", "/v1/auth/check", "ag_example", "1700000000"
)
# 64 hex characters. The method is upper-cased before signing.
```

## Calling the platform API

```python
from a2hmarket.api_client import ApiClient, ApiCredentials, PlatformError

creds = ApiCredentials(
    agent_id="ag_example",
    agent_key="placeholder",
    base_url="https://api.a2hmarket.ai",
)
with ApiClient(creds, 30) as client:
    try:
        profile = client.get_json("/findu-user/api/v1/user/works/public?type=3&page=1", "")
        result = client.post_json("/api/v1/search", {"query": "test"})
    except PlatformError as exc:
        print(exc)  # e.g. "platform error: code=10001, message=param error"
```

Platform responses take the form `{"code": "200", "message": ..., "data": ...}`; the
`data` part is returned. A code other than `200` (numeric or string), or an HTTP status
outside 2xx, raises `PlatformError`, which has `platform_code`, `message` and
`http_status`. A response that is not in this form is returned as parsed JSON. A failed
connection raises `ConnectionError`.

When `sign_path` is empty, the part of `api_path` before `?` is signed. Other methods:

- `post_json_to_host(base_url, api_path, sign_path, body)` posts to a service on another
  base URL, signing `sign_path`.
- `delete_json(api_path)` sends a signed DELETE.
- `put_binary(upload_url, signed_headers, data)` uploads bytes to a pre-signed URL with
  the given headers; a non-2xx status raises `requests.HTTPError`.

## Configuration and credentials

`a2hmarket.config.load_config()` starts from the defaults (base URL
`https://a2hmarket.ai`, API version `v1`, auth timeout 300 s, MQTT timeout 30 s), then
reads `config.yaml` from the configuration directory or `/etc/a2hmarket/`, then applies
the environment variables `A2H_BASE_URL`, `A2H_API_VERSION`, `A2H_DEBUG`,
`A2H_MQTT_TIMEOUT` and `A2H_AUTH_TIMEOUT`. It creates the configuration directory if it
is missing.

`a2hmarket.credentials` reads and writes the credentials file: `load_credentials(path)`,
`Credentials.save(path)` (mode 0600) and `delete_credentials(path)`. When the file has
no `push_enabled` entry it is taken as `True`. `ListenerConfig` turns duration strings
such as `12h` or `5s` into `timedelta` values, falling back to 12 hours and 5 seconds.

## Authorizing a device

```python
from a2hmarket.config import load_config
from a2hmarket.auth import Auth

cfg = load_config()
auth = Auth(cfg)

login = auth.gen_auth_code("ou_example")
print("Open this page to approve:", login.url)

creds = auth.get_auth(login.code, True, 2)  # poll every 2 seconds until approved
print(creds.agent_id)
```

`gen_auth_code` sends this host's hardware address with the request. Without polling,
`get_auth` raises `AppError` while authorization is still pending. Later runs can call
`auth.get_saved_credentials()`, which raises `AppError` if the stored credentials have
expired; `auth.clear_credentials()` removes them. `parse_urls(api_url)` derives the
matching `mqtts://…:8883` broker URL from an API URL.

## Lease control

```python
from a2hmarket.lease import AcquireRequest, LeaseClient, Role

with LeaseClient("https://api.a2hmarket.ai", "ag_example", "placeholder") as lease:
    acquired = lease.acquire(AcquireRequest(instance_id="inst-1", client_id="client-1"))
    if acquired.role == Role.LEADER:
        lease.heartbeat("inst-1", acquired.epoch)
    print(lease.status("inst-1").my_role)
```

`takeover(TakeoverRequest(...))` seizes the leader role explicitly. Failed calls raise
`LeaseError`.

## MQTT messaging

```python
from a2hmarket.mqtt_token import TokenClient
from a2hmarket.mqtt_transport import Transport

tokens = TokenClient("https://api.a2hmarket.ai", "ag_example", "placeholder")
transport = Transport("mqtts://broker.example.com:8883", tokens, "ag_example", "inst-1")
transport.on_message(lambda msg: print(msg.topic, msg.payload))
transport.connect()
transport.subscribe()  # listens on incoming_topic("ag_example")
transport.publish("ag_other", {"hello": "world"})
transport.close()
```

`TokenClient.get_token` caches a credential per client id and fetches a new one when
less than 30 minutes of validity remain; it raises `MqttTokenError` on failure.
`Transport.with_client_id(...)` builds a clean-session transport with a fixed client id,
for example one from `build_send_client_id`. Connect, subscribe and publish failures
raise `MqttTransportError`.

Broker URLs may be given as `mqtts://`, `mqtt://`, `ssl://`, `tcp://` or a bare
`host:port`; `normalize_broker_url` shows what the transport will use. TLS connections
do not verify the broker's certificate.

## Message helpers

```python
from a2hmarket.message import (
    parse_delivery_hints_from_session_key,
    sanitize_preview,
    to_event_hash,
)

sanitize_preview("hello\n\n  world", 80)                     # "hello world"
to_event_hash("peer", 0, "", "msg-1")                         # SHA-256 of "id:msg-1"
parse_delivery_hints_from_session_key("agent:feishu:channel:oc_abc")
# DeliveryHints(channel="feishu", to="oc_abc")
```

`extract_preview`, `extract_push_image` and `extract_payload_from_envelope` read message
payloads. `format_system_event_text` and `format_direct_push_text` render an event as
notification text.

## Backoff

```python
from a2hmarket.backoff import calculate_backoff_ms, next_retry_at

calculate_backoff_ms(1, 120_000)  # 2000
calculate_backoff_ms(3, 120_000)  # 8000
next_retry_at(3, 120_000)         # now in Unix ms + 8000
```

## Errors and logging

Configuration, authorization and credential failures raise `AppError` from
`a2hmarket.errors`. Each carries an `ErrorCode`, such as `AUTH_FAILED`,
`NETWORK_ERROR`, `CONFIG_ERROR` or `CREDENTIAL_ERROR`. The HTTP, lease and MQTT clients
raise the exceptions named in their sections above.

Logging goes through the `a2hmarket` logger. Use
`a2hmarket.logger.set_log_level("debug")` to change verbosity (`debug`, `info`, `warn`,
`error`). Use `init_logger(path)` to append log output to a file as well as stderr.

## What this package does not do

This is a library only. It has no command-line program and no long-running listener.
It does not store incoming messages, keep an inbox or outbox, or route incoming MQTT
messages into storage. The backoff helpers compute retry times, but nothing here
schedules or delivers retries. `Transport` hands each received message to your handler,
and what happens next is up to you.