import pytest
import responses

from a2hmarket.auth_client import AuthClient
from a2hmarket.auth_types import InitLoginRequest
from a2hmarket.config import Config
from a2hmarket.errors import AppError, ErrorCode

BASE = "http://mock.test"


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def client(base=BASE):
    return AuthClient(Config(base_url=base, auth_timeout=5, config_dir="/tmp"))


def req():
    return InitLoginRequest(timestamp=1700000000, mac="00:00:5e:00:53:01", feishu_user_id="ou_test123")


def test_init_login_success(mocked):
    mocked.add(responses.POST, BASE + "/v1/auth/init-login",
               json={"code": "auth_code_12345", "url": "http://localhost/login?code=auth_code_12345"})
    resp = client().init_login(req())
    assert resp.code == "auth_code_12345"
    assert resp.url == "http://localhost/login?code=auth_code_12345"
    assert "feishu_user_id=ou_test123" in mocked.calls[0].request.body


def test_init_login_error_field(mocked):
    mocked.add(responses.POST, BASE + "/v1/auth/init-login", json={"error": "invalid mac address"})
    with pytest.raises(AppError) as info:
        client().init_login(req())
    assert info.value.code is ErrorCode.AUTH_FAILED


def test_init_login_invalid_json(mocked):
    mocked.add(responses.POST, BASE + "/v1/auth/init-login", body="not json")
    with pytest.raises(AppError) as info:
        client().init_login(req())
    assert info.value.code is ErrorCode.NETWORK_ERROR


def test_check_pending(mocked):
    mocked.add(responses.GET, BASE + "/v1/auth/check", json={"code": "200", "message": "OK"})
    resp = client().check_auth("some_code")
    assert resp.is_success()
    assert not resp.is_authorized()


def test_check_authorized(mocked):
    mocked.add(responses.GET, BASE + "/v1/auth/check",
               json={"code": "200", "message": "OK",
                     "data": {"agentId": "ag_t6PowP7DhseW8oBl", "secret": "secret"}})
    resp = client().check_auth("auth_code_12345")
    assert resp.is_authorized()
    assert resp.data.agent_id == "ag_t6PowP7DhseW8oBl"
    assert resp.data.agent_key == "secret"
    assert "code=auth_code_12345" in mocked.calls[0].request.url


def test_check_server_error(mocked):
    mocked.add(responses.GET, BASE + "/v1/auth/check", json={"code": "404", "message": "缺少必需参数: code"})
    assert client().check_auth("code").is_success() is False


def test_check_network_error():
    with pytest.raises(AppError) as info:
        client("http://127.0.0.1:1").check_auth("code")
    assert info.value.code is ErrorCode.NETWORK_ERROR


def test_init_login_network_error():
    with pytest.raises(AppError) as info:
        client("http://127.0.0.1:1").init_login(req())
    assert info.value.code is ErrorCode.NETWORK_ERROR


def test_check_invalid_json(mocked):
    mocked.add(responses.GET, BASE + "/v1/auth/check", body="invalid json {{")
    with pytest.raises(AppError):
        client().check_auth("code")