import pytest

from a2hmarket.errors import (
    AppError,
    ErrorCode,
    auth_failed_error,
    config_error,
    credential_error,
    invalid_params_error,
    mqtt_error,
    network_error,
    new_error,
    timeout_error,
)


def test_str_without_cause():
    err = invalid_params_error("bad input")
    assert str(err) == "[INVALID_PARAMS] bad input"


def test_str_with_cause():
    inner = ValueError("boom")
    err = auth_failed_error("login failed", inner)
    assert str(err) == "[AUTH_FAILED] login failed: boom"
    assert err.err is inner
    assert err.__cause__ is inner


@pytest.mark.parametrize(
    "factory, code",
    [
        (auth_failed_error, ErrorCode.AUTH_FAILED),
        (network_error, ErrorCode.NETWORK_ERROR),
        (timeout_error, ErrorCode.TIMEOUT),
        (mqtt_error, ErrorCode.MQTT_ERROR),
        (config_error, ErrorCode.CONFIG_ERROR),
        (credential_error, ErrorCode.CREDENTIAL_ERROR),
    ],
)
def test_factories_set_code(factory, code):
    err = factory("msg", None)
    assert err.code is code
    assert err.message == "msg"
    assert err.err is None


def test_new_error_is_raisable():
    err = new_error(ErrorCode.UNKNOWN, "oops", None)
    assert err.code is ErrorCode.UNKNOWN
    assert str(err) == "[UNKNOWN] oops"
    with pytest.raises(AppError, match=r"\[UNKNOWN\] oops"):
        raise err


def test_to_dict_omits_cause():
    err = network_error("down", OSError("x"))
    assert err.to_dict() == {"code": "NETWORK_ERROR", "message": "down"}