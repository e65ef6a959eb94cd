"""Application error types with stable error codes."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable category of an application error."""

    INVALID_PARAMS = "INVALID_PARAMS"
    AUTH_FAILED = "AUTH_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    MQTT_ERROR = "MQTT_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    CREDENTIAL_ERROR = "CREDENTIAL_ERROR"
    UNKNOWN = "UNKNOWN"


class AppError(Exception):
    """An error carrying a code, a message and an optional underlying cause."""

    def __init__(self, code: ErrorCode, message: str, err: BaseException | None = None):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.err = err
        if err is not None:
            self.__cause__ = err

    def __str__(self) -> str:
        if self.err is not None:
            return f"[{self.code.value}] {self.message}: {self.err}"
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> dict[str, str]:
        """Serialisable form of the error (the cause is left out)."""
        return {"code": self.code.value, "message": self.message}


def new_error(code: ErrorCode, message: str, err: BaseException | None = None) -> AppError:
    return AppError(code, message, err)


def invalid_params_error(message: str) -> AppError:
    return AppError(ErrorCode.INVALID_PARAMS, message)


def auth_failed_error(message: str, err: BaseException | None = None) -> AppError:
    return AppError(ErrorCode.AUTH_FAILED, message, err)


def network_error(message: str, err: BaseException | None = None) -> AppError:
    return AppError(ErrorCode.NETWORK_ERROR, message, err)


def timeout_error(message: str, err: BaseException | None = None) -> AppError:
    return AppError(ErrorCode.TIMEOUT, message, err)


def mqtt_error(message: str, err: BaseException | None = None) -> AppError:
    return AppError(ErrorCode.MQTT_ERROR, message, err)


def config_error(message: str, err: BaseException | None = None) -> AppError:
    return AppError(ErrorCode.CONFIG_ERROR, message, err)


def credential_error(message: str, err: BaseException | None = None) -> AppError:
    return AppError(ErrorCode.CREDENTIAL_ERROR, message, err)