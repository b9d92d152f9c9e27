from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Why a webhook or form decision could not be handled."""

    UNKNOWN = "unknown"
    TENANT_NOT_FOUND = "tenant_not_found"
    UNEXPECTED_ERROR = "unexpected_error"
    # The state change was committed but the engine call failed.
    ENGINE_ERROR = "engine_error"
    INVALID_STATUS = "invalid_status"
    FORM_NOT_FOUND = "form_not_found"
    EXECUTION_NOT_FOUND = "execution_not_found"
    NOT_WAITING = "not_waiting"


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(
        error: str, code: Union[ErrorCode, str] = ErrorCode.UNKNOWN, value: Optional[T] = None
    ) -> "Result[T]":
        return Result(ok=False, value=value, error=error, error_code=ErrorCode(code))
