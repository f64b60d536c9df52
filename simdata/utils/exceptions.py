from __future__ import annotations

from typing import Any, Optional

from simdata.utils.error_codes import ErrorCode, ERROR_MESSAGES


def _normalize_error_code(value: ErrorCode | str | None) -> ErrorCode:
    if value is None:
        return ErrorCode.S010
    if isinstance(value, ErrorCode):
        return value
    try:
        return ErrorCode(str(value))
    except ValueError:
        return ErrorCode.S010


class SimDataException(Exception):
    """Base exception for SimData.

    Every failure is fatal for the run; the CLI reports ``to_dict()``.
    """

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | str = ErrorCode.S010,
        details: Optional[dict[str, Any]] = None,
    ):
        normalized = _normalize_error_code(code)
        if message is None:
            message = ERROR_MESSAGES.get(normalized, ERROR_MESSAGES[ErrorCode.S010])

        self.message = message
        self.code = normalized.value
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class HostUnreachableError(SimDataException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.S001, details=details)


class RegistrationConflictError(SimDataException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.S002, details=details)


class UnregisteredOwnerError(SimDataException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.S003, details=details)


class SubmissionError(SimDataException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.S004, details=details)


class CollectionServiceError(SimDataException):
    """Non-2xx answer from the collection service outside of data submission."""

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.status_code = status_code
        super().__init__(message, code=ErrorCode.S005, details=details)


class ScenarioNotFoundError(SimDataException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.S006, details=details)


class ScenarioInvalidError(SimDataException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.S007, details=details)


class InvariantViolationError(SimDataException):
    """Raised when a generation invariant is violated; always an implementation bug."""

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.S008, details=details)
