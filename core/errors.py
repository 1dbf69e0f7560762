from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    AUTH_INVALID_TOKEN = "AUTH_INVALID_TOKEN"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    OWNERSHIP_DENIED = "OWNERSHIP_DENIED"
    OBJECT_ACCESS_DENIED = "OBJECT_ACCESS_DENIED"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    RESOURCE_CREATION_FAILED = "RESOURCE_CREATION_FAILED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(HTTPException):
    def __init__(
        self,
        *,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        detail = {
            "message": message,
            "code": code.value,
            "details": details,
        }
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.code = code
        self.message = message

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


def auth_invalid_token(details: Any | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        code=ErrorCode.AUTH_INVALID_TOKEN,
        message="Invalid token",
        details=details,
    )


def validation_failed(message: str, details: Any | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.VALIDATION_FAILED,
        message=message,
        details=details,
    )


def rate_limit_exceeded(*, operation: str, minutes_remaining: int, retry_after_seconds: int) -> AppException:
    noun = "minute" if minutes_remaining == 1 else "minutes"
    return AppException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        code=ErrorCode.TOO_MANY_REQUESTS,
        message=f"Rate limit exceeded. Please wait {minutes_remaining} {noun} before making more requests.",
        details={
            "operation": operation,
            "minutes_remaining": minutes_remaining,
            "retry_after_seconds": retry_after_seconds,
        },
        headers={"Retry-After": str(retry_after_seconds)},
    )


def ownership_denied(resource: str, resource_id: str | None = None) -> AppException:
    details = {"resource": resource}
    if resource_id:
        details["resource_id"] = resource_id
    return AppException(
        status_code=status.HTTP_403_FORBIDDEN,
        code=ErrorCode.OWNERSHIP_DENIED,
        message=f"{resource} not found or not owned by user",
        details=details,
    )


def object_access_denied(object_keys: list[str]) -> AppException:
    message = (
        "Unauthorized: Cannot delete file belonging to another user"
        if len(object_keys) == 1
        else "Unauthorized: Cannot delete files belonging to another user"
    )
    return AppException(
        status_code=status.HTTP_403_FORBIDDEN,
        code=ErrorCode.OBJECT_ACCESS_DENIED,
        message=message,
        details={"object_keys": object_keys},
    )


def resource_not_found(resource: str, resource_id: str | None = None) -> AppException:
    details = {"resource": resource}
    if resource_id:
        details["resource_id"] = resource_id
    return AppException(
        status_code=status.HTTP_404_NOT_FOUND,
        code=ErrorCode.RESOURCE_NOT_FOUND,
        message=f"{resource} not found",
        details=details,
    )


def storage_unavailable(message: str, details: Any | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code=ErrorCode.STORAGE_UNAVAILABLE,
        message=message,
        details=details,
    )


def resource_creation_failed() -> AppException:
    return AppException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code=ErrorCode.RESOURCE_CREATION_FAILED,
        message="Failed to create resource with uploads. Please try again later.",
    )


def transaction_failed(message: str) -> AppException:
    return AppException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code=ErrorCode.TRANSACTION_FAILED,
        message=message,
    )
