"""Application level errors surfaced at the process boundary."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
import os
from typing import Any

# Exit codes aligned with ``sysexits`` for service managers and automation.
EX_OK = 0
EX_CONFIG = getattr(os, "EX_CONFIG", 78)
EX_UNAVAILABLE = getattr(os, "EX_UNAVAILABLE", 69)
EX_SOFTWARE = getattr(os, "EX_SOFTWARE", 70)


class ErrorCode(str, Enum):
    """Stable identifiers for terminal failures."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    SOURCE_ABORTED = "SOURCE_ABORTED"
    SYNC_ABORTED = "SYNC_ABORTED"
    LOGIN_FAILED = "LOGIN_FAILED"


class AppError(Exception):
    """Base exception for statusbridge specific failures."""

    __slots__ = ("message", "code", "exit_code", "meta")

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        exit_code: int = EX_SOFTWARE,
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.exit_code = exit_code
        self.meta = meta


class ConfigurationError(AppError):
    """Raised when the configuration is missing, malformed or contradictory."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(
            message,
            code=ErrorCode.CONFIGURATION_ERROR,
            exit_code=EX_CONFIG,
            meta={"key": key} if key else None,
        )
        self.key = key


class SourceAbortedError(AppError):
    """Raised when the source adapter reported a fatal error."""

    def __init__(self, provider: str, cause: Exception) -> None:
        super().__init__(
            f"{provider} failed permanently: {cause}",
            code=ErrorCode.SOURCE_ABORTED,
            exit_code=EX_UNAVAILABLE,
            meta={"provider": provider},
        )
        self.provider = provider
        self.cause = cause


class SyncAbortedError(AppError):
    """Raised when the status platform rejected a write for a non rate-limit reason."""

    def __init__(self, cause: Exception) -> None:
        super().__init__(
            f"Status update failed: {cause}",
            code=ErrorCode.SYNC_ABORTED,
            exit_code=EX_UNAVAILABLE,
        )
        self.cause = cause


class LoginError(AppError):
    """Raised when the interactive session login could not complete."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code=ErrorCode.LOGIN_FAILED, exit_code=EX_UNAVAILABLE)


__all__ = [
    "AppError",
    "ConfigurationError",
    "EX_CONFIG",
    "EX_OK",
    "EX_SOFTWARE",
    "EX_UNAVAILABLE",
    "ErrorCode",
    "LoginError",
    "SourceAbortedError",
    "SyncAbortedError",
]
