from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

import aiohttp

T = TypeVar("T")


class ErrorKind(str, Enum):
    NETWORK = "NETWORK"            # no connectivity, DNS failure, connection reset
    TIMEOUT = "TIMEOUT"            # request exceeded its hard timeout
    RATE_LIMIT = "RATE_LIMIT"      # 429
    NOT_FOUND = "NOT_FOUND"        # 404
    SERVER_ERROR = "SERVER_ERROR"  # 5xx
    PARSE_ERROR = "PARSE_ERROR"    # malformed or unusable body
    UNKNOWN = "UNKNOWN"


class ApiError(Exception):
    """
    Classified fetch failure. Raised by the HTTP layer, carried as a value
    by repositories and caches (see ApiResult).
    """

    def __init__(self, kind: ErrorKind, message: str, retryable: bool = False):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.retryable = retryable

    def __repr__(self) -> str:
        return f"ApiError({self.kind.value}, {self.message!r}, retryable={self.retryable})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ApiError):
            return NotImplemented
        return (self.kind, self.message, self.retryable) == (other.kind, other.message, other.retryable)

    __hash__ = Exception.__hash__

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message, "retryable": self.retryable}


def classify_status(status: int) -> ApiError:
    """Map a non-success HTTP status to an ApiError."""
    if status == 429:
        return ApiError(
            ErrorKind.RATE_LIMIT,
            "Rate limit exceeded. Please wait a moment and try again.",
            True,
        )
    if status == 404:
        return ApiError(ErrorKind.NOT_FOUND, "Resource not found.", False)
    if status >= 500:
        return ApiError(ErrorKind.SERVER_ERROR, "Server error. Please try again later.", True)
    return ApiError(ErrorKind.UNKNOWN, f"Request failed with status {status}", True)


def classify_exception(exc: BaseException) -> ApiError:
    """
    Map a transport/parse exception to an ApiError. Order matters:
    aiohttp's timeout and content-type errors are also ClientErrors.
    """
    if isinstance(exc, ApiError):
        return exc
    if isinstance(exc, asyncio.TimeoutError):
        return ApiError(
            ErrorKind.TIMEOUT,
            "Request timed out. Check your connection and try again.",
            True,
        )
    if isinstance(exc, (aiohttp.ContentTypeError, json.JSONDecodeError, UnicodeDecodeError)):
        return ApiError(ErrorKind.PARSE_ERROR, "Invalid response from server.", True)
    if isinstance(exc, (aiohttp.ClientError, OSError)):
        return ApiError(
            ErrorKind.NETWORK,
            "Unable to connect. Check your internet connection.",
            True,
        )
    message = str(exc) or "An unexpected error occurred."
    return ApiError(ErrorKind.UNKNOWN, message, True)


def parse_error(message: str) -> ApiError:
    return ApiError(ErrorKind.PARSE_ERROR, message, True)


def not_found(message: str) -> ApiError:
    return ApiError(ErrorKind.NOT_FOUND, message, False)


@dataclass(slots=True)
class ApiResult(Generic[T]):
    """Success-discriminated fetch outcome: check `.ok` before reading `.data`."""
    ok: bool
    data: Optional[T] = None
    error: Optional[ApiError] = None

    @classmethod
    def success(cls, data: T) -> "ApiResult[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: ApiError) -> "ApiResult[T]":
        return cls(ok=False, error=error)
