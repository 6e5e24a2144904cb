"""Shared error taxonomy for the provider chain and the resilient store.

Backend failures arrive from very different places: SDK exceptions
(anthropic, google-genai), raw httpx errors for OpenAI-compatible endpoints,
JSON/pydantic errors when a response does not parse. Everything is normalized
into an ErrorKind so the chain can record attempts uniformly.
"""

import json
from enum import Enum
from typing import Optional

import httpx
from pydantic import ValidationError


class ErrorKind(str, Enum):
    """Normalized failure categories."""
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class BackendError(RuntimeError):
    """A backend failure whose kind is already known at the raise site."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class StoreConnectionError(RuntimeError):
    """The durable store could not be reached (connect, timeout, dropped link)."""


class ConflictError(ValueError):
    """A write violated a uniqueness rule (e.g. duplicate username)."""


_AUTH_PATTERNS: tuple[str, ...] = (
    "invalid_api_key",
    "invalid api key",
    "incorrect api key",
    "api key not valid",
    "unauthorized",
    "forbidden",
    "permission denied",
    "authentication",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "rate_limit",
    "too many requests",
    "resource_exhausted",
    "quota",
    "overloaded",
)
_NETWORK_PATTERNS: tuple[str, ...] = (
    "timed out",
    "timeout",
    "connection refused",
    "connection reset",
    "connection error",
    "temporarily unavailable",
    "could not resolve host",
    "name or service not known",
)


def classify_backend_error(exc: BaseException) -> ErrorKind:
    """Map any exception raised by a backend invocation to an ErrorKind.

    Order: explicit BackendError kind, exception type, HTTP status code
    carried by SDK exceptions, then message patterns.
    """
    if isinstance(exc, BackendError):
        return exc.kind

    if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
        return ErrorKind.NETWORK
    if isinstance(exc, (json.JSONDecodeError, ValidationError)):
        return ErrorKind.INVALID_RESPONSE
    if isinstance(exc, httpx.HTTPStatusError):
        kind = kind_for_status(exc.response.status_code)
        if kind is not None:
            return kind
    if isinstance(exc, (ConnectionError, httpx.TransportError)):
        return ErrorKind.NETWORK

    status = _status_code_of(exc)
    if status is not None:
        kind = kind_for_status(status)
        if kind is not None:
            return kind

    text = f"{type(exc).__name__}: {exc}".lower()
    if _first_match(text, _AUTH_PATTERNS):
        return ErrorKind.AUTH
    if _first_match(text, _RATE_LIMIT_PATTERNS):
        return ErrorKind.RATE_LIMIT
    if _first_match(text, _NETWORK_PATTERNS):
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


def kind_for_status(status_code: int) -> Optional[ErrorKind]:
    """ErrorKind for an HTTP status code, or None when the code says nothing."""
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code in (408, 504) or status_code >= 500:
        return ErrorKind.NETWORK
    return None


def _status_code_of(exc: BaseException) -> Optional[int]:
    # anthropic.APIStatusError exposes status_code, google.genai APIError exposes code
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def _first_match(haystack: str, patterns: tuple[str, ...]) -> Optional[str]:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
