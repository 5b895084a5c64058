"""Error taxonomy shared by the gateway, the session flows and the poller.

- ``RequestError``: transport/HTTP failure, built once at the gateway boundary.
- ``kind_for_status``: HTTP status -> ``ErrorKind``.
- ``map_error_to_action`` / ``handle_error_action``: what the client side does
  about a given kind (refresh and retry, prompt, give up).
- ``Result``: success-or-failure value returned across the gateway boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    SERVER = "server"
    NETWORK = "network"
    UNKNOWN = "unknown"


def kind_for_status(status: int) -> ErrorKind:
    if status == 401:
        return ErrorKind.UNAUTHORIZED
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status == 409:
        return ErrorKind.CONFLICT
    if status == 400:
        return ErrorKind.VALIDATION
    if 500 <= status <= 599:
        return ErrorKind.SERVER
    return ErrorKind.UNKNOWN


class RequestError(Exception):
    """Failed backend call. Read-only after construction."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        http_status: int = 0,
        raw_body: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self._kind = kind
        self._message = message
        self._http_status = http_status
        self._raw_body = MappingProxyType(dict(raw_body)) if raw_body is not None else None

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def message(self) -> str:
        return self._message

    @property
    def http_status(self) -> int:
        return self._http_status

    @property
    def raw_body(self) -> Optional[Mapping[str, Any]]:
        return self._raw_body

    def __repr__(self) -> str:
        return f"RequestError(kind={self._kind.value!r}, http_status={self._http_status}, message={self._message!r})"


class AuthErrorReason(str, Enum):
    NO_CREDENTIAL = "no_credential"
    REFRESH_FAILED = "refresh_failed"


class AuthError(Exception):
    """Session-level failure: the user has to sign in again."""

    def __init__(self, reason: AuthErrorReason, cause: Optional[RequestError] = None) -> None:
        detail = f": {cause.message}" if cause is not None else ""
        super().__init__(f"{reason.value}{detail}")
        self.reason = reason
        self.cause = cause


def error_message(status: int, reason: str, body: Mapping[str, Any]) -> str:
    """Server ``message`` first, then ``error``, then a synthesized line."""

    for key in ("message", "error"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return f"HTTP {status}: {reason}"


class ErrorAction(str, Enum):
    RETRY_REFRESH = "retry_refresh"
    RETRY_LATER = "retry_later"
    SHOW_MESSAGE = "show_message"
    NOOP = "noop"


def map_error_to_action(kind: Optional[ErrorKind]) -> ErrorAction:
    if kind == ErrorKind.UNAUTHORIZED:
        return ErrorAction.RETRY_REFRESH
    if kind in (ErrorKind.NETWORK, ErrorKind.SERVER):
        return ErrorAction.RETRY_LATER
    if kind in (ErrorKind.VALIDATION, ErrorKind.CONFLICT, ErrorKind.NOT_FOUND):
        return ErrorAction.SHOW_MESSAGE
    return ErrorAction.NOOP


def handle_error_action(
    action: ErrorAction,
    *,
    refresh: Callable[[], None],
    notify: Callable[[str], None],
    on_retry_later: Optional[Callable[[], None]] = None,
    message: str = "",
) -> None:
    """Run the client-side reaction for ``action``.

    - refresh: exchange the refresh token; the caller retries afterwards.
    - notify: user-facing message sink (toast, stderr, ...).
    - on_retry_later: optional hook offering a manual retry.
    """

    if action == ErrorAction.RETRY_REFRESH:
        refresh()
    elif action == ErrorAction.RETRY_LATER:
        if on_retry_later:
            on_retry_later()
        else:
            notify(message or "service unavailable, try again later")
    elif action == ErrorAction.SHOW_MESSAGE:
        notify(message)


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


__all__ = [
    "AuthError",
    "AuthErrorReason",
    "ErrorAction",
    "ErrorKind",
    "RequestError",
    "Result",
    "error_message",
    "handle_error_action",
    "kind_for_status",
    "map_error_to_action",
]
