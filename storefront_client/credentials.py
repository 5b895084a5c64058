"""Access/refresh credential lifecycle.

States: UNAUTHENTICATED -> VALID -> STALE -> REFRESHING -> VALID | UNAUTHENTICATED.
Staleness is checked lazily on access. At most one refresh exchange is in
flight; concurrent callers wait on the same future.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .error_handling import AuthError, AuthErrorReason, ErrorKind, RequestError
from .http_client import RequestGateway
from .token_storage import ACCESS_TOKEN_KEY, EXPIRES_AT_KEY, REFRESH_TOKEN_KEY, TokenStorage

logger = logging.getLogger(__name__)

REFRESH_ENDPOINT = "/api/v1/auth/refresh-token"
DEFAULT_EXPIRES_IN = 15 * 60


def now_ms() -> int:
    return int(time.time() * 1000)


class CredentialState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    VALID = "valid"
    STALE = "stale"
    REFRESHING = "refreshing"


@dataclass(frozen=True)
class Credential:
    access_token: str
    refresh_token: str
    expires_at_ms: int

    def is_stale(self, at_ms: int) -> bool:
        return at_ms >= self.expires_at_ms


def expires_in_seconds(data: Dict[str, Any]) -> int:
    value = data.get("expires_in")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return DEFAULT_EXPIRES_IN
    return int(value)


class CredentialManager:
    def __init__(
        self,
        gateway: RequestGateway,
        storage: Optional[TokenStorage] = None,
        *,
        clock: Callable[[], int] = now_ms,
        broadcast_status: Callable[[str], None] = lambda _status: None,
    ) -> None:
        self._gateway = gateway
        self._storage = storage
        self._clock = clock
        self._broadcast = broadcast_status
        self._lock = threading.Lock()
        self._credential: Optional[Credential] = None
        self._pending: Optional[Future] = None
        # Bumped on every establish/clear so a refresh that finishes after a
        # logout or re-login does not overwrite the newer state.
        self._generation = 0

    # --- Introspection ---
    @property
    def current(self) -> Optional[Credential]:
        with self._lock:
            return self._credential

    @property
    def state(self) -> CredentialState:
        with self._lock:
            if self._pending is not None:
                return CredentialState.REFRESHING
            if self._credential is None:
                return CredentialState.UNAUTHENTICATED
            if self._credential.is_stale(self._clock()):
                return CredentialState.STALE
            return CredentialState.VALID

    # --- Transitions ---
    def establish(self, access_token: str, refresh_token: str, expires_in: int = DEFAULT_EXPIRES_IN) -> Credential:
        credential = Credential(access_token, refresh_token, self._clock() + int(expires_in) * 1000)
        with self._lock:
            self._generation += 1
            self._credential = credential
            self._gateway.set_credential(access_token)
        self._persist(credential)
        self._broadcast("active")
        return credential

    def establish_from_response(self, data: Dict[str, Any]) -> Credential:
        """Store the pair carried by a login/verify/OAuth response body."""

        access = data.get("access_token")
        refresh = data.get("refresh_token")
        if not isinstance(access, str) or not access or not isinstance(refresh, str) or not refresh:
            raise RequestError(ErrorKind.UNKNOWN, "token response is missing access_token/refresh_token", 200, data)
        return self.establish(access, refresh, expires_in_seconds(data))

    def restore(self) -> Optional[Credential]:
        """Rehydrate from storage; no network call."""

        if self._storage is None:
            return None
        try:
            data = self._storage.read()
        except FileNotFoundError:
            return None
        except ValueError as exc:
            logger.warning("discarding stored tokens: %s", exc)
            self._storage.delete()
            return None

        credential = Credential(
            data[ACCESS_TOKEN_KEY],
            data[REFRESH_TOKEN_KEY],
            # No recorded expiry: treat as stale so first use refreshes.
            data.get(EXPIRES_AT_KEY, 0),
        )
        with self._lock:
            self._generation += 1
            self._credential = credential
            self._gateway.set_credential(credential.access_token)
        return credential

    def logout(self) -> None:
        with self._lock:
            self._clear_locked()
        if self._storage is not None:
            self._storage.delete()
        self._broadcast("none")

    # --- Token access ---
    def get_valid_access_token(self) -> str:
        with self._lock:
            if self._pending is not None:
                future = self._pending
                owner = False
            elif self._credential is None:
                raise AuthError(AuthErrorReason.NO_CREDENTIAL)
            elif not self._credential.is_stale(self._clock()):
                return self._credential.access_token
            else:
                future = self._begin_refresh_locked()
                owner = True
                previous, generation = self._credential, self._generation
        if owner:
            self._run_refresh(future, previous, generation)
        return future.result().access_token

    def refresh(self) -> Credential:
        """Exchange the refresh token now, whatever the expiry says.

        Joins an exchange that is already in flight instead of starting one.
        """

        with self._lock:
            if self._pending is not None:
                future = self._pending
                owner = False
            elif self._credential is None:
                raise AuthError(AuthErrorReason.NO_CREDENTIAL)
            else:
                future = self._begin_refresh_locked()
                owner = True
                previous, generation = self._credential, self._generation
        if owner:
            self._run_refresh(future, previous, generation)
        return future.result()

    # --- Internal ---
    def _begin_refresh_locked(self) -> Future:
        future: Future = Future()
        future.set_running_or_notify_cancel()
        self._pending = future
        return future

    def _run_refresh(self, future: Future, previous: Credential, generation: int) -> None:
        try:
            result = self._gateway.request(REFRESH_ENDPOINT, "POST", {"refresh_token": previous.refresh_token})
        except Exception as exc:
            with self._lock:
                self._pending = None
            future.set_exception(exc)
            raise
        error: Optional[AuthError] = None
        credential: Optional[Credential] = None

        if not result.ok:
            logger.warning("token refresh failed: %s", result.error)
            cause = result.error if isinstance(result.error, RequestError) else None
            error = AuthError(AuthErrorReason.REFRESH_FAILED, cause)
        else:
            data = result.value if isinstance(result.value, dict) else {}
            access = data.get("access_token")
            if not isinstance(access, str) or not access:
                logger.warning("token refresh returned no access_token")
                error = AuthError(
                    AuthErrorReason.REFRESH_FAILED,
                    RequestError(ErrorKind.UNKNOWN, "refresh response is missing access_token", 200, data),
                )
            else:
                refresh_token = data.get("refresh_token")
                if not isinstance(refresh_token, str) or not refresh_token:
                    refresh_token = previous.refresh_token
                credential = Credential(access, refresh_token, self._clock() + expires_in_seconds(data) * 1000)

        superseded = False
        with self._lock:
            self._pending = None
            if self._generation != generation:
                superseded = True
            elif credential is not None:
                self._credential = credential
                self._gateway.set_credential(credential.access_token)
            else:
                self._clear_locked()

        if superseded:
            current = self.current
            if current is None:
                future.set_exception(AuthError(AuthErrorReason.NO_CREDENTIAL))
            else:
                future.set_result(current)
            return

        if credential is not None:
            self._persist(credential)
            self._broadcast("active")
            future.set_result(credential)
        else:
            if self._storage is not None:
                self._storage.delete()
            self._broadcast("none")
            future.set_exception(error)

    def _clear_locked(self) -> None:
        self._generation += 1
        self._credential = None
        self._gateway.set_credential(None)

    def _persist(self, credential: Credential) -> None:
        if self._storage is None:
            return
        try:
            self._storage.save_tokens(credential.access_token, credential.refresh_token, credential.expires_at_ms)
        except (OSError, ValueError) as exc:
            # Persistence is best-effort; the in-memory credential stays current.
            logger.warning("failed to persist tokens to %s: %s", self._storage.path, exc)


__all__ = [
    "Credential",
    "CredentialManager",
    "CredentialState",
    "DEFAULT_EXPIRES_IN",
    "REFRESH_ENDPOINT",
    "expires_in_seconds",
    "now_ms",
]
