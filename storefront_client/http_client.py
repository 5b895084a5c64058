"""Backend HTTP gateway.

- One base URL, JSON in and out.
- Attaches ``Authorization: Bearer <token>`` when a token is set.
- Exactly one attempt per call; failures come back as ``Result.failure``
  carrying a ``RequestError``, never as a raised exception.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

import requests

from .error_handling import ErrorKind, RequestError, Result, error_message, kind_for_status

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE")


class RequestGateway:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._token: Optional[str] = None
        self._token_lock = threading.Lock()

    def set_credential(self, token: Optional[str]) -> None:
        with self._token_lock:
            self._token = token or None

    def current_token(self) -> Optional[str]:
        with self._token_lock:
            return self._token

    def _headers(self, token: Optional[str], extra: Optional[Dict[str, str]]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        # An explicit Authorization header overrides the attached token.
        if extra:
            headers.update(extra)
        return headers

    def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Result[Any]:
        method = method.upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"unsupported method: {method}")
        if not endpoint.startswith("/") or "://" in endpoint:
            raise ValueError(f"endpoint must be a relative path: {endpoint!r}")

        token = self.current_token()
        url = f"{self.base_url}{endpoint}"
        logger.debug("%s %s (auth=%s)", method, endpoint, bool(token))

        try:
            resp = self._session.request(
                method,
                url,
                headers=self._headers(token, headers),
                json=body,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.warning("%s %s failed without response: %s", method, endpoint, exc)
            return Result.failure(RequestError(ErrorKind.NETWORK, str(exc) or "network error", 0, None))

        if not 200 <= resp.status_code < 300:
            data: Dict[str, Any] = {}
            if resp.content:
                try:
                    parsed = resp.json()
                except ValueError:
                    parsed = None
                if isinstance(parsed, dict):
                    data = parsed
            error = RequestError(
                kind_for_status(resp.status_code),
                error_message(resp.status_code, resp.reason or "", data),
                resp.status_code,
                data,
            )
            logger.warning(
                "%s %s -> %s (%s): %s", method, endpoint, resp.status_code, error.kind.value, error.message
            )
            return Result.failure(error)

        if not resp.content:
            return Result.success({})
        try:
            return Result.success(resp.json())
        except ValueError:
            logger.warning("%s %s -> %s with non-JSON body", method, endpoint, resp.status_code)
            return Result.failure(
                RequestError(ErrorKind.UNKNOWN, "invalid JSON in response body", resp.status_code, None)
            )

    def close(self) -> None:
        self._session.close()


__all__ = ["ALLOWED_METHODS", "RequestGateway"]
