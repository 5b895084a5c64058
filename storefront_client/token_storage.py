"""Local persistence of the access/refresh token pair.

- Default path: ``~/.storefront/tokens.json`` (``STOREFRONT_TOKEN_PATH`` or an
  explicit ``path`` overrides it).
- Keys: ``access_token``, ``refresh_token`` (non-empty strings, required) and
  ``expires_at_ms`` (int, optional).
- Contents are untrusted. Callers see:
  - nothing stored -> FileNotFoundError
  - decode/parse/shape failure -> ValueError (corrupted)
- A file older than ``SESSION_MAX_AGE`` is a leftover: it is deleted on read and
  reported as FileNotFoundError.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

UTC = timezone.utc
SESSION_MAX_AGE = timedelta(days=7)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
EXPIRES_AT_KEY = "expires_at_ms"
_PERSISTED_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRES_AT_KEY)


def default_token_path() -> str:
    env = os.environ.get("STOREFRONT_TOKEN_PATH")
    if env:
        return env
    return os.path.join(os.path.expanduser("~"), ".storefront", "tokens.json")


class TokenStorage:
    def __init__(
        self,
        path: Optional[str] = None,
        now_provider=lambda: datetime.now(UTC),
        encoder: Optional[Callable[[str], str]] = None,
        decoder: Optional[Callable[[str], str]] = None,
    ) -> None:
        """encoder/decoder: optional str -> str hooks applied to the stored text."""

        self.path = path or default_token_path()
        self.now = now_provider
        self.encoder = encoder
        self.decoder = decoder

    # --- Public API ---
    def read(self) -> Dict[str, Any]:
        """Stored pair as a dict; FileNotFoundError when absent or leftover, ValueError when corrupted."""

        try:
            mtime = os.stat(self.path).st_mtime
        except FileNotFoundError:
            raise FileNotFoundError(self.path) from None
        if self._is_stale(datetime.fromtimestamp(mtime, UTC)):
            self.delete()
            raise FileNotFoundError(self.path)

        try:
            data = json.loads(self._load_text())
        except ValueError as exc:
            raise ValueError(f"token file is corrupted: {exc}") from exc
        self._validate_payload(data)
        return data

    def write(self, payload: Dict[str, Any]) -> None:
        self._validate_payload(payload)
        document = {key: payload[key] for key in _PERSISTED_KEYS if key in payload}
        content = json.dumps(document)
        if self.encoder is not None:
            try:
                content = self.encoder(content)
            except Exception as exc:  # noqa: BLE001
                raise ValueError("cannot encode token file") from exc
        self._replace_atomically(content)

    def save_tokens(self, access_token: str, refresh_token: str, expires_at_ms: Optional[int] = None) -> None:
        payload: Dict[str, Any] = {ACCESS_TOKEN_KEY: access_token, REFRESH_TOKEN_KEY: refresh_token}
        if expires_at_ms is not None:
            payload[EXPIRES_AT_KEY] = int(expires_at_ms)
        self.write(payload)

    def delete(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            return

    # --- Internal ---
    def _is_stale(self, written_at: datetime) -> bool:
        return self.now() - written_at > SESSION_MAX_AGE

    def _load_text(self) -> str:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError as exc:
            raise ValueError(f"unreadable: {exc}") from exc
        if self.decoder is None:
            return text
        try:
            return self.decoder(text)
        except Exception as exc:  # noqa: BLE001
            raise ValueError("cannot decode") from exc

    def _replace_atomically(self, content: str) -> None:
        # Readers must never see a truncated document.
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".storefront_tokens_", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as out:
                out.write(content)
                out.flush()
                os.fsync(out.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            os.remove(tmp_path)
            raise

    def _validate_payload(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise ValueError("token document must be an object")
        for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY):
            value = data.get(key)
            if not isinstance(value, str) or not value:
                raise ValueError(f"missing field: {key}")
        if EXPIRES_AT_KEY in data:
            expires = data[EXPIRES_AT_KEY]
            if isinstance(expires, bool) or not isinstance(expires, int) or expires < 0:
                raise ValueError(f"invalid field: {EXPIRES_AT_KEY}")


__all__ = [
    "ACCESS_TOKEN_KEY",
    "EXPIRES_AT_KEY",
    "REFRESH_TOKEN_KEY",
    "SESSION_MAX_AGE",
    "TokenStorage",
    "default_token_path",
]
