"""Client composition root.

Wires ClientConfig + RequestGateway + TokenStorage + CredentialManager +
AuthController + StorefrontApi + PaymentPoller around one EventBus, so the UI
layer (or the CLI, or a test) holds a single object per user session.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union

from .auth_controller import AuthController
from .client_config import ClientConfig, get_config
from .credentials import CredentialManager, CredentialState
from .error_handling import Result
from .event_bus import EventBus
from .http_client import RequestGateway
from .payment_poller import PaymentPoller, PollHandle
from .payment_status import PaymentPhase
from .storefront_api import StorefrontApi
from .token_storage import TokenStorage

logger = logging.getLogger(__name__)


def to_epoch_ms(value: Union[None, int, float, str, datetime]) -> Optional[int]:
    """ISO-8601 string / datetime / epoch seconds -> epoch milliseconds."""

    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    if isinstance(value, (int, float)):
        return int(float(value) * 1000)
    try:
        return to_epoch_ms(datetime.fromisoformat(str(value).strip().replace("Z", "+00:00")))
    except ValueError:
        logger.warning("unparseable timestamp: %r", value)
        return None


class StorefrontApp:
    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        gateway: Optional[RequestGateway] = None,
        storage: Optional[TokenStorage] = None,
        poller: Optional[PaymentPoller] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        self.config = config or get_config()
        self.bus = bus or EventBus()
        self.gateway = gateway or RequestGateway(self.config.base_url, timeout=self.config.timeout)
        self.storage = storage or TokenStorage(path=self.config.token_path or None)
        self.credentials = CredentialManager(
            self.gateway,
            self.storage,
            broadcast_status=self.bus.broadcast_session_status,
        )
        self.auth = AuthController(self.gateway, self.credentials)
        self.api = StorefrontApi(self.gateway, self.credentials)
        self.poller = poller or PaymentPoller()

    # --- Session ---
    def startup_flow(self) -> CredentialState:
        """Rehydrate a stored session; broadcasts "active" or "none"."""

        credential = self.credentials.restore()
        if credential is None:
            self.bus.broadcast_session_status("none")
            return CredentialState.UNAUTHENTICATED
        state = self.credentials.state
        self.bus.broadcast_session_status("active", {"state": state.value})
        return state

    def login(self, email: str, password: str) -> Optional[dict]:
        return self.auth.login(email, password)

    def logout(self) -> None:
        self.teardown()
        self.auth.logout()

    # --- Payments ---
    def watch_payment(
        self,
        payment_id: str,
        created_at: Union[None, int, float, str, datetime] = None,
        initial_status: Optional[str] = None,
    ) -> PollHandle:
        def on_update(status: str, phase: PaymentPhase) -> None:
            self.bus.broadcast_payment_status(payment_id, "update", status=status, phase=phase.value)

        def on_change(old: Optional[str], new: str) -> None:
            self.bus.broadcast_payment_status(payment_id, "changed", old_status=old, new_status=new)

        def on_terminal(status: str, phase: PaymentPhase) -> None:
            self.bus.broadcast_payment_status(payment_id, "terminal", status=status, phase=phase.value)

        def on_exhausted() -> None:
            self.bus.broadcast_payment_status(payment_id, "exhausted")

        return self.poller.start_polling(
            payment_id,
            self.api.payment_status_fetcher(payment_id),
            on_terminal,
            on_update,
            on_status_change=on_change,
            on_exhausted=on_exhausted,
            created_at_ms=to_epoch_ms(created_at),
            initial_status=initial_status,
        )

    def refresh_payment(self, payment_id: str) -> Result[Any]:
        """Manual "Refresh Status": goes through the poll when one exists."""

        handle = self.poller.get(payment_id)
        if handle is not None:
            return handle.check_now()
        return self.api.payment_status_fetcher(payment_id)()

    def teardown(self) -> None:
        self.poller.cancel_all()


__all__ = ["StorefrontApp", "to_epoch_ms"]
