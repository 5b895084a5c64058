"""In-process event bus between the client core and its UI.

- emit(event, payload): record and deliver an event to subscribers.
- on(event, handler): subscribe.
- broadcast_session_status(status): ``sessionStatus`` event ("active" / "none").
- broadcast_payment_status(...): ``paymentStatus`` event for one payment.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List


SESSION_STATUS = "sessionStatus"
PAYMENT_STATUS = "paymentStatus"


class EventBus:
    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []
        self.handlers: Dict[str, List[Callable[[Any], None]]] = {}

    def emit(self, event: str, payload: Any = None) -> None:
        self.events.append({"event": event, "payload": payload})
        for handler in list(self.handlers.get(event, [])):
            handler(payload)

    def on(self, event: str, handler: Callable[[Any], None]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Callable[[Any], None]) -> None:
        handlers = self.handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def broadcast_session_status(self, status: str, payload: Any = None) -> None:
        self.emit(SESSION_STATUS, {"status": status, "payload": payload})

    def broadcast_payment_status(self, payment_id: str, kind: str, **payload: Any) -> None:
        self.emit(PAYMENT_STATUS, {"payment_id": payment_id, "kind": kind, **payload})

    def last(self, event: str) -> Any:
        for entry in reversed(self.events):
            if entry["event"] == event:
                return entry["payload"]
        return None


__all__ = ["EventBus", "PAYMENT_STATUS", "SESSION_STATUS"]
