"""Adaptive payment status polling.

Schedule per poll:
- attempt 1 immediately;
- attempts 2-3 after SHORT_INTERVAL, 4-7 after MEDIUM_INTERVAL, 8-10 after
  LONG_INTERVAL;
- no automatic attempt past MAX_ATTEMPTS (outcome EXHAUSTED).

A resource older than MAX_POLL_AGE is never polled, and one seeded with a
terminal status settles without a fetch. Once terminal, later non-terminal
results are dropped. Timers come from an injectable factory
(``threading.Timer`` by default); every exit path cancels the pending one.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .credentials import now_ms
from .error_handling import Result
from .payment_status import PaymentPhase, classify_payment_status

logger = logging.getLogger(__name__)

SHORT_INTERVAL = 2.0
MEDIUM_INTERVAL = 5.0
LONG_INTERVAL = 10.0
MAX_ATTEMPTS = 10
MAX_POLL_AGE_MS = 30 * 60 * 1000

TimerFactory = Callable[[float, Callable[[], None]], Any]
FetchStatus = Callable[[], Result[str]]


def delay_before_attempt(attempt: int) -> float:
    """Seconds to wait before automatic attempt number ``attempt`` (1-based)."""

    if attempt <= 1:
        return 0.0
    if attempt <= 3:
        return SHORT_INTERVAL
    if attempt <= 7:
        return MEDIUM_INTERVAL
    return LONG_INTERVAL


def thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class PollOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    WINDOW_EXPIRED = "window_expired"


@dataclass
class PollState:
    resource_id: str
    started_at_ms: int
    attempt_count: int = 0
    status: PaymentPhase = PaymentPhase.PENDING
    last_status: Optional[str] = None
    outcome: Optional[PollOutcome] = None


def _terminal_outcome(phase: PaymentPhase) -> PollOutcome:
    return PollOutcome.SUCCESS if phase is PaymentPhase.TERMINAL_SUCCESS else PollOutcome.FAILURE


class PollHandle:
    """One in-flight poll. Returned by ``PaymentPoller.start_polling``."""

    def __init__(
        self,
        resource_id: str,
        fetch_status: FetchStatus,
        *,
        started_at_ms: int,
        timer_factory: TimerFactory,
        classify: Callable[[Optional[str]], PaymentPhase],
        max_attempts: int,
        on_terminal: Optional[Callable[[str, PaymentPhase], None]] = None,
        on_update: Optional[Callable[[str, PaymentPhase], None]] = None,
        on_status_change: Optional[Callable[[Optional[str], str], None]] = None,
        on_exhausted: Optional[Callable[[], None]] = None,
        initial_status: Optional[str] = None,
        release: Optional[Callable[["PollHandle"], None]] = None,
    ) -> None:
        self._fetch = fetch_status
        self._release = release
        self._timer_factory = timer_factory
        self._classify = classify
        self._max_attempts = max_attempts
        self._on_terminal = on_terminal
        self._on_update = on_update
        self._on_status_change = on_status_change
        self._on_exhausted = on_exhausted
        self._lock = threading.RLock()
        self._timer: Any = None
        self._terminal_fired = False
        self._cancelled = False
        self._state = PollState(resource_id=resource_id, started_at_ms=started_at_ms, last_status=initial_status)
        if initial_status is not None:
            self._state.status = classify(initial_status)

    @property
    def resource_id(self) -> str:
        return self._state.resource_id

    @property
    def state(self) -> PollState:
        with self._lock:
            return replace(self._state)

    @property
    def outcome(self) -> Optional[PollOutcome]:
        with self._lock:
            return self._state.outcome

    @property
    def active(self) -> bool:
        with self._lock:
            return self._state.outcome is None

    @property
    def has_pending_timer(self) -> bool:
        with self._lock:
            return self._timer is not None

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            if self._state.outcome is None:
                self._state.outcome = PollOutcome.CANCELLED
            self._cancel_timer_locked()
        self._finished()
        logger.debug("poll %s cancelled", self.resource_id)

    def check_now(self) -> Result[str]:
        """Manual refresh: one fetch right now, errors returned to the caller."""

        result = self._fetch()
        if result.ok:
            self._observe(result.value, manual=True)
        return result

    # --- Internal ---
    def _start(self) -> None:
        with self._lock:
            if self._state.outcome is not None:
                return
            phase = self._state.status
            if not phase.terminal:
                self._schedule_locked(delay_before_attempt(1))
                return
            # Seeded with a settled status: nothing to poll.
            self._terminal_fired = True
            self._state.outcome = _terminal_outcome(phase)
            status = self._state.last_status
        self._finished()
        logger.info("poll %s already settled (%s)", self.resource_id, status)
        if self._on_terminal:
            self._on_terminal(status, phase)

    def _expire_window(self) -> None:
        with self._lock:
            self._state.outcome = PollOutcome.WINDOW_EXPIRED

    def _schedule_locked(self, delay: float) -> None:
        timer = self._timer_factory(delay, self._tick)
        self._timer = timer
        timer.start()

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _finished(self) -> None:
        if self._release is not None:
            self._release(self)

    def _tick(self) -> None:
        with self._lock:
            if self._state.outcome is not None:
                return
            self._timer = None
            self._state.attempt_count += 1
            attempt = self._state.attempt_count

        try:
            result = self._fetch()
        except Exception:  # noqa: BLE001
            logger.exception("poll %s attempt %d raised", self.resource_id, attempt)
            result = None
        if result is not None:
            if result.ok:
                self._observe(result.value, manual=False)
            else:
                logger.warning("poll %s attempt %d failed: %s", self.resource_id, attempt, result.error)

        exhausted = False
        with self._lock:
            if self._state.outcome is not None:
                return
            if attempt >= self._max_attempts:
                self._state.outcome = PollOutcome.EXHAUSTED
                self._cancel_timer_locked()
                exhausted = True
            else:
                self._schedule_locked(delay_before_attempt(attempt + 1))

        if exhausted:
            self._finished()
            logger.info("poll %s exhausted after %d attempts", self.resource_id, attempt)
            if self._on_exhausted:
                self._on_exhausted()

    def _observe(self, status: Optional[str], *, manual: bool) -> None:
        phase = self._classify(status)
        with self._lock:
            if self._cancelled:
                return
            if self._terminal_fired and not phase.terminal:
                logger.debug("poll %s ignoring late %s after terminal status", self.resource_id, status)
                return
            previous = self._state.last_status
            self._state.last_status = status
            self._state.status = phase
            changed = manual and previous is not None and previous != status
            fire_terminal = phase.terminal and not self._terminal_fired
            if fire_terminal:
                self._terminal_fired = True
                # A manual check after exhaustion may still settle the poll.
                if self._state.outcome in (None, PollOutcome.EXHAUSTED):
                    self._state.outcome = _terminal_outcome(phase)
                self._cancel_timer_locked()

        if self._on_update:
            self._on_update(status, phase)
        if changed and self._on_status_change:
            self._on_status_change(previous, status)
        if fire_terminal:
            self._finished()
            logger.info("poll %s reached %s (%s)", self.resource_id, phase.value, status)
            if self._on_terminal:
                self._on_terminal(status, phase)


class PaymentPoller:
    def __init__(
        self,
        *,
        timer_factory: TimerFactory = thread_timer,
        clock: Callable[[], int] = now_ms,
        classify: Callable[[Optional[str]], PaymentPhase] = classify_payment_status,
        max_attempts: int = MAX_ATTEMPTS,
        max_age_ms: int = MAX_POLL_AGE_MS,
    ) -> None:
        self._timer_factory = timer_factory
        self._clock = clock
        self._classify = classify
        self._max_attempts = max_attempts
        self._max_age_ms = max_age_ms
        self._lock = threading.Lock()
        self._polls: Dict[str, PollHandle] = {}

    def start_polling(
        self,
        resource_id: str,
        fetch_status: FetchStatus,
        on_terminal: Optional[Callable[[str, PaymentPhase], None]] = None,
        on_update: Optional[Callable[[str, PaymentPhase], None]] = None,
        *,
        on_status_change: Optional[Callable[[Optional[str], str], None]] = None,
        on_exhausted: Optional[Callable[[], None]] = None,
        created_at_ms: Optional[int] = None,
        initial_status: Optional[str] = None,
    ) -> PollHandle:
        now = self._clock()
        with self._lock:
            existing = self._polls.get(resource_id)
            if existing is not None and existing.active:
                return existing

            handle = PollHandle(
                resource_id,
                fetch_status,
                started_at_ms=now,
                timer_factory=self._timer_factory,
                classify=self._classify,
                max_attempts=self._max_attempts,
                on_terminal=on_terminal,
                on_update=on_update,
                on_status_change=on_status_change,
                on_exhausted=on_exhausted,
                initial_status=initial_status,
                release=self._release,
            )
            if created_at_ms is not None and now - created_at_ms > self._max_age_ms:
                logger.info("not polling %s: created %d ms ago", resource_id, now - created_at_ms)
                handle._expire_window()
                self._polls.pop(resource_id, None)
                return handle
            self._polls[resource_id] = handle

        logger.debug("polling %s", resource_id)
        handle._start()
        return handle

    def _release(self, handle: PollHandle) -> None:
        with self._lock:
            if self._polls.get(handle.resource_id) is handle:
                del self._polls[handle.resource_id]

    def get(self, resource_id: str) -> Optional[PollHandle]:
        with self._lock:
            return self._polls.get(resource_id)

    def cancel(self, resource_id: str) -> None:
        with self._lock:
            handle = self._polls.pop(resource_id, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        with self._lock:
            handles = list(self._polls.values())
            self._polls.clear()
        for handle in handles:
            handle.cancel()

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for h in self._polls.values() if h.active)


__all__ = [
    "LONG_INTERVAL",
    "MAX_ATTEMPTS",
    "MAX_POLL_AGE_MS",
    "MEDIUM_INTERVAL",
    "SHORT_INTERVAL",
    "PaymentPoller",
    "PollHandle",
    "PollOutcome",
    "PollState",
    "delay_before_attempt",
    "thread_timer",
]
