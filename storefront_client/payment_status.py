"""Backend payment status vocabulary -> poll phase."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class PaymentPhase(str, Enum):
    PENDING = "pending"
    TERMINAL_SUCCESS = "terminal_success"
    TERMINAL_FAILURE = "terminal_failure"

    @property
    def terminal(self) -> bool:
        return self is not PaymentPhase.PENDING


# Storefront statuses plus the payment gateway's transaction_status names.
SUCCESS_STATUSES = frozenset({"success", "settlement", "capture"})
FAILURE_STATUSES = frozenset({"failed", "failure", "cancelled", "cancel", "expired", "expire", "deny"})


def _phase(value: Optional[str]) -> PaymentPhase:
    if not isinstance(value, str):
        return PaymentPhase.PENDING
    normalized = value.strip().lower()
    if normalized in SUCCESS_STATUSES:
        return PaymentPhase.TERMINAL_SUCCESS
    if normalized in FAILURE_STATUSES:
        return PaymentPhase.TERMINAL_FAILURE
    return PaymentPhase.PENDING


def classify_payment_status(status: Optional[str], transaction_status: Optional[str] = None) -> PaymentPhase:
    phase = _phase(status)
    if phase is PaymentPhase.PENDING and transaction_status:
        return _phase(transaction_status)
    return phase


def is_payment_successful(status: Optional[str]) -> bool:
    return classify_payment_status(status) is PaymentPhase.TERMINAL_SUCCESS


__all__ = [
    "FAILURE_STATUSES",
    "PaymentPhase",
    "SUCCESS_STATUSES",
    "classify_payment_status",
    "is_payment_successful",
]
