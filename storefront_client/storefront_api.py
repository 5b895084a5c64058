"""Authenticated storefront endpoints (profile, products, payments).

Every call goes through ``_authorized``: fetch a valid token, send, and on a
401 force one refresh and retry once. Results are ``Result`` values whose
error is a ``RequestError`` or, when the session is gone, an ``AuthError``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote, urlencode

from .credentials import CredentialManager
from .error_handling import AuthError, ErrorAction, ErrorKind, RequestError, Result, map_error_to_action
from .http_client import RequestGateway

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    return quote(str(value), safe="")


def _data(result: Result[Any]) -> Result[Any]:
    """Unwrap the ``{"success": ..., "data": ...}`` envelope."""

    if not result.ok:
        return result
    body = result.value
    if isinstance(body, dict) and "data" in body:
        return Result.success(body["data"])
    return result


class StorefrontApi:
    def __init__(self, gateway: RequestGateway, credentials: CredentialManager) -> None:
        self.gateway = gateway
        self.credentials = credentials

    def _authorized(self, endpoint: str, method: str = "GET", body: Optional[Dict[str, Any]] = None) -> Result[Any]:
        try:
            self.credentials.get_valid_access_token()
        except AuthError as exc:
            return Result.failure(exc)

        result = self.gateway.request(endpoint, method, body)
        if result.ok or map_error_to_action(getattr(result.error, "kind", None)) != ErrorAction.RETRY_REFRESH:
            return result

        logger.info("%s %s rejected the access token, refreshing", method, endpoint)
        try:
            self.credentials.refresh()
        except AuthError as exc:
            return Result.failure(exc)
        return self.gateway.request(endpoint, method, body)

    # --- Profile ---
    def get_profile(self) -> Result[Any]:
        return self._authorized("/api/v1/user/profile")

    def update_profile(self, username: Optional[str] = None) -> Result[Any]:
        payload: Dict[str, Any] = {}
        if username is not None:
            payload["username"] = username
        return self._authorized("/api/v1/user/profile", "PUT", payload)

    # --- Products ---
    def list_products(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        is_active: Optional[bool] = None,
    ) -> Result[Any]:
        params = []
        for key, value in (
            ("page", page),
            ("limit", limit),
            ("cursor", cursor),
            ("search", search),
            ("min_price", min_price),
            ("max_price", max_price),
        ):
            if value:
                params.append((key, str(value)))
        if is_active is not None:
            params.append(("is_active", "true" if is_active else "false"))
        endpoint = "/api/v1/products"
        if params:
            endpoint = f"{endpoint}?{urlencode(params)}"
        return _data(self._authorized(endpoint))

    def get_product(self, product_id: str) -> Result[Any]:
        return _data(self._authorized(f"/api/v1/products/{_segment(product_id)}"))

    # --- Payments ---
    def create_payment(
        self,
        product_id: str,
        amount: int,
        admin_fee: int,
        payment_method: str,
        *,
        bank_type: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Result[Any]:
        payload: Dict[str, Any] = {
            "product_id": product_id,
            "amount": amount,
            "admin_fee": admin_fee,
            "payment_method": payment_method,
        }
        if bank_type:
            payload["bank_type"] = bank_type
        if notes:
            payload["notes"] = notes
        return _data(self._authorized("/api/v1/payments", "POST", payload))

    def get_payment(self, payment_id: str) -> Result[Any]:
        return _data(self._authorized(f"/api/v1/payments/{_segment(payment_id)}"))

    def get_payment_by_order_id(self, order_id: str) -> Result[Any]:
        return _data(self._authorized(f"/api/v1/payments/order/{_segment(order_id)}"))

    def list_user_payments(self, page: int = 1, limit: int = 10) -> Result[Any]:
        query = urlencode({"page": page, "limit": limit})
        return _data(self._authorized(f"/api/v1/payments/user?{query}"))

    def check_payment_status(self, payment_id: str) -> Result[Any]:
        """Ask the backend to re-check the payment with its gateway.

        Success value is the whole body: ``data``, ``status_changed``,
        ``old_status``, ``new_status``.
        """

        return self._authorized(f"/api/v1/payments/{_segment(payment_id)}/check", "POST")

    def get_payment_config(self) -> Result[Any]:
        return _data(self._authorized("/api/v1/payments/config"))

    def health_check(self) -> Result[Any]:
        return self.gateway.request("/health", "GET")

    def payment_status_fetcher(self, payment_id: str) -> Callable[[], Result[str]]:
        """Zero-argument status source for ``PaymentPoller``."""

        def fetch() -> Result[str]:
            result = self.check_payment_status(payment_id)
            if result.ok:
                payment = result.value.get("data") if isinstance(result.value, dict) else None
            elif isinstance(result.error, RequestError) and result.error.kind in (
                ErrorKind.NOT_FOUND,
                ErrorKind.CONFLICT,
            ):
                result = self.get_payment(payment_id)
                if not result.ok:
                    return Result.failure(result.error)
                payment = result.value
            else:
                return Result.failure(result.error)

            if not isinstance(payment, dict) or not isinstance(payment.get("status"), str):
                return Result.failure(
                    RequestError(ErrorKind.UNKNOWN, "payment response has no status", 200, None)
                )
            return Result.success(payment["status"])

        return fetch


__all__ = ["StorefrontApi"]
