"""Sign-in flows against the storefront auth endpoints.

Responsibilities:
- wrap login / register / OTP / Google OAuth / password reset calls;
- hand every issued token pair to ``CredentialManager``;
- logout clears the credential and the persisted keys.

Backend failures are raised as ``RequestError``; the caller decides how to
present them.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .credentials import DEFAULT_EXPIRES_IN, CredentialManager
from .http_client import RequestGateway

logger = logging.getLogger(__name__)


class AuthController:
    def __init__(self, gateway: RequestGateway, credentials: CredentialManager) -> None:
        self.gateway = gateway
        self.credentials = credentials

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = self.gateway.request(endpoint, "POST", payload).unwrap()
        return data if isinstance(data, dict) else {}

    def _sign_in(self, endpoint: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        data = self._post(endpoint, payload)
        self.credentials.establish_from_response(data)
        return data.get("user")

    def login(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        return self._sign_in("/api/v1/auth/login", {"email": email, "password": password})

    def register(self, username: str, email: str, password: str) -> Dict[str, Any]:
        return self._post("/api/v1/auth/register", {"username": username, "email": email, "password": password})

    def verify_otp(self, email: str, otp_code: str) -> Optional[Dict[str, Any]]:
        return self._sign_in("/api/v1/auth/verify-otp", {"email": email, "otp_code": otp_code})

    def resend_otp(self, email: str) -> Dict[str, Any]:
        return self._post("/api/v1/auth/resend-otp", {"email": email})

    def google_oauth(self, email: str, username: str, image_url: str, google_id: str) -> Optional[Dict[str, Any]]:
        return self._sign_in(
            "/api/v1/auth/google-oauth",
            {"email": email, "username": username, "image_url": image_url, "google_id": google_id},
        )

    def request_reset_password(self, email: str) -> Dict[str, Any]:
        return self._post("/api/v1/auth/request-reset-password", {"email": email})

    def verify_reset_password(self, email: str, otp_code: str, new_password: str) -> Optional[Dict[str, Any]]:
        return self._sign_in(
            "/api/v1/auth/verify-reset-password",
            {"email": email, "otp_code": otp_code, "new_password": new_password},
        )

    def sign_in_with_tokens(self, access_token: str, refresh_token: str) -> Optional[Dict[str, Any]]:
        """Adopt a token pair issued elsewhere, after checking it against the profile endpoint."""

        # The candidate token rides on this one call; the attached credential is untouched.
        result = self.gateway.request(
            "/api/v1/user/profile", "GET", headers={"Authorization": f"Bearer {access_token}"}
        )
        if not result.ok:
            logger.warning("token validation failed: %s", result.error)
            result.unwrap()
        self.credentials.establish(access_token, refresh_token, DEFAULT_EXPIRES_IN)
        data = result.value if isinstance(result.value, dict) else {}
        return data.get("user")

    def logout(self) -> None:
        self.credentials.logout()


__all__ = ["AuthController"]
