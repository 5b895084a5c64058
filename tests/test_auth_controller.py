from __future__ import annotations

import json
import os
import tempfile
import unittest

from fakes import FakeSession, ManualClock, make_response
from storefront_client.auth_controller import AuthController
from storefront_client.credentials import CredentialManager, CredentialState
from storefront_client.error_handling import ErrorKind, RequestError
from storefront_client.http_client import RequestGateway
from storefront_client.token_storage import TokenStorage


TOKENS = {"access_token": "A-1", "refresh_token": "R-1", "expires_in": 900}


class AuthControllerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.session = FakeSession()
        self.gateway = RequestGateway("http://api.test", session=self.session)
        self.storage = TokenStorage(path=os.path.join(self.tmpdir.name, "tokens.json"))
        self.clock = ManualClock()
        self.statuses: list[str] = []
        self.credentials = CredentialManager(
            self.gateway, self.storage, clock=self.clock, broadcast_status=self.statuses.append
        )
        self.auth = AuthController(self.gateway, self.credentials)

    def tearDown(self) -> None:  # noqa: D401
        self.tmpdir.cleanup()

    def test_login_establishes_and_persists(self):
        self.session.queue(make_response(200, {"user": {"id": "U-1"}, **TOKENS}))
        user = self.auth.login("alice@example.com", "s3cret")

        self.assertEqual(user, {"id": "U-1"})
        self.assertEqual(self.session.calls[0]["json"], {"email": "alice@example.com", "password": "s3cret"})
        self.assertNotIn("Authorization", self.session.calls[0]["headers"])
        self.assertEqual(self.credentials.state, CredentialState.VALID)
        self.assertEqual(self.gateway.current_token(), "A-1")
        with open(self.storage.path, encoding="utf-8") as f:
            stored = json.load(f)
        self.assertEqual(stored["refresh_token"], "R-1")
        self.assertEqual(stored["expires_at_ms"], self.clock() + 900_000)
        self.assertEqual(self.statuses, ["active"])

    def test_login_rejected_raises(self):
        self.session.queue(make_response(401, {"error": "invalid email or password"}))
        with self.assertRaises(RequestError) as ctx:
            self.auth.login("alice@example.com", "wrong")
        self.assertEqual(ctx.exception.kind, ErrorKind.UNAUTHORIZED)
        self.assertEqual(ctx.exception.message, "invalid email or password")
        self.assertEqual(self.credentials.state, CredentialState.UNAUTHENTICATED)
        self.assertFalse(os.path.exists(self.storage.path))

    def test_login_response_without_tokens(self):
        self.session.queue(make_response(200, {"user": {"id": "U-1"}}))
        with self.assertRaises(RequestError) as ctx:
            self.auth.login("alice@example.com", "s3cret")
        self.assertEqual(ctx.exception.kind, ErrorKind.UNKNOWN)
        self.assertEqual(self.credentials.state, CredentialState.UNAUTHENTICATED)

    def test_register_does_not_sign_in(self):
        self.session.queue(make_response(201, {"message": "otp sent", "user": {"id": "U-2"}}))
        data = self.auth.register("bob", "bob@example.com", "pw")
        self.assertEqual(data["message"], "otp sent")
        self.assertEqual(self.credentials.state, CredentialState.UNAUTHENTICATED)

    def test_register_conflict(self):
        self.session.queue(make_response(409, {"error": "email already registered"}))
        with self.assertRaises(RequestError) as ctx:
            self.auth.register("bob", "bob@example.com", "pw")
        self.assertEqual(ctx.exception.kind, ErrorKind.CONFLICT)

    def test_verify_otp_signs_in(self):
        self.session.queue(make_response(200, {"user": {"id": "U-2"}, **TOKENS}))
        user = self.auth.verify_otp("bob@example.com", "123456")
        self.assertEqual(user["id"], "U-2")
        self.assertEqual(self.session.calls[0]["json"], {"email": "bob@example.com", "otp_code": "123456"})
        self.assertEqual(self.credentials.state, CredentialState.VALID)

    def test_google_oauth_and_reset_password(self):
        self.session.queue(
            make_response(200, {"user": {"id": "U-3"}, **TOKENS}),
            make_response(200, {"message": "otp sent"}),
        )
        self.auth.google_oauth("c@example.com", "carol", "http://img", "G-1")
        self.assertTrue(self.session.calls[0]["url"].endswith("/api/v1/auth/google-oauth"))
        self.assertEqual(self.auth.request_reset_password("c@example.com"), {"message": "otp sent"})
        self.assertTrue(self.session.calls[1]["url"].endswith("/api/v1/auth/request-reset-password"))

    def test_sign_in_with_tokens_validates_first(self):
        self.session.queue(make_response(200, {"user": {"id": "U-1"}}))
        user = self.auth.sign_in_with_tokens("A-7", "R-7")
        self.assertEqual(user, {"id": "U-1"})
        self.assertEqual(self.session.calls[0]["headers"]["Authorization"], "Bearer A-7")
        self.assertEqual(self.credentials.current.refresh_token, "R-7")

    def test_sign_in_with_tokens_failure_keeps_current_session(self):
        self.credentials.establish("A-1", "R-1", 900)
        self.session.queue(make_response(401, {"error": "unauthorized"}))
        with self.assertRaises(RequestError):
            self.auth.sign_in_with_tokens("A-bad", "R-bad")
        self.assertEqual(self.session.calls[0]["headers"]["Authorization"], "Bearer A-bad")
        self.assertEqual(self.gateway.current_token(), "A-1")
        self.assertEqual(self.credentials.current.access_token, "A-1")

    def test_refresh_during_token_validation_is_kept(self):
        self.credentials.establish("A-1", "R-1", 900)

        def refresh_then_reject(call):
            self.credentials.refresh()
            return make_response(401, {"error": "unauthorized"})

        self.session.queue(
            refresh_then_reject,
            make_response(200, {"access_token": "A-2", "refresh_token": "R-2", "expires_in": 900}),
        )
        with self.assertRaises(RequestError):
            self.auth.sign_in_with_tokens("X-foreign", "R-foreign")

        # The refresh went out with the session's own token, not the candidate.
        self.assertEqual(self.session.calls[1]["headers"]["Authorization"], "Bearer A-1")
        self.assertEqual(self.credentials.current.access_token, "A-2")
        self.assertEqual(self.gateway.current_token(), "A-2")

    def test_logout(self):
        self.credentials.establish("A-1", "R-1", 900)
        self.auth.logout()
        self.assertIsNone(self.gateway.current_token())
        self.assertFalse(os.path.exists(self.storage.path))
        self.assertEqual(self.statuses[-1], "none")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
