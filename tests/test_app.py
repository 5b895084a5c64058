from __future__ import annotations

import os
import tempfile
import unittest
from datetime import datetime, timezone

from fakes import FakeSession, FakeTimerFactory, make_response
from storefront_client.app import StorefrontApp, to_epoch_ms
from storefront_client.client_config import ClientConfig
from storefront_client.credentials import CredentialState, now_ms
from storefront_client.event_bus import PAYMENT_STATUS, SESSION_STATUS
from storefront_client.http_client import RequestGateway
from storefront_client.payment_poller import PaymentPoller, PollOutcome
from storefront_client.token_storage import TokenStorage


class ToEpochMsTests(unittest.TestCase):
    def test_conversions(self) -> None:
        self.assertIsNone(to_epoch_ms(None))
        self.assertEqual(to_epoch_ms(1_700_000_000), 1_700_000_000_000)
        self.assertEqual(to_epoch_ms(datetime(2025, 1, 1, tzinfo=timezone.utc)), 1_735_689_600_000)
        self.assertEqual(to_epoch_ms("2025-01-01T00:00:00Z"), 1_735_689_600_000)
        self.assertEqual(to_epoch_ms("2025-01-01T07:00:00+07:00"), 1_735_689_600_000)
        self.assertIsNone(to_epoch_ms("yesterday"))


class StorefrontAppTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.session = FakeSession()
        self.timers = FakeTimerFactory()
        config = ClientConfig(base_url="http://api.test", token_path=os.path.join(self.tmpdir.name, "tokens.json"))
        self.app = StorefrontApp(
            config,
            gateway=RequestGateway(config.base_url, session=self.session),
            poller=PaymentPoller(timer_factory=self.timers),
        )

    def tearDown(self) -> None:  # noqa: D401
        self.app.teardown()
        self.tmpdir.cleanup()

    def _payment_events(self):
        return [e["payload"] for e in self.app.bus.events if e["event"] == PAYMENT_STATUS]

    def test_startup_without_stored_session(self):
        self.assertEqual(self.app.startup_flow(), CredentialState.UNAUTHENTICATED)
        self.assertEqual(self.app.bus.last(SESSION_STATUS)["status"], "none")
        self.assertEqual(self.session.calls, [])

    def test_startup_with_stored_session(self):
        TokenStorage(path=self.app.config.token_path).save_tokens("A-1", "R-1", now_ms() + 60_000)
        self.assertEqual(self.app.startup_flow(), CredentialState.VALID)
        last = self.app.bus.last(SESSION_STATUS)
        self.assertEqual(last, {"status": "active", "payload": {"state": "valid"}})
        self.assertEqual(self.app.gateway.current_token(), "A-1")

    def test_login_broadcasts_active(self):
        self.session.queue(
            make_response(200, {"user": {"id": "U-1"}, "access_token": "A-1", "refresh_token": "R-1", "expires_in": 900})
        )
        self.assertEqual(self.app.login("alice@example.com", "s3cret"), {"id": "U-1"})
        self.assertEqual(self.app.bus.last(SESSION_STATUS)["status"], "active")

    def test_watch_payment_publishes_events(self):
        self.app.credentials.establish("A-1", "R-1", 900)
        self.session.queue(
            make_response(200, {"data": {"id": "PAY-1", "status": "PENDING"}}),
            make_response(200, {"data": {"id": "PAY-1", "status": "SETTLEMENT"}}),
        )
        handle = self.app.watch_payment("PAY-1", created_at=datetime.now(timezone.utc), initial_status="PENDING")
        self.timers.run_until_idle()

        self.assertEqual(handle.outcome, PollOutcome.SUCCESS)
        kinds = [(e["kind"], e.get("status")) for e in self._payment_events()]
        self.assertEqual(kinds, [("update", "PENDING"), ("update", "SETTLEMENT"), ("terminal", "SETTLEMENT")])

    def test_watch_payment_exhausted(self):
        self.app.credentials.establish("A-1", "R-1", 900)
        for _ in range(10):
            self.session.queue(make_response(200, {"data": {"id": "PAY-1", "status": "PENDING"}}))
        self.app.watch_payment("PAY-1")
        self.timers.run_until_idle()
        self.assertEqual(self._payment_events()[-1], {"payment_id": "PAY-1", "kind": "exhausted"})

    def test_watch_old_payment_is_not_polled(self):
        handle = self.app.watch_payment("PAY-1", created_at="2020-01-01T00:00:00Z")
        self.assertEqual(handle.outcome, PollOutcome.WINDOW_EXPIRED)
        self.assertEqual(self.timers.timers, [])
        self.assertEqual(self.session.calls, [])

    def test_refresh_payment_reports_change(self):
        self.app.credentials.establish("A-1", "R-1", 900)
        self.session.queue(make_response(200, {"data": {"id": "PAY-1", "status": "EXPIRED"}}))
        self.app.watch_payment("PAY-1", initial_status="PENDING")

        result = self.app.refresh_payment("PAY-1")

        self.assertEqual(result.value, "EXPIRED")
        kinds = [e["kind"] for e in self._payment_events()]
        self.assertEqual(kinds, ["update", "changed", "terminal"])
        self.assertEqual(self.timers.pending(), [])

    def test_refresh_payment_without_poll(self):
        self.app.credentials.establish("A-1", "R-1", 900)
        self.session.queue(make_response(200, {"data": {"id": "PAY-2", "status": "PENDING"}}))
        self.assertEqual(self.app.refresh_payment("PAY-2").value, "PENDING")

    def test_logout_cancels_polls(self):
        self.app.credentials.establish("A-1", "R-1", 900)
        handle = self.app.watch_payment("PAY-1")
        self.app.logout()
        self.assertEqual(handle.outcome, PollOutcome.CANCELLED)
        self.assertEqual(self.timers.pending(), [])
        self.assertEqual(self.app.bus.last(SESSION_STATUS)["status"], "none")
        self.assertFalse(os.path.exists(self.app.config.token_path))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
