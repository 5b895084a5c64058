from __future__ import annotations

import os
from tempfile import TemporaryDirectory
import unittest
from datetime import datetime, timedelta, timezone

from storefront_client.token_storage import SESSION_MAX_AGE, TokenStorage

UTC = timezone.utc


class TokenStorageTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = TemporaryDirectory()
        self.now = datetime.now(UTC)
        self.store = TokenStorage(path=os.path.join(self.tmpdir.name, "tokens.json"), now_provider=lambda: self.now)

    def tearDown(self) -> None:  # noqa: D401
        self.tmpdir.cleanup()

    def test_save_and_read(self):
        self.store.save_tokens("A", "R", 1_700_000_900_000)
        data = self.store.read()
        self.assertEqual(data, {"access_token": "A", "refresh_token": "R", "expires_at_ms": 1_700_000_900_000})

    def test_expiry_is_optional(self):
        self.store.save_tokens("A", "R")
        self.assertNotIn("expires_at_ms", self.store.read())

    def test_missing_file_raises_not_found(self):
        with self.assertRaises(FileNotFoundError):
            self.store.read()

    def test_missing_field_raises(self):
        with self.assertRaises(ValueError):
            self.store.write({"access_token": "A"})
        with self.assertRaises(ValueError):
            self.store.write({"access_token": "", "refresh_token": "R"})

    def test_bad_expiry_raises(self):
        with self.assertRaises(ValueError):
            self.store.write({"access_token": "A", "refresh_token": "R", "expires_at_ms": "soon"})
        with self.assertRaises(ValueError):
            self.store.write({"access_token": "A", "refresh_token": "R", "expires_at_ms": True})

    def test_garbage_on_disk_is_value_error(self):
        for content in ("not json", "[1, 2]", '{"access_token": 1, "refresh_token": "R"}'):
            with open(self.store.path, "w", encoding="utf-8") as f:
                f.write(content)
            with self.assertRaises(ValueError):
                self.store.read()

    def test_unknown_keys_are_not_persisted(self):
        self.store.write({"access_token": "A", "refresh_token": "R", "user": {"id": "U-1"}})
        self.assertEqual(set(self.store.read()), {"access_token", "refresh_token"})

    def test_leftover_file_deleted_and_not_found(self):
        self.store.save_tokens("A", "R")
        old = self.now - SESSION_MAX_AGE - timedelta(minutes=1)
        os.utime(self.store.path, (old.timestamp(), old.timestamp()))

        with self.assertRaises(FileNotFoundError):
            self.store.read()
        self.assertFalse(os.path.exists(self.store.path))

    def test_file_inside_max_age_is_kept(self):
        self.store.save_tokens("A", "R")
        recent = self.now - SESSION_MAX_AGE + timedelta(minutes=1)
        os.utime(self.store.path, (recent.timestamp(), recent.timestamp()))

        self.assertEqual(self.store.read()["access_token"], "A")
        self.assertTrue(self.store._is_stale(self.now - SESSION_MAX_AGE - timedelta(seconds=1)))
        self.assertFalse(self.store._is_stale(self.now))

    def test_delete_is_idempotent(self):
        self.store.save_tokens("A", "R")
        self.store.delete()
        self.store.delete()
        self.assertFalse(os.path.exists(self.store.path))

    def test_no_temp_files_left_behind(self):
        self.store.save_tokens("A", "R")
        self.store.save_tokens("A2", "R2")
        self.assertEqual(os.listdir(self.tmpdir.name), ["tokens.json"])

    def test_encoder_decoder_roundtrip(self):
        def enc(s: str) -> str:
            return s[::-1]

        def dec(s: str) -> str:
            return s[::-1]

        store = TokenStorage(
            path=os.path.join(self.tmpdir.name, "tokens-enc.json"), now_provider=lambda: self.now, encoder=enc, decoder=dec
        )
        store.save_tokens("A", "R")
        with open(store.path, encoding="utf-8") as f:
            self.assertTrue(f.read().startswith("}"))
        self.assertEqual(store.read()["access_token"], "A")

    def test_decoder_failure_is_value_error(self):
        def dec(s: str) -> str:
            raise RuntimeError("bad key")

        self.store.save_tokens("A", "R")
        store = TokenStorage(path=self.store.path, now_provider=lambda: self.now, decoder=dec)
        with self.assertRaises(ValueError):
            store.read()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
