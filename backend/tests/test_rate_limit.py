from __future__ import annotations

import os
import unittest
from unittest import mock

from kyve.utils.rate_limit import check_limit, reset_limits

from app_case import KyveAppTestCase


class RateLimitTestCase(KyveAppTestCase):
    def setUp(self):
        reset_limits()

    def tearDown(self):
        reset_limits()

    def test_memory_window(self):
        self.assertEqual(check_limit("unit:window", limit=2, window_seconds=60), (True, 0))
        self.assertEqual(check_limit("unit:window", limit=2, window_seconds=60), (True, 0))
        ok, retry_after = check_limit("unit:window", limit=2, window_seconds=60)
        self.assertFalse(ok)
        self.assertGreaterEqual(retry_after, 1)

    def test_read_tier_limits_per_user(self):
        user = self._seed_user("limited")
        other = self._seed_user("unlimited")
        env = {"RATE_LIMIT_IN_TESTS": "1", "RATE_LIMIT_READ_PER_MINUTE": "2"}
        with mock.patch.dict(os.environ, env):
            codes = [self.client.get("/api/user", headers=self._auth(user)).status_code for _ in range(3)]
            self.assertEqual(codes, [200, 200, 429])
            res = self.client.get("/api/user", headers=self._auth(user))
            self.assertEqual(res.get_json()["error"], "RATE_LIMITED")
            self.assertTrue(res.headers.get("Retry-After"))
            self.assertEqual(self.client.get("/api/user", headers=self._auth(other)).status_code, 200)


if __name__ == "__main__":
    unittest.main()
