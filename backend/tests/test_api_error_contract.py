from __future__ import annotations

import unittest
from unittest import mock

from kyve.services import escrow_service

from app_case import KyveAppTestCase


class ApiErrorContractTestCase(KyveAppTestCase):
    def test_unknown_api_route_returns_json_error_shape(self):
        res = self.client.get("/api/does-not-exist")
        self.assertEqual(res.status_code, 404)
        self.assertTrue(res.is_json)
        body = res.get_json(force=True) or {}
        self.assertFalse(bool(body.get("ok", True)))
        self.assertTrue(str(body.get("error") or "").strip())
        self.assertTrue(str(body.get("message") or "").strip())
        self.assertEqual(int(body.get("status") or 0), 404)
        self.assertTrue(str(body.get("trace_id") or "").strip())

    def test_domain_errors_use_the_same_shape(self):
        user = self._seed_user("shape")
        res = self.client.get("/api/escrows/missing", headers=self._auth(user))
        self.assertEqual(res.status_code, 404)
        body = res.get_json()
        self.assertEqual(body["error"], "NotFound")
        self.assertEqual(body["status"], 404)
        self.assertEqual(body["trace_id"], res.headers.get("X-Request-Id"))

    def test_unexpected_failure_is_opaque(self):
        user = self._seed_user("boom")
        with mock.patch.object(escrow_service, "_read_snapshot", side_effect=RuntimeError("db password is hunter2")):
            res = self.client.post("/api/escrows/anything/accept", headers=self._auth(user))
        self.assertEqual(res.status_code, 500)
        body = res.get_json()
        self.assertEqual(body["error"], "InternalServerError")
        self.assertNotIn("hunter2", res.get_data(as_text=True))

    def test_error_extras_are_merged_into_the_body(self):
        creator = self._seed_user("owner")
        stranger = self._seed_user("stranger")
        escrow_id = self.client.post(
            "/api/escrows", headers=self._auth(creator), json=self._payload()
        ).get_json()["escrowId"]
        res = self.client.get(f"/api/escrows/{escrow_id}", headers=self._auth(stranger))
        self.assertEqual(res.status_code, 403)
        body = res.get_json()
        self.assertEqual(body["error"], "Forbidden")
        self.assertTrue(body["can_join"])
        self.assertEqual(body["view"], "join")
        self.assertEqual(body["trace_id"], res.headers.get("X-Request-Id"))

    def test_health_does_not_resolve_the_caller(self):
        user = self._seed_user("health")
        with mock.patch("kyve.utils.identity.resolve_principal", side_effect=RuntimeError("db down")) as resolve:
            res = self.client.get("/api/health", headers=self._auth(user))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["db"], "ok")
        resolve.assert_not_called()


if __name__ == "__main__":
    unittest.main()
