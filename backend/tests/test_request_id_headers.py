from __future__ import annotations

import unittest
import uuid

from app_case import KyveAppTestCase


class RequestIdHeadersTestCase(KyveAppTestCase):
    def test_generates_request_id_when_missing(self):
        res = self.client.get("/api/health")
        self.assertEqual(res.status_code, 200)
        rid = (res.headers.get("X-Request-ID") or "").strip()
        self.assertTrue(rid)
        uuid.UUID(rid)

    def test_echoes_request_id_when_provided(self):
        incoming = "rid-test-123"
        res = self.client.get("/api/health", headers={"X-Request-ID": incoming})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.headers.get("X-Request-ID"), incoming)

    def test_error_payload_includes_trace_id(self):
        res = self.client.post("/api/escrows", json={"productName": "Missing auth"})
        self.assertEqual(res.status_code, 401)
        body = res.get_json(force=True)
        self.assertIsInstance(body, dict)
        self.assertIn("trace_id", body)
        self.assertEqual((body.get("trace_id") or "").strip(), (res.headers.get("X-Request-ID") or "").strip())

    def test_transition_rows_carry_request_id(self):
        a = self._seed_user("a")
        res = self.client.post(
            "/api/escrows",
            headers={**self._auth(a), "X-Request-ID": "rid-create-1"},
            json=self._payload(),
        )
        escrow_id = res.get_json()["escrowId"]
        rows = self.client.get(f"/api/escrows/{escrow_id}/transitions", headers=self._auth(a)).get_json()["items"]
        self.assertEqual(rows[0]["request_id"], "rid-create-1")

    def test_oversized_request_id_is_clipped_once(self):
        a = self._seed_user("long")
        incoming = "r" * 200
        res = self.client.post(
            "/api/escrows",
            headers={**self._auth(a), "X-Request-ID": incoming},
            json=self._payload(),
        )
        self.assertEqual(res.headers.get("X-Request-ID"), incoming[:80])
        escrow_id = res.get_json()["escrowId"]
        rows = self.client.get(f"/api/escrows/{escrow_id}/transitions", headers=self._auth(a)).get_json()["items"]
        self.assertEqual(rows[0]["request_id"], incoming[:80])


if __name__ == "__main__":
    unittest.main()
