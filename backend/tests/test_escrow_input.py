from __future__ import annotations

import unittest
from decimal import Decimal

from kyve.errors import SchemaValidationError, ValidationError
from kyve.services.escrow_input import (
    Logistics,
    Role,
    TradeStatus,
    normalize_amount,
    parse_create_payload,
    parse_list_args,
)


def _payload(**overrides):
    body = {
        "productName": "Canon EOS R",
        "category": "cameras",
        "logistics": "pickup",
        "amount": "250,000.50",
        "currency": "USD",
        "role": "buyer",
    }
    body.update(overrides)
    return body


class NormalizeAmountTestCase(unittest.TestCase):
    def test_strips_grouping_and_whitespace(self):
        self.assertEqual(normalize_amount("1,500"), Decimal("1500.00"))
        self.assertEqual(normalize_amount(" 1 234 567.891 "), Decimal("1234567.89"))

    def test_accepts_numbers(self):
        self.assertEqual(normalize_amount(1500), Decimal("1500.00"))
        self.assertEqual(normalize_amount(19.99), Decimal("19.99"))

    def test_rejects_non_positive_and_non_finite(self):
        for bad in ("0", "-5", "abc", "", " , ", "NaN", "Infinity", float("inf"), float("nan"), 0, -1, "0.001", True, None):
            with self.subTest(value=bad):
                with self.assertRaises(ValidationError) as ctx:
                    normalize_amount(bad)
                self.assertEqual(ctx.exception.message, "invalid amount")

    def test_rejects_amount_beyond_storage_precision(self):
        with self.assertRaises(ValidationError):
            normalize_amount("1e20")


class ParseCreatePayloadTestCase(unittest.TestCase):
    def test_normalizes_enums_once_at_the_boundary(self):
        data = parse_create_payload(_payload(logistics="PICKUP", role="Buyer"))
        self.assertEqual(data.role, Role.BUYER)
        self.assertEqual(data.invited_role, Role.SELLER)
        self.assertEqual(data.logistics, Logistics.PICKUP)
        self.assertEqual(data.currency, "USD")
        self.assertEqual(data.amount, Decimal("250000.50"))
        self.assertEqual(data.status, TradeStatus.PENDING)
        self.assertIsNone(data.receiver_id)

    def test_accepts_snake_case_aliases_and_receiver(self):
        body = _payload()
        body.pop("productName")
        body["product_name"] = "Tripod"
        body["receiver_id"] = "42"
        body["photo_url"] = "https://cdn.kyve.test/p.jpg"
        data = parse_create_payload(body)
        self.assertEqual(data.product_name, "Tripod")
        self.assertEqual(data.receiver_id, 42)
        self.assertEqual(data.photo_url, "https://cdn.kyve.test/p.jpg")

    def test_collects_every_schema_issue(self):
        with self.assertRaises(SchemaValidationError) as ctx:
            parse_create_payload({"productName": "", "logistics": "drone", "amount": [], "currency": "EUR", "role": "broker"})
        paths = {issue["path"][0] for issue in ctx.exception.issues}
        self.assertEqual(paths, {"productName", "category", "logistics", "amount", "currency", "role"})
        self.assertEqual(ctx.exception.status_code, 422)

    def test_non_object_body_is_a_schema_error(self):
        with self.assertRaises(SchemaValidationError):
            parse_create_payload(["not", "an", "object"])

    def test_well_formed_but_invalid_amount_is_a_validation_error(self):
        with self.assertRaises(ValidationError) as ctx:
            parse_create_payload(_payload(amount="-10"))
        self.assertEqual(ctx.exception.status_code, 400)

    def test_unknown_trade_status_rejected(self):
        with self.assertRaises(SchemaValidationError):
            parse_create_payload(_payload(status="SHIPPED"))

    def test_receiver_id_must_look_like_a_user_id(self):
        with self.assertRaises(SchemaValidationError):
            parse_create_payload(_payload(receiverId="not-a-user"))

    def test_receiver_id_outside_user_id_range(self):
        for bad in (0, -4, 10**20, "99999999999999999999", "\u00b2", 2**31):
            with self.subTest(receiver_id=bad):
                with self.assertRaises(SchemaValidationError) as ctx:
                    parse_create_payload(_payload(receiverId=bad))
                self.assertEqual(ctx.exception.issues[0]["path"], ["receiverId"])
        self.assertEqual(parse_create_payload(_payload(receiverId=str(2**31 - 1))).receiver_id, 2**31 - 1)


class ParseListArgsTestCase(unittest.TestCase):
    def test_defaults(self):
        args = parse_list_args({})
        self.assertEqual(args.limit, 20)
        self.assertIsNone(args.cursor)

    def test_bounds(self):
        self.assertEqual(parse_list_args({"limit": "50"}).limit, 50)
        for bad in ("0", "51", "ten"):
            with self.subTest(limit=bad):
                with self.assertRaises(SchemaValidationError):
                    parse_list_args({"limit": bad})

    def test_cursor_passthrough(self):
        self.assertEqual(parse_list_args({"cursor": " abc "}).cursor, "abc")


if __name__ == "__main__":
    unittest.main()
