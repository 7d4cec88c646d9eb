from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from kyve.errors import SchemaValidationError, ValidationError


class Role:
    BUYER = "BUYER"
    SELLER = "SELLER"

    ALL = (BUYER, SELLER)

    @classmethod
    def complement(cls, role: str) -> str:
        return cls.SELLER if (role or "").strip().upper() == cls.BUYER else cls.BUYER


class Logistics:
    NO = "NO"
    PICKUP = "PICKUP"
    DELIVERY = "DELIVERY"

    ALL = (NO, PICKUP, DELIVERY)


class Currency:
    NGN = "NGN"
    USD = "USD"
    GHS = "GHS"

    ALL = (NGN, USD, GHS)


class InvitationStatus:
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"

    ALL = (PENDING, ACCEPTED, DECLINED)


class TradeStatus:
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    ALL = (PENDING, COMPLETED, CANCELLED)


class Source:
    INTERNAL = "INTERNAL"
    API = "API"


DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 50

# Numeric(18, 2) column: 16 integer digits.
_AMOUNT_CEILING = Decimal("10") ** 16
_CENTS = Decimal("0.01")
_GROUPING_RE = re.compile(r"[,\s]+")
_MAX_USER_ID = 2**31 - 1


@dataclass
class EscrowInput:
    product_name: str
    category: str
    logistics: str
    amount: Decimal
    currency: str
    role: str
    receiver_id: int | None = None
    receiver_email: str = ""
    description: str = ""
    photo_url: str = ""
    color: str = ""
    status: str = TradeStatus.PENDING

    @property
    def invited_role(self) -> str:
        return Role.complement(self.role)


@dataclass
class ListArgs:
    limit: int = DEFAULT_LIST_LIMIT
    cursor: str | None = None


@dataclass
class _Issues:
    items: list[dict] = field(default_factory=list)

    def add(self, path: str, message: str) -> None:
        self.items.append({"path": [path], "message": message})

    def raise_if_any(self) -> None:
        if self.items:
            raise SchemaValidationError(self.items)


def normalize_amount(value: Any) -> Decimal:
    """Accept ``"1,500"``, ``" 1 500.50 "`` or a plain number; return a positive 2dp Decimal."""
    if isinstance(value, bool) or value is None:
        raise ValidationError("invalid amount")
    if isinstance(value, (int, float, Decimal)):
        raw = str(value)
    elif isinstance(value, str):
        raw = _GROUPING_RE.sub("", value)
    else:
        raise ValidationError("invalid amount")
    if not raw:
        raise ValidationError("invalid amount")
    try:
        amount = Decimal(raw)
    except (InvalidOperation, ValueError):
        raise ValidationError("invalid amount")
    if not amount.is_finite() or amount <= 0 or amount >= _AMOUNT_CEILING:
        raise ValidationError("invalid amount")
    amount = amount.quantize(_CENTS, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ValidationError("invalid amount")
    return amount


def _pick(payload: dict, *names: str) -> Any:
    for name in names:
        if name in payload and payload[name] is not None:
            return payload[name]
    return None


def _choice(issues: _Issues, payload: dict, path: str, allowed: tuple[str, ...], *aliases: str, required: bool = True) -> str:
    value = _pick(payload, path, *aliases)
    if value is None:
        if required:
            issues.add(path, "Required")
        return ""
    if not isinstance(value, str):
        issues.add(path, "Expected string")
        return ""
    normalized = value.strip().upper()
    if normalized not in allowed:
        options = ", ".join(a.lower() if path in ("role", "logistics") else a for a in allowed)
        issues.add(path, f"Invalid enum value. Expected one of: {options}")
        return ""
    return normalized


def _optional_text(issues: _Issues, payload: dict, path: str, *aliases: str, limit: int = 4000) -> str:
    value = _pick(payload, path, *aliases)
    if value is None:
        return ""
    if not isinstance(value, str):
        issues.add(path, "Expected string")
        return ""
    return value.strip()[:limit]


def _receiver_id(issues: _Issues, payload: dict) -> int | None:
    value = _pick(payload, "receiverId", "receiver_id")
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        issues.add("receiverId", "Expected user id")
        return None
    if isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, int) and 1 <= value <= _MAX_USER_ID:
        return value
    issues.add("receiverId", "Expected user id")
    return None


def parse_create_payload(payload: Any) -> EscrowInput:
    """Validate a create request body once, at the boundary.

    Schema problems (missing fields, wrong types, unknown enum values) raise
    ``SchemaValidationError`` with every issue found. Range problems on an
    otherwise well-formed amount raise ``ValidationError``.
    """
    if not isinstance(payload, dict):
        raise SchemaValidationError([{"path": [], "message": "Expected object"}])

    issues = _Issues()

    product_name = _pick(payload, "productName", "product_name")
    if not isinstance(product_name, str):
        issues.add("productName", "Required" if product_name is None else "Expected string")
        product_name = ""
    elif not product_name.strip():
        issues.add("productName", "String must contain at least 1 character(s)")

    category = _pick(payload, "category")
    if not isinstance(category, str):
        issues.add("category", "Required" if category is None else "Expected string")
        category = ""

    logistics = _choice(issues, payload, "logistics", Logistics.ALL)
    currency = _choice(issues, payload, "currency", Currency.ALL)
    role = _choice(issues, payload, "role", Role.ALL)
    status = _choice(issues, payload, "status", TradeStatus.ALL, required=False) or TradeStatus.PENDING

    amount_raw = _pick(payload, "amount")
    if amount_raw is None:
        issues.add("amount", "Required")
    elif isinstance(amount_raw, bool) or not isinstance(amount_raw, (str, int, float)):
        issues.add("amount", "Expected string or number")

    receiver_id = _receiver_id(issues, payload)
    receiver_email = _optional_text(issues, payload, "receiverEmail", "receiver_email", limit=255).lower()
    description = _optional_text(issues, payload, "description")
    photo_url = _optional_text(issues, payload, "photoUrl", "photo_url", limit=1024)
    color = _optional_text(issues, payload, "color", limit=64)

    issues.raise_if_any()

    return EscrowInput(
        product_name=product_name.strip()[:200],
        category=category.strip()[:120],
        logistics=logistics,
        amount=normalize_amount(amount_raw),
        currency=currency,
        role=role,
        receiver_id=receiver_id,
        receiver_email=receiver_email,
        description=description,
        photo_url=photo_url,
        color=color,
        status=status,
    )


def parse_list_args(args: Any) -> ListArgs:
    issues = _Issues()
    raw_limit = args.get("limit") if args is not None else None
    limit = DEFAULT_LIST_LIMIT
    if raw_limit not in (None, ""):
        try:
            limit = int(str(raw_limit).strip())
        except ValueError:
            issues.add("limit", "Expected number")
        else:
            if limit < 1:
                issues.add("limit", "Number must be greater than or equal to 1")
            elif limit > MAX_LIST_LIMIT:
                issues.add("limit", f"Number must be less than or equal to {MAX_LIST_LIMIT}")
    issues.raise_if_any()
    cursor = (args.get("cursor") or "").strip() if args is not None else ""
    return ListArgs(limit=limit, cursor=cursor or None)
