from __future__ import annotations

import hashlib
import json
import os
from datetime import datetime
from typing import Any

from flask import has_request_context, request
from sqlalchemy.exc import IntegrityError

from kyve.extensions import db
from kyve.models import IdempotencyKey


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in ("1", "true", "yes", "on")


def idempotency_enforced() -> bool:
    return _env_bool("ENABLE_IDEMPOTENCY_ENFORCEMENT", False)


def _canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def _hash_request(*, scope: str, user_id: int | None, payload: Any) -> str:
    raw = f"{scope.strip()}|{user_id if user_id is not None else ''}|{_canonical_json(payload)}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def get_idempotency_key() -> str | None:
    if not has_request_context():
        return None
    k = request.headers.get("Idempotency-Key") or request.headers.get("X-Idempotency-Key")
    if not k:
        return None
    return k.strip()[:128] or None


def _error(code: str, message: str) -> dict:
    return {"ok": False, "error": code, "message": message}


def lookup_response(user_id: int | None, scope: str, payload: Any, *, idempotency_key: str | None = None):
    """Claim or replay an Idempotency-Key for ``scope``.

    Returns None when no key was sent (and none is required), otherwise one of
    ``("hit", body, status)``, ``("conflict", body, 409)``,
    ``("required", body, 400)`` or ``("miss", row, 0)``. A miss leaves a
    pending row that must be finished with ``store_response`` or dropped with
    ``release_key``.
    """
    k = (idempotency_key or get_idempotency_key() or "").strip()[:128]
    if not k:
        if idempotency_enforced():
            return (
                "required",
                _error("IDEMPOTENCY_KEY_REQUIRED", f"Idempotency-Key header is required for {scope}."),
                400,
            )
        return None

    req_hash = _hash_request(scope=scope, user_id=user_id, payload=payload)
    row = IdempotencyKey.query.filter_by(scope=scope, key=k).first()
    if row is None:
        row = IdempotencyKey(
            key=k,
            scope=scope,
            user_id=int(user_id) if user_id is not None else None,
            request_hash=req_hash,
            response_json=None,
            status_code=200,
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
        )
        try:
            db.session.add(row)
            db.session.commit()
            return ("miss", row, 0)
        except IntegrityError:
            # Lost the insert race; fall through and treat the winner's row as ours to replay.
            db.session.rollback()
            row = IdempotencyKey.query.filter_by(scope=scope, key=k).first()
            if row is None:
                raise

    if (row.request_hash or "").strip() != req_hash:
        return (
            "conflict",
            _error("IDEMPOTENCY_KEY_REUSE", "This Idempotency-Key was already used with a different request payload."),
            409,
        )
    if not row.completed:
        return (
            "conflict",
            _error("IDEMPOTENCY_KEY_IN_PROGRESS", "A request with this Idempotency-Key is still being processed."),
            409,
        )
    return ("hit", json.loads(row.response_json), int(row.status_code or 200))


def store_response(row: IdempotencyKey, response_json: Any, status_code: int) -> None:
    row.response_json = json.dumps(response_json, separators=(",", ":"), default=str)
    row.status_code = int(status_code or 200)
    row.updated_at = datetime.utcnow()
    db.session.add(row)
    db.session.commit()


def release_key(row: IdempotencyKey) -> None:
    # Failed requests must not pin the key; the client may retry with it.
    row_id = int(row.id)
    db.session.rollback()
    stale = db.session.get(IdempotencyKey, row_id)
    if stale is not None and not stale.completed:
        db.session.delete(stale)
        db.session.commit()
