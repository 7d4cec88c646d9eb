"""Session tokens for callers that do not present a static API key.

Tokens are HS256 JWTs signed with the application's ``SECRET_KEY``; only
``type=access`` tokens identify a principal.
"""
from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt
from flask import current_app

ALGORITHM = "HS256"
SESSION_TOKEN_TYPE = "access"
SESSION_TTL_SECONDS = 60 * 60 * 24 * 7


def _signing_key() -> str:
    key = current_app.config.get("SECRET_KEY")
    if not key:
        raise RuntimeError("SECRET_KEY is not configured")
    return str(key)


def issue_session_token(user_id: int, ttl_seconds: int = SESSION_TTL_SECONDS) -> str:
    now = int(time.time())
    payload = {
        "sub": str(int(user_id)),
        "iat": now,
        "exp": now + int(ttl_seconds),
        "type": SESSION_TOKEN_TYPE,
    }
    return jwt.encode(payload, _signing_key(), algorithm=ALGORITHM)


def decode_session_token(token: str) -> Optional[Dict[str, Any]]:
    """Verified claims, or None for a bad signature, expiry or token type."""
    try:
        payload = jwt.decode(token, _signing_key(), algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None
    if payload.get("type") != SESSION_TOKEN_TYPE:
        return None
    return payload


def bearer_token(auth_header: str) -> Optional[str]:
    parts = (auth_header or "").split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None
