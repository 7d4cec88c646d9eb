from __future__ import annotations

import logging

from flask import g, has_request_context, request

from kyve.errors import Unauthenticated
from kyve.extensions import db
from kyve.models import User
from kyve.utils.jwt_utils import bearer_token, decode_session_token

logger = logging.getLogger(__name__)

_UNSET = object()


def _user_from_api_key(token: str) -> User | None:
    return User.query.filter_by(api_key=token).first()


def _user_from_session_token(token: str) -> User | None:
    payload = decode_session_token(token)
    if not payload:
        return None
    try:
        uid = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    return db.session.get(User, uid)


def resolve_principal(req=None) -> User | None:
    """Resolve the caller behind ``Authorization: Bearer <token>``.

    The token is tried as a static API key first (external callers), then as
    a signed session token. Returns None when neither yields a known user.
    """
    req = req or request
    token = bearer_token(req.headers.get("Authorization", ""))
    if not token:
        return None
    user = _user_from_api_key(token)
    if user is not None:
        return user
    return _user_from_session_token(token)


def current_principal() -> User | None:
    """Per-request cached principal for the HTTP layer."""
    if not has_request_context():
        return None
    cached = getattr(g, "principal", _UNSET)
    if cached is not _UNSET:
        return cached
    try:
        user = resolve_principal(request)
    except Exception:
        db.session.rollback()
        logger.exception("principal_resolution_failed path=%s", request.path)
        raise
    g.principal = user
    g.auth_user_id = int(user.id) if user is not None else None
    return user


def require_principal() -> User:
    user = current_principal()
    if user is None:
        raise Unauthenticated("Unauthorized")
    return user
