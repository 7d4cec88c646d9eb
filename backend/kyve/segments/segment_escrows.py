from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from kyve.errors import Forbidden, NotFound, ValidationError
from kyve.extensions import db
from kyve.models import Escrow, EscrowTransition
from kyve.services.escrow_access import is_participant
from kyve.services.escrow_input import Source, parse_create_payload, parse_list_args
from kyve.services.escrow_service import (
    accept_invitation,
    create_escrow,
    decline_invitation,
    get_escrow,
    list_mine,
    view_escrow,
)
from kyve.utils.identity import require_principal
from kyve.utils.idempotency import lookup_response, release_key, store_response

escrows_bp = Blueprint("escrows_bp", __name__, url_prefix="/api")

_INIT_DONE = False


@escrows_bp.before_app_request
def _ensure_tables_once():
    global _INIT_DONE
    if _INIT_DONE:
        return
    try:
        db.create_all()
    except SQLAlchemyError as e:
        current_app.logger.warning("escrow_tables_init_failed err=%s", e)
        return
    _INIT_DONE = True


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError("Invalid JSON")
    return payload


def create_from_request(source: str, *, message: str | None = None):
    """Shared create path for dashboard and external API callers."""
    u = require_principal()
    payload = _json_body()

    row = None
    idem = lookup_response(int(u.id), f"escrow:create:{source.lower()}:{int(u.id)}", payload)
    if idem is not None:
        kind, body_or_row, status = idem
        if kind != "miss":
            return jsonify(body_or_row), status
        row = body_or_row

    try:
        data = parse_create_payload(payload)
        escrow, share_url = create_escrow(u, data, source=source)
    except Exception:
        if row is not None:
            release_key(row)
        raise

    body = {
        "ok": True,
        "escrowId": escrow.id,
        "escrow": escrow.to_dict(),
        "share_url": share_url,
    }
    if message:
        body["message"] = message
    if row is not None:
        store_response(row, body, 201)
    return jsonify(body), 201


@escrows_bp.post("/escrows")
def create_escrow_route():
    return create_from_request(Source.INTERNAL)


@escrows_bp.get("/escrows")
def list_my_escrows():
    u = require_principal()
    args = parse_list_args(request.args)
    page = list_mine(u, args)
    return jsonify({
        "ok": True,
        "items": [e.to_dict() for e in page["items"]],
        "nextCursor": page["nextCursor"],
    }), 200


@escrows_bp.get("/escrows/<escrow_id>")
def get_escrow_route(escrow_id: str):
    u = require_principal()
    escrow = get_escrow(u, escrow_id)
    return jsonify({"ok": True, "escrow": escrow.to_dict()}), 200


@escrows_bp.get("/escrows/<escrow_id>/view")
def view_escrow_route(escrow_id: str):
    u = require_principal()
    state = view_escrow(u, escrow_id)
    return jsonify({"ok": True, **state}), 200


@escrows_bp.post("/escrows/<escrow_id>/accept")
def accept_invitation_route(escrow_id: str):
    u = require_principal()
    result = accept_invitation(u, escrow_id)
    return jsonify({"ok": True, **result}), 200


@escrows_bp.post("/escrows/<escrow_id>/decline")
def decline_invitation_route(escrow_id: str):
    u = require_principal()
    result = decline_invitation(u, escrow_id)
    return jsonify({"ok": True, **result}), 200


@escrows_bp.get("/escrows/<escrow_id>/transitions")
def escrow_transitions(escrow_id: str):
    u = require_principal()
    escrow = db.session.get(Escrow, escrow_id)
    if escrow is None:
        raise NotFound("Escrow not found")
    if not is_participant(u, escrow):
        raise Forbidden("Not allowed")
    rows = (
        EscrowTransition.query.filter_by(escrow_id=escrow.id)
        .order_by(EscrowTransition.created_at.asc(), EscrowTransition.id.asc())
        .all()
    )
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200
