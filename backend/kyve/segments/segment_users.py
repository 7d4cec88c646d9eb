from __future__ import annotations

from flask import Blueprint, jsonify

from kyve.utils.identity import require_principal

users_bp = Blueprint("users_bp", __name__, url_prefix="/api")


@users_bp.get("/user")
def current_user():
    u = require_principal()
    return jsonify(u.to_dict()), 200
