from __future__ import annotations

from flask import Blueprint

from kyve.segments.segment_escrows import create_from_request
from kyve.services.escrow_input import Source

external_api_bp = Blueprint("external_api_bp", __name__, url_prefix="/api/v1")


@external_api_bp.post("/escrows")
def external_create_escrow():
    # Sellers integrating from their own storefronts authenticate with their API key.
    return create_from_request(Source.API, message="Escrow created successfully")


# Path used by early integrations.
external_api_bp.add_url_rule("/kyve", endpoint="external_create_escrow_legacy", view_func=external_create_escrow, methods=["POST"])
