from kyve.models.user import User, generate_api_key
from kyve.models.escrow import Escrow
from kyve.models.escrow_transition import EscrowTransition
from kyve.models.idempotency_key import IdempotencyKey

__all__ = [
    "User",
    "generate_api_key",
    "Escrow",
    "EscrowTransition",
    "IdempotencyKey",
]
