from __future__ import annotations

from kyve.models import Escrow
from kyve.services.escrow_input import InvitationStatus, Role


class EscrowView:
    DETAIL = "detail"
    JOIN = "join"
    COMPLETE_PRIVATE = "complete_private"
    DENIED = "denied"


def principal_id(principal) -> int | None:
    if principal is None:
        return None
    raw = getattr(principal, "id", principal)
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _same(a, b) -> bool:
    return a is not None and b is not None and int(a) == int(b)


def is_creator(principal, escrow: Escrow) -> bool:
    return _same(principal_id(principal), escrow.creator_id)


def is_participant(principal, escrow: Escrow) -> bool:
    uid = principal_id(principal)
    return any(_same(uid, slot) for slot in (escrow.creator_id, escrow.buyer_id, escrow.seller_id))


def is_complete(escrow: Escrow) -> bool:
    return escrow.buyer_id is not None and escrow.seller_id is not None


def display_role(principal, escrow: Escrow) -> str:
    # A non-creator participant plays the opposite side of the trade.
    if is_creator(principal, escrow):
        return escrow.role
    return Role.complement(escrow.role)


def needs_join(principal, escrow: Escrow) -> bool:
    return (
        not is_participant(principal, escrow)
        and not is_complete(escrow)
        and (escrow.invitation_status or "").upper() == InvitationStatus.PENDING
    )


def can_decline(principal, escrow: Escrow) -> bool:
    if is_creator(principal, escrow):
        return False
    if is_participant(principal, escrow):
        return True
    return not is_complete(escrow)


def resolve_view(principal, escrow: Escrow) -> str:
    """Which detail state a caller gets for an escrow they asked to see."""
    if is_participant(principal, escrow):
        return EscrowView.DETAIL
    if is_complete(escrow):
        return EscrowView.COMPLETE_PRIVATE
    if needs_join(principal, escrow):
        return EscrowView.JOIN
    return EscrowView.DENIED


def join_summary(escrow: Escrow) -> dict:
    return {
        "id": escrow.id,
        "product_name": escrow.product_name or "",
        "amount": str(escrow.amount),
        "currency": escrow.currency or "",
        "invited_role": escrow.invited_role or "",
    }
