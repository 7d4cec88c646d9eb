from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime

from flask import current_app, has_app_context
from sqlalchemy import and_, func, or_, update

from kyve.errors import Conflict, Forbidden, NotFound, Unauthenticated, ValidationError
from kyve.extensions import db
from kyve.models import Escrow, EscrowTransition, User
from kyve.services.escrow_access import (
    EscrowView,
    can_decline,
    display_role,
    is_creator,
    is_participant,
    join_summary,
    needs_join,
    principal_id,
    resolve_view,
)
from kyve.services.escrow_input import EscrowInput, InvitationStatus, ListArgs, Role, Source
from kyve.utils.observability import get_request_id

logger = logging.getLogger(__name__)

DEFAULT_APP_URL = "http://localhost:3000"


@dataclass(frozen=True)
class SlotSnapshot:
    id: str
    creator_id: int
    buyer_id: int | None
    seller_id: int | None
    invitation_status: str


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 10) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else int(default)
    except ValueError:
        value = int(default)
    return max(minimum, min(value, maximum))


def accept_max_attempts() -> int:
    return _env_int("ESCROW_ACCEPT_MAX_ATTEMPTS", 3)


def _require_principal(principal) -> int:
    uid = principal_id(principal)
    if uid is None:
        raise Unauthenticated("Unauthorized")
    return uid


def build_share_url(escrow_id: str) -> str:
    base = ""
    if has_app_context():
        base = (current_app.config.get("APP_URL") or "").strip()
    base = base or DEFAULT_APP_URL
    return f"{base.rstrip('/')}/escrow/{escrow_id}"


def _record_transition(
    escrow_id: str,
    *,
    action: str,
    from_status: str,
    to_status: str,
    actor_id: int | None,
    slot: str | None = None,
) -> EscrowTransition:
    row = EscrowTransition(
        escrow_id=escrow_id,
        action=action,
        from_status=(from_status or "")[:16],
        to_status=to_status,
        actor_id=actor_id,
        slot=slot,
        request_id=get_request_id() or None,
        created_at=datetime.utcnow(),
    )
    db.session.add(row)
    return row


def _resolve_receiver(creator_id: int, data: EscrowInput) -> int | None:
    receiver_id = data.receiver_id
    if receiver_id is None and data.receiver_email:
        receiver = User.query.filter(func.lower(User.email) == data.receiver_email).first()
        # Unknown email: the invitation goes out through the share link instead.
        if receiver is not None:
            receiver_id = int(receiver.id)
    if receiver_id is None:
        return None
    if int(receiver_id) == int(creator_id):
        raise ValidationError("Creator (sender) and receiver cannot be the same user.", reason="self-escrow")
    if db.session.get(User, int(receiver_id)) is None:
        raise ValidationError("Receiver not found", reason="unknown-receiver")
    return int(receiver_id)


def create_escrow(principal, data: EscrowInput, *, source: str = Source.INTERNAL) -> tuple[Escrow, str]:
    uid = _require_principal(principal)
    receiver_id = _resolve_receiver(uid, data)

    creator_is_buyer = data.role == Role.BUYER
    escrow = Escrow(
        creator_id=uid,
        buyer_id=uid if creator_is_buyer else receiver_id,
        seller_id=receiver_id if creator_is_buyer else uid,
        role=data.role,
        invited_role=data.invited_role,
        invitation_status=InvitationStatus.PENDING,
        status=data.status,
        product_name=data.product_name,
        category=data.category,
        logistics=data.logistics,
        amount=data.amount,
        currency=data.currency,
        description=data.description or None,
        photo_url=data.photo_url or None,
        color=data.color or None,
        source=source,
    )
    try:
        db.session.add(escrow)
        db.session.flush()
        _record_transition(
            escrow.id,
            action="create",
            from_status="",
            to_status=InvitationStatus.PENDING,
            actor_id=uid,
            slot=data.role,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "escrow_created id=%s creator=%s role=%s receiver=%s source=%s",
        escrow.id,
        uid,
        escrow.role,
        receiver_id,
        source,
    )
    return escrow, build_share_url(escrow.id)


def _read_snapshot(escrow_id: str) -> SlotSnapshot | None:
    row = (
        db.session.query(
            Escrow.id,
            Escrow.creator_id,
            Escrow.buyer_id,
            Escrow.seller_id,
            Escrow.invitation_status,
        )
        .filter(Escrow.id == escrow_id)
        .first()
    )
    if row is None:
        return None
    return SlotSnapshot(
        id=row.id,
        creator_id=int(row.creator_id),
        buyer_id=int(row.buyer_id) if row.buyer_id is not None else None,
        seller_id=int(row.seller_id) if row.seller_id is not None else None,
        invitation_status=row.invitation_status or InvitationStatus.PENDING,
    )


def _conditional_update(escrow_id: str, values: dict, *, open_slot: str | None = None) -> bool:
    """Single UPDATE; when ``open_slot`` is given it only applies while that slot is still empty."""
    stmt = update(Escrow).where(Escrow.id == escrow_id)
    if open_slot == Role.SELLER:
        stmt = stmt.where(Escrow.seller_id.is_(None))
    elif open_slot == Role.BUYER:
        stmt = stmt.where(Escrow.buyer_id.is_(None))
    stmt = stmt.values(**values, updated_at=datetime.utcnow()).execution_options(synchronize_session=False)
    result = db.session.execute(stmt)
    return int(result.rowcount or 0) == 1


def accept_invitation(principal, escrow_id: str, *, max_attempts: int | None = None) -> dict:
    uid = _require_principal(principal)
    attempts = int(max_attempts or accept_max_attempts())

    for attempt in range(1, attempts + 1):
        snap = _read_snapshot(escrow_id)
        if snap is None:
            raise NotFound("Escrow not found")
        if snap.creator_id == uid:
            raise Forbidden("Creator cannot accept own escrow")

        # Seller slot is always tried before the buyer slot, whatever the invited role.
        values = {"invitation_status": InvitationStatus.ACCEPTED}
        slot = None
        if uid not in (snap.buyer_id, snap.seller_id):
            if snap.seller_id is None:
                slot = Role.SELLER
                values["seller_id"] = uid
            elif snap.buyer_id is None:
                slot = Role.BUYER
                values["buyer_id"] = uid

        try:
            applied = _conditional_update(snap.id, values, open_slot=slot)
            if applied:
                _record_transition(
                    snap.id,
                    action="accept",
                    from_status=snap.invitation_status,
                    to_status=InvitationStatus.ACCEPTED,
                    actor_id=uid,
                    slot=slot,
                )
                db.session.commit()
            else:
                db.session.rollback()
        except Exception:
            db.session.rollback()
            raise

        if applied:
            logger.info("escrow_invitation_accepted id=%s user=%s slot=%s attempt=%s", snap.id, uid, slot, attempt)
            return {"success": True, "escrowId": snap.id}
        logger.warning("escrow_accept_slot_taken id=%s user=%s slot=%s attempt=%s", snap.id, uid, slot, attempt)

    raise Conflict("Escrow changed while accepting the invitation; please retry")


def decline_invitation(principal, escrow_id: str) -> dict:
    uid = _require_principal(principal)
    escrow = db.session.get(Escrow, escrow_id)
    if escrow is None:
        raise NotFound("Escrow not found")
    if is_creator(uid, escrow):
        raise Forbidden("Creator cannot decline own escrow")
    if not can_decline(uid, escrow):
        raise Forbidden("Not allowed")

    previous = escrow.invitation_status or InvitationStatus.PENDING
    try:
        _conditional_update(escrow.id, {"invitation_status": InvitationStatus.DECLINED})
        _record_transition(
            escrow.id,
            action="decline",
            from_status=previous,
            to_status=InvitationStatus.DECLINED,
            actor_id=uid,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("escrow_invitation_declined id=%s user=%s", escrow_id, uid)
    return {"success": True}


def get_escrow(principal, escrow_id: str) -> Escrow:
    uid = _require_principal(principal)
    escrow = db.session.get(Escrow, escrow_id)
    if escrow is None:
        raise NotFound("Escrow not found")
    if not is_participant(uid, escrow):
        raise Forbidden(
            "Not allowed",
            can_join=needs_join(uid, escrow),
            view=resolve_view(uid, escrow),
        )
    return escrow


def view_escrow(principal, escrow_id: str) -> dict:
    uid = _require_principal(principal)
    escrow = db.session.get(Escrow, escrow_id)
    if escrow is None:
        raise NotFound("Escrow not found")

    view = resolve_view(uid, escrow)
    if view == EscrowView.DETAIL:
        return {
            "view": view,
            "escrow": escrow.to_dict(),
            "display_role": display_role(uid, escrow),
            "is_creator": is_creator(uid, escrow),
            "can_join": False,
        }
    if view == EscrowView.JOIN:
        return {"view": view, "escrow": join_summary(escrow), "can_join": True}
    if view == EscrowView.COMPLETE_PRIVATE:
        return {"view": view, "escrow": None, "can_join": False}
    raise Forbidden("Not allowed", can_join=False, view=view)


def list_mine(principal, args: ListArgs) -> dict:
    uid = _require_principal(principal)
    query = Escrow.query.filter(
        or_(
            Escrow.creator_id == uid,
            Escrow.buyer_id == uid,
            Escrow.seller_id == uid,
        )
    )
    if args.cursor:
        anchor = db.session.get(Escrow, args.cursor)
        if anchor is None or not is_participant(uid, anchor):
            raise ValidationError("Invalid cursor")
        query = query.filter(
            or_(
                Escrow.created_at < anchor.created_at,
                and_(Escrow.created_at == anchor.created_at, Escrow.id < anchor.id),
            )
        )

    rows = (
        query.order_by(Escrow.created_at.desc(), Escrow.id.desc())
        .limit(int(args.limit) + 1)
        .all()
    )
    next_cursor = None
    if len(rows) > int(args.limit):
        rows = rows[: int(args.limit)]
        next_cursor = rows[-1].id
    return {"items": rows, "nextCursor": next_cursor}
