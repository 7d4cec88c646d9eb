import uuid
from datetime import datetime
from decimal import Decimal

from kyve.extensions import db


def _new_escrow_id() -> str:
    return uuid.uuid4().hex


class Escrow(db.Model):
    __tablename__ = "escrows"
    __table_args__ = (
        db.Index("ix_escrows_created_at_id", "created_at", "id"),
    )

    id = db.Column(db.String(32), primary_key=True, default=_new_escrow_id)

    creator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # Creator's own side of the trade; invited_role is always the complement.
    role = db.Column(db.String(16), nullable=False)
    invited_role = db.Column(db.String(16), nullable=False)
    invitation_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    product_name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(120), nullable=False, default="")
    logistics = db.Column(db.String(16), nullable=False, default="NO")
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="NGN")
    description = db.Column(db.Text, nullable=True)
    photo_url = db.Column(db.String(1024), nullable=True)
    color = db.Column(db.String(64), nullable=True)

    source = db.Column(db.String(16), nullable=False, default="INTERNAL")

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    buyer = db.relationship("User", foreign_keys=[buyer_id], lazy="joined")
    seller = db.relationship("User", foreign_keys=[seller_id], lazy="joined")

    def to_dict(self) -> dict:
        amount = self.amount if self.amount is not None else Decimal("0")
        return {
            "id": self.id,
            "creator_id": int(self.creator_id),
            "buyer_id": int(self.buyer_id) if self.buyer_id is not None else None,
            "seller_id": int(self.seller_id) if self.seller_id is not None else None,
            "role": self.role or "",
            "invited_role": self.invited_role or "",
            "invitation_status": self.invitation_status or "PENDING",
            "status": self.status or "PENDING",
            "product_name": self.product_name or "",
            "category": self.category or "",
            "logistics": self.logistics or "NO",
            "amount": str(amount),
            "currency": self.currency or "",
            "description": self.description or "",
            "photo_url": self.photo_url or "",
            "color": self.color or "",
            "source": self.source or "INTERNAL",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "buyer": self.buyer.summary() if self.buyer is not None else None,
            "seller": self.seller.summary() if self.seller is not None else None,
        }
