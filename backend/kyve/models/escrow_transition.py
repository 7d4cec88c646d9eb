from datetime import datetime

from kyve.extensions import db


class EscrowTransition(db.Model):
    __tablename__ = "escrow_transitions"

    id = db.Column(db.Integer, primary_key=True)
    escrow_id = db.Column(db.String(32), db.ForeignKey("escrows.id"), nullable=False, index=True)
    action = db.Column(db.String(16), nullable=False)
    from_status = db.Column(db.String(16), nullable=False, default="")
    to_status = db.Column(db.String(16), nullable=False)
    actor_id = db.Column(db.Integer, nullable=True, index=True)
    # Slot filled by this transition, if any ("BUYER" / "SELLER").
    slot = db.Column(db.String(16), nullable=True)
    request_id = db.Column(db.String(80), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "escrow_id": self.escrow_id or "",
            "action": self.action or "",
            "from_status": self.from_status or "",
            "to_status": self.to_status or "",
            "actor_id": int(self.actor_id) if self.actor_id is not None else None,
            "slot": self.slot or None,
            "request_id": self.request_id or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
