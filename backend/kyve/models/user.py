import secrets
from datetime import datetime

from kyve.extensions import db


def generate_api_key() -> str:
    return f"kyv_{secrets.token_urlsafe(32)}"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)

    # Static credential for external API callers (Authorization: Bearer <api_key>)
    api_key = db.Column(db.String(96), unique=True, index=True, nullable=False, default=generate_api_key)

    is_guest = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def rotate_api_key(self) -> str:
        self.api_key = generate_api_key()
        return self.api_key

    def summary(self) -> dict:
        return {
            "id": int(self.id),
            "name": self.name or "",
            "email": self.email or "",
        }

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "name": self.name or "",
            "email": self.email or "",
            "is_guest": bool(self.is_guest),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
