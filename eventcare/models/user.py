# eventcare/models/user.py
import secrets

from flask_login import UserMixin
from ..clock import utcnow
from ..extensions import db


ROLES = ("organizer", "nurse", "admin")


class User(UserMixin, db.Model):
    """Identity record owned by the account service; read here for role and name."""
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)

    # organizer|nurse|admin
    role = db.Column(db.String(20), nullable=False, default="organizer", index=True)

    api_token = db.Column(db.String(64), unique=True, index=True, default=lambda: secrets.token_hex(24))
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def display_name(self) -> str:
        return self.name or "(unnamed)"

    def rotate_token(self) -> str:
        self.api_token = secrets.token_hex(24)
        return self.api_token
