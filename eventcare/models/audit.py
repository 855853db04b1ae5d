# eventcare/models/audit.py
from ..clock import utcnow
from ..extensions import db


class AuditLog(db.Model):
    """Append-only; nothing in the app reads or updates these rows."""
    __tablename__ = "audit_log"

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, index=True)   # None = system (cron, batch)
    action = db.Column(db.String(64), nullable=False, index=True)
    target = db.Column(db.String(120), nullable=False, index=True)
    meta = db.Column("metadata", db.JSON)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
