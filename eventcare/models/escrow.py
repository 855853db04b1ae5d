# eventcare/models/escrow.py
import enum

from ..clock import utcnow
from ..extensions import db


class EscrowStatus(str, enum.Enum):
    AWAITING = "AWAITING"
    HOLDING = "HOLDING"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"


# monotonic, one-directional; RELEASED and REFUNDED are terminal
ESCROW_TRANSITIONS = {
    EscrowStatus.AWAITING: frozenset({EscrowStatus.HOLDING}),
    EscrowStatus.HOLDING: frozenset({EscrowStatus.RELEASED, EscrowStatus.REFUNDED}),
    EscrowStatus.RELEASED: frozenset(),
    EscrowStatus.REFUNDED: frozenset(),
}


class EscrowTransaction(db.Model):
    __tablename__ = "escrow_transaction"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey("job.id"), nullable=False, unique=True, index=True)

    gross_amount = db.Column(db.Integer, nullable=False)
    platform_fee = db.Column(db.Integer, nullable=False)

    status = db.Column(
        db.Enum(EscrowStatus, native_enum=False, length=20, validate_strings=True),
        nullable=False,
        default=EscrowStatus.AWAITING,
        index=True,
    )
    capture_reference = db.Column(db.String(64))   # mock gateway transaction id

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    held_at = db.Column(db.DateTime)
    released_at = db.Column(db.DateTime)
    refunded_at = db.Column(db.DateTime)
    release_reason = db.Column(db.String(255))
    refund_reason = db.Column(db.String(255))
    refund_amount = db.Column(db.Integer)

    job = db.relationship("Job", backref=db.backref("escrow", uselist=False))

    @property
    def payable_amount(self) -> int:
        return self.gross_amount - self.platform_fee

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "jobId": self.job_id,
            "amount": self.gross_amount,
            "platformFee": self.platform_fee,
            "status": self.status.value,
            "captureReference": self.capture_reference,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "releasedAt": self.released_at.isoformat() if self.released_at else None,
            "refundedAt": self.refunded_at.isoformat() if self.refunded_at else None,
        }
