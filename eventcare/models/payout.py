# eventcare/models/payout.py
import enum

from ..clock import utcnow
from ..extensions import db


class PayoutMethod(str, enum.Enum):
    INSTANT = "instant"
    SCHEDULED = "scheduled"


class PayoutStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Payout(db.Model):
    __tablename__ = "payout"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey("job.id"), nullable=False, index=True)
    escrow_id = db.Column(db.Integer, db.ForeignKey("escrow_transaction.id"), nullable=False, index=True)
    nurse_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)       # gross minus platform fee
    fee = db.Column(db.Integer, nullable=False)          # payment-method fee
    net_amount = db.Column(db.Integer, nullable=False)   # amount - fee

    method = db.Column(
        db.Enum(PayoutMethod, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    status = db.Column(
        db.Enum(PayoutStatus, native_enum=False, length=20),
        nullable=False,
        default=PayoutStatus.PENDING,
        index=True,
    )
    scheduled_for = db.Column(db.Date, index=True)   # scheduled method only
    executed_at = db.Column(db.DateTime)
    failure_reason = db.Column(db.Text)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    job = db.relationship("Job")
    escrow = db.relationship("EscrowTransaction")
    nurse = db.relationship("User", foreign_keys=[nurse_id])

    __table_args__ = (
        # one live payout per job; FAILED rows stay as history
        db.Index(
            "uq_payout_live_job",
            "job_id",
            unique=True,
            sqlite_where=db.text("status IN ('PENDING', 'COMPLETED')"),
            postgresql_where=db.text("status IN ('PENDING', 'COMPLETED')"),
        ),
        db.CheckConstraint("net_amount >= 0", name="ck_payout_net_non_negative"),
        db.CheckConstraint("net_amount = amount - fee", name="ck_payout_net_matches"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "jobId": self.job_id,
            "escrowId": self.escrow_id,
            "nurseId": self.nurse_id,
            "amount": self.amount,
            "fee": self.fee,
            "netAmount": self.net_amount,
            "method": self.method.value,
            "status": self.status.value,
            "scheduledFor": self.scheduled_for.isoformat() if self.scheduled_for else None,
            "executedAt": self.executed_at.isoformat() if self.executed_at else None,
            "failureReason": self.failure_reason,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
