# eventcare/models/application.py
import enum

from ..clock import utcnow
from ..extensions import db


class ApplicationStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class Application(db.Model):
    __tablename__ = "application"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey("job.id"), nullable=False, index=True)
    nurse_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)

    message = db.Column(db.Text)
    quote_amount = db.Column(db.Integer)  # overrides Job.compensation when set

    status = db.Column(
        db.Enum(ApplicationStatus, native_enum=False, length=20, validate_strings=True),
        nullable=False,
        default=ApplicationStatus.PENDING,
        index=True,
    )
    created_at = db.Column(db.DateTime, default=utcnow)
    decided_at = db.Column(db.DateTime)

    job = db.relationship("Job", back_populates="applications")
    nurse = db.relationship("User", foreign_keys=[nurse_id])

    __table_args__ = (
        # one live (non-withdrawn) application per nurse and job
        db.Index(
            "uq_application_live_job_nurse",
            "job_id", "nurse_id",
            unique=True,
            sqlite_where=db.text("status != 'WITHDRAWN'"),
            postgresql_where=db.text("status != 'WITHDRAWN'"),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "jobId": self.job_id,
            "nurseId": self.nurse_id,
            "message": self.message,
            "quoteAmount": self.quote_amount,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "decidedAt": self.decided_at.isoformat() if self.decided_at else None,
        }
