# eventcare/models/job.py
import enum

from ..clock import utcnow
from ..extensions import db


class JobStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    APPLIED = "APPLIED"
    CONTRACTED = "CONTRACTED"
    ESCROW_HOLDING = "ESCROW_HOLDING"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW_PENDING = "REVIEW_PENDING"
    READY_TO_PAY = "READY_TO_PAY"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class Job(db.Model):
    __tablename__ = "job"

    id = db.Column(db.Integer, primary_key=True)
    organizer_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    headcount = db.Column(db.Integer, default=1)

    # integer yen
    compensation = db.Column(db.Integer, nullable=False)
    # fixed when an application is accepted (quote overrides compensation)
    contract_amount = db.Column(db.Integer)

    start_at = db.Column(db.DateTime)
    end_at = db.Column(db.DateTime)
    deadline = db.Column(db.DateTime)

    status = db.Column(
        db.Enum(JobStatus, native_enum=False, length=20, validate_strings=True),
        nullable=False,
        default=JobStatus.DRAFT,
        index=True,
    )
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    organizer = db.relationship("User", foreign_keys=[organizer_id])
    applications = db.relationship(
        "Application",
        back_populates="job",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def missing_fields(self) -> list[str]:
        """Fields that must be set before the job can be published."""
        missing = [name for name in ("title", "compensation", "start_at", "end_at", "deadline")
                   if not getattr(self, name)]
        if self.start_at and self.end_at and self.start_at >= self.end_at:
            missing.append("end_at")
        return missing

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organizerId": self.organizer_id,
            "title": self.title,
            "description": self.description,
            "headcount": self.headcount,
            "compensation": self.compensation,
            "contractAmount": self.contract_amount,
            "startAt": self.start_at.isoformat() if self.start_at else None,
            "endAt": self.end_at.isoformat() if self.end_at else None,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
