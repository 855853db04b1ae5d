# eventcare/models/report.py
from ..clock import utcnow
from ..extensions import db


class NurseActivityReport(db.Model):
    """Post-engagement report written by the accepted nurse."""
    __tablename__ = "nurse_activity_report"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey("job.id"), nullable=False, index=True)
    nurse_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)

    overall_summary = db.Column(db.Text, nullable=False)
    recommendations = db.Column(db.Text)
    participant_count = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    incidents = db.relationship(
        "ActivityIncident",
        back_populates="report",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    equipment = db.relationship(
        "ActivityEquipment",
        back_populates="report",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("job_id", "nurse_id", name="uq_activity_report_job_nurse"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "jobId": self.job_id,
            "nurseId": self.nurse_id,
            "overallSummary": self.overall_summary,
            "recommendations": self.recommendations,
            "participantCount": self.participant_count,
            "incidents": [i.to_dict() for i in self.incidents],
            "equipmentUsed": [e.name for e in self.equipment],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class ActivityIncident(db.Model):
    __tablename__ = "activity_incident"

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(db.Integer, db.ForeignKey("nurse_activity_report.id"), nullable=False, index=True)
    occurred_at = db.Column(db.String(40))   # free-form time as written in the field
    description = db.Column(db.Text, nullable=False)
    action_taken = db.Column(db.Text)
    severity = db.Column(db.String(20), default="low")  # low|medium|high

    report = db.relationship("NurseActivityReport", back_populates="incidents")

    def to_dict(self) -> dict:
        return {
            "time": self.occurred_at,
            "description": self.description,
            "actionTaken": self.action_taken,
            "severity": self.severity,
        }


class ActivityEquipment(db.Model):
    __tablename__ = "activity_equipment"

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(db.Integer, db.ForeignKey("nurse_activity_report.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    report = db.relationship("NurseActivityReport", back_populates="equipment")


class OrganizerFeedback(db.Model):
    """Organizer's structured assessment of the engagement."""
    __tablename__ = "organizer_feedback"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey("job.id"), nullable=False, index=True)
    organizer_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)

    # 1..5 each
    punctuality = db.Column(db.Integer, nullable=False)
    professionalism = db.Column(db.Integer, nullable=False)
    communication = db.Column(db.Integer, nullable=False)
    skill_level = db.Column(db.Integer, nullable=False)

    event_summary = db.Column(db.Text, nullable=False)
    issues = db.Column(db.Text)
    overtime_minutes = db.Column(db.Integer, default=0)
    would_recommend = db.Column(db.Boolean, default=True, nullable=False)
    additional_comments = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("job_id", "organizer_id", name="uq_feedback_job_organizer"),
    )

    @property
    def average_performance(self) -> float:
        scores = (self.punctuality, self.professionalism, self.communication, self.skill_level)
        return round(sum(scores) / len(scores), 2)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "jobId": self.job_id,
            "organizerId": self.organizer_id,
            "nursePerformance": {
                "punctuality": self.punctuality,
                "professionalism": self.professionalism,
                "communication": self.communication,
                "skillLevel": self.skill_level,
            },
            "averagePerformance": self.average_performance,
            "eventSummary": self.event_summary,
            "issues": self.issues,
            "overtimeMinutes": self.overtime_minutes,
            "wouldRecommend": self.would_recommend,
            "additionalComments": self.additional_comments,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
