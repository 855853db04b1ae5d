# eventcare/models/review.py
from ..clock import utcnow
from ..extensions import db


class Review(db.Model):
    __tablename__ = "review"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey("job.id"), nullable=False, index=True)
    author_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    target_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)

    rating = db.Column(db.Integer, nullable=False)  # 1..5
    tags = db.Column(db.JSON, default=list)
    comment = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    job = db.relationship("Job", backref=db.backref("reviews", lazy="selectin"))
    author = db.relationship("User", foreign_keys=[author_id])
    target = db.relationship("User", foreign_keys=[target_id])

    __table_args__ = (
        db.UniqueConstraint("job_id", "author_id", "target_id", name="uq_review_job_author_target"),
        db.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating_range"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "jobId": self.job_id,
            "authorId": self.author_id,
            "targetId": self.target_id,
            "rating": self.rating,
            "tags": list(self.tags or []),
            "comment": self.comment,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "author": {"id": self.author_id, "name": getattr(self.author, "display_name", None),
                       "role": getattr(self.author, "role", None)},
            "target": {"id": self.target_id, "name": getattr(self.target, "display_name", None),
                       "role": getattr(self.target, "role", None)},
        }
