# eventcare/services/reviews.py
from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..clock import utcnow
from ..errors import (
    AuthorizationError,
    DuplicateReview,
    InvalidJobStatus,
    InvalidStateTransition,
    NotFoundError,
    ReviewLocked,
    ValidationError,
)
from ..models.application import Application, ApplicationStatus
from ..models.job import JobStatus
from ..models.review import Review
from .uow import transaction

log = logging.getLogger(__name__)

# review-pending, then the "completed" side of the job (payout may still be open)
REVIEWABLE_STATUSES = (JobStatus.REVIEW_PENDING, JobStatus.READY_TO_PAY, JobStatus.PAID)


def _clean_tags(tags: Optional[Iterable[str]]) -> list[str]:
    seen = []
    for t in tags or []:
        t = (t or "").strip()
        if t and t not in seen:
            seen.append(t[:50])
    return seen


class ReviewGate:
    """Flips REVIEW_PENDING to READY_TO_PAY once every pairing reviewed both ways."""

    def __init__(self, session, lifecycle):
        self.session = session
        self.lifecycle = lifecycle

    def expected_reviews(self, job_id: int) -> int:
        accepted = (
            self.session.query(func.count(Application.id))
            .filter(Application.job_id == job_id, Application.status == ApplicationStatus.ACCEPTED)
            .scalar()
        )
        # organizer -> nurse and nurse -> organizer per accepted pairing
        return 2 * (accepted or 0)

    def submitted_reviews(self, job_id: int) -> int:
        return self.session.query(func.count(Review.id)).filter(Review.job_id == job_id).scalar() or 0

    def is_complete(self, job_id: int) -> bool:
        expected = self.expected_reviews(job_id)
        return expected > 0 and self.submitted_reviews(job_id) >= expected

    def on_review_submitted(self, job_id: int) -> bool:
        """Returns True only for the call that moved the job. Safe to repeat."""
        job = self.lifecycle.get(job_id)
        if job.status != JobStatus.REVIEW_PENDING or not self.is_complete(job_id):
            return False
        try:
            self.lifecycle.mark_ready_to_pay(job_id)
        except InvalidStateTransition:
            # a concurrent submission already closed the reviews
            return False
        log.info("Reviews complete for job %s", job_id)
        return True


class ReviewService:
    def __init__(self, session, lifecycle, gate, audit, clock=utcnow):
        self.session = session
        self.lifecycle = lifecycle
        self.gate = gate
        self.audit = audit
        self.clock = clock

    def get(self, review_id: int) -> Review:
        review = self.session.get(Review, review_id)
        if review is None:
            raise NotFoundError("Review", review_id)
        return review

    def create(self, job_id: int, author_id: int, *, target_id: int, rating: int,
               tags: Optional[Iterable[str]] = None, comment: Optional[str] = None) -> Review:
        job = self.lifecycle.get(job_id)
        if job.status not in REVIEWABLE_STATUSES:
            raise InvalidJobStatus("Reviews open once the work is complete.",
                                   details={"status": job.status.value})
        self._check_rating(rating)

        nurses = {a.nurse_id for a in job.applications if a.status == ApplicationStatus.ACCEPTED}
        if author_id == job.organizer_id:
            allowed_targets = nurses
        elif author_id in nurses:
            allowed_targets = {job.organizer_id}
        else:
            raise AuthorizationError("You are not a party to this job.", code="REVIEW_NOT_AUTHORIZED")
        if target_id not in allowed_targets:
            raise ValidationError("Reviews can only target the other party of the engagement.",
                                  code="INVALID_REVIEW_TARGET", details={"targetId": target_id})

        exists = (
            self.session.query(Review.id)
            .filter_by(job_id=job_id, author_id=author_id, target_id=target_id)
            .first()
        )
        if exists:
            raise DuplicateReview("You have already reviewed this person for this job.")

        with transaction(self.session):
            review = Review(job_id=job_id, author_id=author_id, target_id=target_id, rating=rating,
                            tags=_clean_tags(tags), comment=comment, created_at=self.clock())
            self.session.add(review)
            try:
                self.session.flush()
            except IntegrityError:
                raise DuplicateReview("You have already reviewed this person for this job.") from None

        self.audit.record(actor_id=author_id, action="REVIEW_CREATED", target=f"review:{review.id}",
                          metadata={"jobId": job_id, "targetId": target_id, "rating": rating,
                                    "tags": review.tags})
        self.gate.on_review_submitted(job_id)
        return review

    def update(self, review_id: int, actor_id: int, *, rating: Optional[int] = None,
               tags: Optional[Iterable[str]] = None, comment: Optional[str] = None) -> Review:
        review = self.get(review_id)
        if review.author_id != actor_id:
            raise AuthorizationError("Only the author can edit a review.", code="REVIEW_UPDATE_NOT_AUTHORIZED")
        job = self.lifecycle.get(review.job_id)
        if job.status != JobStatus.REVIEW_PENDING:
            raise ReviewLocked("Reviews are final once every review has been submitted.",
                               details={"status": job.status.value})

        changes = {}
        with transaction(self.session):
            if rating is not None:
                self._check_rating(rating)
                review.rating = changes["rating"] = rating
            if tags is not None:
                review.tags = changes["tags"] = _clean_tags(tags)
            if comment is not None:
                review.comment = changes["comment"] = comment
        self.audit.record(actor_id=actor_id, action="REVIEW_UPDATED", target=f"review:{review.id}",
                          metadata={"jobId": review.job_id, "changes": changes})
        return review

    def list(self, *, job_id=None, author_id=None, target_id=None, min_rating=None, max_rating=None,
             limit: int = 20, offset: int = 0) -> list[Review]:
        q = self.session.query(Review)
        if job_id:
            q = q.filter(Review.job_id == job_id)
        if author_id:
            q = q.filter(Review.author_id == author_id)
        if target_id:
            q = q.filter(Review.target_id == target_id)
        if min_rating:
            q = q.filter(Review.rating >= min_rating)
        if max_rating:
            q = q.filter(Review.rating <= max_rating)
        return q.order_by(Review.created_at.desc(), Review.id.desc()).limit(limit).offset(offset).all()

    def stats(self, user_id: int) -> dict:
        reviews = (
            self.session.query(Review)
            .filter(Review.target_id == user_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .all()
        )
        total = len(reviews)
        avg = sum(r.rating for r in reviews) / total if total else 0.0
        tag_counts = Counter(t for r in reviews for t in (r.tags or []))
        return {
            "totalReviews": total,
            "averageRating": round(avg, 1),
            "ratingDistribution": {str(n): sum(1 for r in reviews if r.rating == n) for n in range(1, 6)},
            "commonTags": [{"tag": t, "count": c} for t, c in tag_counts.most_common(10)],
            "recentReviews": [r.to_dict() for r in reviews[:5]],
        }

    @staticmethod
    def _check_rating(rating) -> None:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5.", code="INVALID_RATING")
