import pytest

from eventcare.errors import (
    AuthorizationError,
    DuplicateReview,
    InvalidJobStatus,
    ReviewLocked,
    ValidationError,
)
from eventcare.models.job import JobStatus

from conftest import holding_job, make_job, make_user


@pytest.fixture
def finished_job(services, organizer, nurse):
    job, _ = holding_job(services, organizer, nurse)
    services.lifecycle.record_check_in(job.id, nurse.id)
    return services.lifecycle.complete_work(job.id, actor_id=organizer.id)


def test_expected_reviews_is_two_per_accepted_pairing(services, finished_job):
    assert services.gate.expected_reviews(finished_job.id) == 2


def test_gate_opens_after_both_reviews(services, organizer, nurse, finished_job):
    services.reviews.create(finished_job.id, organizer.id, target_id=nurse.id, rating=5)
    assert services.lifecycle.get(finished_job.id).status == JobStatus.REVIEW_PENDING

    services.reviews.create(finished_job.id, nurse.id, target_id=organizer.id, rating=4)
    assert services.lifecycle.get(finished_job.id).status == JobStatus.READY_TO_PAY


def test_gate_is_idempotent(services, organizer, nurse, finished_job):
    services.reviews.create(finished_job.id, organizer.id, target_id=nurse.id, rating=5)
    services.reviews.create(finished_job.id, nurse.id, target_id=organizer.id, rating=4)

    assert services.gate.on_review_submitted(finished_job.id) is False
    assert services.gate.on_review_submitted(finished_job.id) is False
    assert services.lifecycle.get(finished_job.id).status == JobStatus.READY_TO_PAY


def test_gate_without_accepted_applications_stays_closed(services, organizer):
    job = make_job(services, organizer)
    assert services.gate.expected_reviews(job.id) == 0
    assert services.gate.is_complete(job.id) is False


def test_reviews_only_after_work(services, organizer, nurse):
    job, _ = holding_job(services, organizer, nurse)
    with pytest.raises(InvalidJobStatus):
        services.reviews.create(job.id, organizer.id, target_id=nurse.id, rating=5)


def test_only_parties_review_their_counterpart(services, session, organizer, nurse, finished_job):
    outsider = make_user(session, "nurse")
    with pytest.raises(AuthorizationError):
        services.reviews.create(finished_job.id, outsider.id, target_id=organizer.id, rating=3)
    with pytest.raises(ValidationError) as exc:
        services.reviews.create(finished_job.id, organizer.id, target_id=organizer.id, rating=3)
    assert exc.value.code == "INVALID_REVIEW_TARGET"


def test_duplicate_review(services, organizer, nurse, finished_job):
    services.reviews.create(finished_job.id, organizer.id, target_id=nurse.id, rating=5)
    with pytest.raises(DuplicateReview):
        services.reviews.create(finished_job.id, organizer.id, target_id=nurse.id, rating=1)


@pytest.mark.parametrize("rating", [0, 6, "5", None])
def test_rating_range(services, organizer, nurse, finished_job, rating):
    with pytest.raises(ValidationError):
        services.reviews.create(finished_job.id, organizer.id, target_id=nurse.id, rating=rating)


def test_tags_are_deduplicated(services, organizer, nurse, finished_job):
    review = services.reviews.create(finished_job.id, organizer.id, target_id=nurse.id, rating=5,
                                     tags=["calm", "calm", " punctual ", ""])
    assert review.tags == ["calm", "punctual"]


def test_edit_locked_once_reviews_complete(services, organizer, nurse, finished_job):
    mine = services.reviews.create(finished_job.id, organizer.id, target_id=nurse.id, rating=3)
    edited = services.reviews.update(mine.id, organizer.id, rating=4, comment="Better on reflection")
    assert edited.rating == 4

    services.reviews.create(finished_job.id, nurse.id, target_id=organizer.id, rating=5)
    with pytest.raises(ReviewLocked):
        services.reviews.update(mine.id, organizer.id, rating=5)


def test_only_author_edits(services, organizer, nurse, finished_job):
    mine = services.reviews.create(finished_job.id, organizer.id, target_id=nurse.id, rating=3)
    with pytest.raises(AuthorizationError):
        services.reviews.update(mine.id, nurse.id, rating=1)


def test_stats(services, organizer, nurse, finished_job):
    services.reviews.create(finished_job.id, organizer.id, target_id=nurse.id, rating=5,
                            tags=["calm", "punctual"])
    stats = services.reviews.stats(nurse.id)
    assert stats["totalReviews"] == 1
    assert stats["averageRating"] == 5.0
    assert stats["ratingDistribution"]["5"] == 1
    assert {"tag": "calm", "count": 1} in stats["commonTags"]
    assert len(stats["recentReviews"]) == 1
