# eventcare/blueprints/reviews/routes.py
from flask import request
from flask_login import login_required, current_user

from . import reviews_bp
from .forms import ReviewFilterForm, ReviewForm, ReviewUpdateForm
from ..utils import ok, validated
from ...services import get_services


@reviews_bp.post("/reviews")
@login_required
def review_create():
    form = validated(ReviewForm())
    review = get_services().reviews.create(
        form.job_id.data,
        current_user.id,
        target_id=form.target_id.data,
        rating=form.rating.data,
        tags=form.tags.data,
        comment=form.comment.data,
    )
    return ok(review.to_dict(), 201)


@reviews_bp.patch("/reviews/<int:review_id>")
@login_required
def review_update(review_id):
    form = validated(ReviewUpdateForm())
    review = get_services().reviews.update(
        review_id,
        current_user.id,
        rating=form.rating.data,
        # absent key leaves tags untouched; [] clears them
        tags=form.tags.data if "tags" in (request.get_json(silent=True) or {}) else None,
        comment=form.comment.data,
    )
    return ok(review.to_dict())


@reviews_bp.get("/reviews")
@login_required
def review_list():
    form = validated(ReviewFilterForm(formdata=request.args))
    reviews = get_services().reviews.list(
        job_id=form.job_id.data,
        author_id=form.author_id.data,
        target_id=form.target_id.data,
        min_rating=form.min_rating.data,
        max_rating=form.max_rating.data,
        limit=form.limit.data or 20,
        offset=form.offset.data or 0,
    )
    return ok([r.to_dict() for r in reviews])


@reviews_bp.get("/reviews/stats/<int:user_id>")
@login_required
def review_stats(user_id):
    return ok(get_services().reviews.stats(user_id))
