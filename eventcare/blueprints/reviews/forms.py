# eventcare/blueprints/reviews/forms.py
from flask_wtf import FlaskForm
from wtforms import BooleanField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange, Optional as Opt

from ..utils import ObjectListField, StrictIntegerField, StringListField

RATING = [DataRequired(), NumberRange(min=1, max=5, message="Rating must be between 1 and 5.")]


class ReviewForm(FlaskForm):
    job_id = StrictIntegerField("Job", name="jobId", validators=[DataRequired()])
    target_id = StrictIntegerField("Reviewee", name="targetId", validators=[DataRequired()])
    rating = StrictIntegerField("Rating", validators=RATING)
    tags = StringListField("Tags", max_items=10)
    comment = TextAreaField("Comment", validators=[Opt(), Length(max=1000)])


class ReviewUpdateForm(FlaskForm):
    rating = StrictIntegerField("Rating", validators=[Opt(), NumberRange(min=1, max=5)])
    tags = StringListField("Tags", max_items=10)
    comment = TextAreaField("Comment", validators=[Opt(), Length(max=1000)])


class ReviewFilterForm(FlaskForm):
    job_id = StrictIntegerField("Job", name="jobId", validators=[Opt()])
    author_id = StrictIntegerField("Author", name="reviewerId", validators=[Opt()])
    target_id = StrictIntegerField("Reviewee", name="revieweeId", validators=[Opt()])
    min_rating = StrictIntegerField("Min rating", name="minRating", validators=[Opt(), NumberRange(min=1, max=5)])
    max_rating = StrictIntegerField("Max rating", name="maxRating", validators=[Opt(), NumberRange(min=1, max=5)])
    limit = StrictIntegerField("Limit", default=20, validators=[Opt(), NumberRange(min=1, max=100)])
    offset = StrictIntegerField("Offset", default=0, validators=[Opt(), NumberRange(min=0)])


class NurseActivityForm(FlaskForm):
    job_id = StrictIntegerField("Job", name="jobId", validators=[DataRequired()])
    overall_summary = TextAreaField("Summary", name="overallSummary",
                                    validators=[DataRequired(), Length(max=5000)])
    recommendations = TextAreaField("Recommendations", validators=[Opt(), Length(max=5000)])
    participant_count = StrictIntegerField("Participants", name="participantCount",
                                     validators=[Opt(), NumberRange(min=0)])
    incidents = ObjectListField("Incidents", max_items=100)
    equipment_used = StringListField("Equipment", name="equipmentUsed", max_items=100)


class OrganizerFeedbackForm(FlaskForm):
    job_id = StrictIntegerField("Job", name="jobId", validators=[DataRequired()])
    punctuality = StrictIntegerField("Punctuality", validators=RATING)
    professionalism = StrictIntegerField("Professionalism", validators=RATING)
    communication = StrictIntegerField("Communication", validators=RATING)
    skill_level = StrictIntegerField("Skill level", name="skillLevel", validators=RATING)
    event_summary = TextAreaField("Event summary", name="eventSummary",
                                  validators=[DataRequired(), Length(max=5000)])
    issues = TextAreaField("Issues", validators=[Opt(), Length(max=5000)])
    overtime_minutes = StrictIntegerField("Overtime (minutes)", name="overtimeMinutes", default=0,
                                    validators=[Opt(), NumberRange(min=0)])
    would_recommend = BooleanField("Would recommend", name="wouldRecommend", default=True)
    additional_comments = TextAreaField("Additional comments", name="additionalComments",
                                        validators=[Opt(), Length(max=5000)])
