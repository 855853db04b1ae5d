# eventcare/blueprints/jobs/forms.py
from __future__ import annotations

from flask_wtf import FlaskForm
from wtforms import DateTimeField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange, Optional as Opt, ValidationError

from ..utils import StrictIntegerField

# ISO 8601 as sent by API clients, with or without seconds
DT_FORMATS = ["%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M"]


class JobForm(FlaskForm):
    title = StringField("Title", validators=[DataRequired(), Length(max=200)])
    description = TextAreaField("Description", validators=[Opt(), Length(max=5000)])
    headcount = StrictIntegerField("Headcount", validators=[Opt(), NumberRange(min=1, max=100)])
    compensation = StrictIntegerField("Compensation", validators=[DataRequired(), NumberRange(min=1)])
    start_at = DateTimeField("Start", name="startAt", format=DT_FORMATS, validators=[Opt()])
    end_at = DateTimeField("End", name="endAt", format=DT_FORMATS, validators=[Opt()])
    deadline = DateTimeField("Application deadline", format=DT_FORMATS, validators=[Opt()])

    def validate_end_at(self, field):
        if field.data and self.start_at.data and field.data <= self.start_at.data:
            raise ValidationError("End must be after start.")


class JobUpdateForm(JobForm):
    title = StringField("Title", validators=[Opt(), Length(max=200)])
    compensation = StrictIntegerField("Compensation", validators=[Opt(), NumberRange(min=1)])


class ApplicationForm(FlaskForm):
    message = TextAreaField("Message", validators=[Opt(), Length(max=2000)])
    quote_amount = StrictIntegerField("Quote", name="quoteAmount", validators=[Opt(), NumberRange(min=1)])


class ReasonForm(FlaskForm):
    reason = StringField("Reason", validators=[Opt(), Length(max=255)])
