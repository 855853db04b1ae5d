# eventcare/blueprints/payouts/forms.py
from flask_wtf import FlaskForm
from wtforms import DateField, SelectField, StringField
from wtforms.validators import DataRequired, Length, NumberRange, Optional as Opt, ValidationError

from ..escrow.forms import METHOD_CHOICES
from ..utils import StrictIntegerField
from ...clock import utcnow

STATUS_CHOICES = [("", "Any"), ("PENDING", "Pending"), ("COMPLETED", "Completed"), ("FAILED", "Failed")]


class PayoutForm(FlaskForm):
    escrow_id = StrictIntegerField("Escrow", name="escrowId", validators=[DataRequired()])
    nurse_id = StrictIntegerField("Nurse", name="nurseId", validators=[DataRequired()])
    payment_method = SelectField("Payment method", name="paymentMethod", choices=METHOD_CHOICES,
                                 validators=[DataRequired()])
    notes = StringField("Notes", validators=[Opt(), Length(max=500)])


class ScheduledRunForm(FlaskForm):
    run_date = DateField("Run date", name="runDate", validators=[Opt()])

    def validate_run_date(self, field):
        # payouts settle on or after their date, never ahead of it
        if field.data and field.data > utcnow().date():
            raise ValidationError("Run date cannot be in the future.")


class PayoutFilterForm(FlaskForm):
    nurse_id = StrictIntegerField("Nurse", name="nurseId", validators=[Opt()])
    job_id = StrictIntegerField("Job", name="jobId", validators=[Opt()])
    status = SelectField("Status", choices=STATUS_CHOICES, default="", validators=[Opt()])
    limit = StrictIntegerField("Limit", default=50, validators=[Opt(), NumberRange(min=1, max=200)])
    offset = StrictIntegerField("Offset", default=0, validators=[Opt(), NumberRange(min=0)])
