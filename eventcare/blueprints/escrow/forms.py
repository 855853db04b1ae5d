# eventcare/blueprints/escrow/forms.py
from flask_wtf import FlaskForm
from wtforms import SelectField, StringField
from wtforms.validators import DataRequired, Length, NumberRange, Optional as Opt

from ..utils import StrictIntegerField

METHOD_CHOICES = [("instant", "Instant"), ("scheduled", "Scheduled")]


class EscrowCreateForm(FlaskForm):
    job_id = StrictIntegerField("Job", name="jobId", validators=[DataRequired()])
    amount = StrictIntegerField("Amount", validators=[Opt(), NumberRange(min=1)])
    platform_fee = StrictIntegerField("Platform fee", name="platformFee", validators=[Opt(), NumberRange(min=0)])


class FeePreviewForm(FlaskForm):
    amount = StrictIntegerField("Amount", validators=[DataRequired(), NumberRange(min=1)])
    payment_method = SelectField("Payment method", name="paymentMethod", choices=METHOD_CHOICES,
                                 default="instant")


class RefundForm(FlaskForm):
    reason = StringField("Reason", validators=[DataRequired(), Length(max=255)])
    refund_amount = StrictIntegerField("Refund amount", name="refundAmount", validators=[Opt(), NumberRange(min=1)])
