from flask import jsonify
from flask_login import current_user
from wtforms import Field, IntegerField

from ..errors import AuthorizationError, ValidationError


def ok(data=None, status: int = 200):
    return jsonify({"success": True, "data": data}), status


def validated(form):
    """Run a form built from the JSON body; raise VALIDATION on any field error."""
    if not form.validate():
        errors = {name: list(msgs) for name, msgs in form.errors.items() if name != "csrf_token"}
        raise ValidationError("Request body is invalid.", details={"fields": errors})
    return form


def is_admin() -> bool:
    return getattr(current_user, "role", None) == "admin"


def ensure_job_owner(job):
    if job.organizer_id != current_user.id and not is_admin():
        raise AuthorizationError("Only the organizer of this job can do that.", code="NOT_JOB_OWNER")


class JSONListField(Field):
    """Keeps a JSON array as-is (the MultiDict wrapper hands it over as a valuelist)."""

    def __init__(self, label=None, validators=None, max_items=50, **kwargs):
        super().__init__(label, validators, **kwargs)
        self.max_items = max_items

    def process_formdata(self, valuelist):
        self.data = list(valuelist)
        if len(self.data) > self.max_items:
            raise ValueError(f"At most {self.max_items} items.")

    def _value(self):
        return self.data or []


class StringListField(JSONListField):
    def process_formdata(self, valuelist):
        super().process_formdata(valuelist)
        if any(not isinstance(v, str) for v in self.data):
            raise ValueError("Every item must be a string.")


class ObjectListField(JSONListField):
    def process_formdata(self, valuelist):
        super().process_formdata(valuelist)
        if any(not isinstance(v, dict) for v in self.data):
            raise ValueError("Every item must be an object.")


class StrictIntegerField(IntegerField):
    """Whole numbers only: a JSON int or a digit string. 10000.99 and true are rejected, not coerced."""

    def process_formdata(self, valuelist):
        if not valuelist:
            return
        value = valuelist[0]
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            value = int(value.strip())
        if isinstance(value, bool) or not isinstance(value, int):
            self.data = None
            raise ValueError(self.gettext("Not a valid integer value."))
        self.data = value
