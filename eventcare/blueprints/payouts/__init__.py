from flask import Blueprint

payouts_bp = Blueprint("payouts", __name__)

from . import routes  # noqa: E402,F401
