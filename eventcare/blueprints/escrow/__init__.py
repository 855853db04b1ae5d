from flask import Blueprint

escrow_bp = Blueprint("escrow", __name__)

from . import routes  # noqa: E402,F401
