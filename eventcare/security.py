# eventcare/security.py
import hmac
from functools import wraps

from flask import current_app, jsonify, request
from flask_login import current_user

from .errors import AuthorizationError
from .extensions import db, login_manager
from .models.user import User


def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


@login_manager.request_loader
def load_user_from_request(req):
    token = _bearer_token()
    if not token:
        return None
    return db.session.query(User).filter_by(api_token=token).first()


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({
        "success": False,
        "error": {
            "type": "AUTHORIZATION",
            "code": "UNAUTHORIZED",
            "message": "Authentication required.",
            "details": {},
        },
    }), 401


def roles_required(*roles):
    """403 unless the current user holds one of ``roles``. Use under @login_required."""
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if getattr(current_user, "role", None) not in roles:
                raise AuthorizationError(
                    "You do not have permission to perform this action.",
                    details={"required": list(roles)},
                )
            return view(*args, **kwargs)
        return wrapped
    return decorator


def cron_authorized() -> bool:
    """Shared-secret check for scheduler endpoints."""
    secret = current_app.config.get("CRON_SECRET") or ""
    token = _bearer_token()
    if not secret or not token:
        return False
    return hmac.compare_digest(token, secret)
