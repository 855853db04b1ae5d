import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException
from ...errors import AppError, ErrorType
from ...extensions import db
from . import errors_bp

log = logging.getLogger(__name__)

HTTP_TYPES = {
    400: ErrorType.VALIDATION,
    401: ErrorType.AUTHORIZATION,
    403: ErrorType.AUTHORIZATION,
    404: ErrorType.NOT_FOUND,
    405: ErrorType.VALIDATION,
    409: ErrorType.BUSINESS_LOGIC,
    413: ErrorType.VALIDATION,
    415: ErrorType.VALIDATION,
}


def _envelope(type_, code, message, status, details=None):
    body = {
        "success": False,
        "error": {"type": type_.value, "code": code, "message": message, "details": details or {}},
    }
    return jsonify(body), status


def _rollback():
    # if a DB action caused this, rollback so the session isn't stuck in a bad transaction
    try:
        db.session.rollback()
    except Exception:
        log.exception("session rollback failed")


@errors_bp.app_errorhandler(AppError)
def err_app(e: AppError):
    if e.status_code >= 500:
        _rollback()
        log.error("%s %s failed: %s %s", request.method, request.path, e.code, e.message)
    else:
        log.info("%s %s rejected: %s %s", request.method, request.path, e.code, e.message)
    return jsonify({"success": False, "error": e.to_dict()}), e.status_code


@errors_bp.app_errorhandler(HTTPException)
def err_http(e: HTTPException):
    code = (e.name or "error").upper().replace(" ", "_")
    type_ = HTTP_TYPES.get(e.code, ErrorType.SYSTEM if (e.code or 500) >= 500 else ErrorType.VALIDATION)
    return _envelope(type_, code, e.description or e.name, e.code or 500)


# Last-resort: any other Exception
@errors_bp.app_errorhandler(Exception)
def err_unexpected(e):
    _rollback()
    log.exception("Unhandled error on %s %s", request.method, request.path)
    # Don't leak internals
    return _envelope(ErrorType.SYSTEM, "INTERNAL_ERROR", "An unexpected error occurred.", 500)
