# eventcare/blueprints/cron/routes.py
import logging

from flask import jsonify

from . import cron_bp
from ...clock import utcnow
from ...extensions import db
from ...security import cron_authorized
from ...services import get_services

log = logging.getLogger(__name__)


def _unauthorized():
    return jsonify({
        "success": False,
        "error": {"type": "AUTHORIZATION", "code": "UNAUTHORIZED", "message": "Unauthorized", "details": {}},
    }), 401


def _rollback():
    try:
        db.session.rollback()
    except Exception:
        log.exception("session rollback failed")


# -----------------
# Monthly settlement
# -----------------

@cron_bp.post("/process-scheduled-payments")
def process_scheduled_payments():
    if not cron_authorized():
        return _unauthorized()

    executed_at = utcnow().isoformat()
    # the scheduler does not retry on 5xx, so every outcome is a 200
    try:
        summary = get_services().payouts.settle_ready_jobs()
    except Exception as e:
        _rollback()
        log.exception("Scheduled payment processing failed")
        return jsonify({
            "success": False,
            "paymentsProcessed": 0,
            "totalAmount": 0,
            "errors": [str(e) or e.__class__.__name__],
            "executedAt": executed_at,
        }), 200

    log.info("Scheduled payments: %s processed, total=%s, %s errors",
             summary["paymentsProcessed"], summary["totalAmount"], len(summary["errors"]))
    return jsonify({"success": True, **summary, "executedAt": executed_at}), 200


# -----------------
# Daily housekeeping
# -----------------

@cron_bp.post("/complete-finished-jobs")
def complete_finished_jobs():
    if not cron_authorized():
        return _unauthorized()
    try:
        moved = get_services().lifecycle.complete_finished_jobs()
    except Exception as e:
        _rollback()
        log.exception("Completing finished jobs failed")
        return jsonify({"success": False, "jobIds": [], "errors": [str(e)]}), 200
    return jsonify({"success": True, "jobIds": moved, "count": len(moved)}), 200


@cron_bp.post("/cleanup-expired-jobs")
def cleanup_expired_jobs():
    if not cron_authorized():
        return _unauthorized()
    try:
        cancelled = get_services().lifecycle.cancel_expired_jobs()
    except Exception as e:
        _rollback()
        log.exception("Expired job cleanup failed")
        return jsonify({"success": False, "jobIds": [], "errors": [str(e)]}), 200
    return jsonify({"success": True, "jobIds": cancelled, "expiredJobsCount": len(cancelled)}), 200
