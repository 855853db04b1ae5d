# eventcare/blueprints/payouts/routes.py
from flask import request
from flask_login import login_required, current_user

from . import payouts_bp
from .forms import PayoutFilterForm, PayoutForm, ScheduledRunForm
from ..utils import ok, validated
from ...security import roles_required
from ...services import get_services


def _history(form, nurse_id=None):
    svc = get_services()
    payouts = svc.payouts.history(
        nurse_id=nurse_id or form.nurse_id.data,
        job_id=form.job_id.data,
        status=form.status.data or None,
        limit=form.limit.data or 50,
        offset=form.offset.data or 0,
    )
    return [p.to_dict() for p in payouts]


# -----------------
# Admin
# -----------------

@payouts_bp.post("/payouts")
@login_required
@roles_required("admin")
def payout_create():
    form = validated(PayoutForm())
    payout = get_services().payouts.schedule_payout(
        form.escrow_id.data,
        form.nurse_id.data,
        form.payment_method.data,
        actor_id=current_user.id,
        notes=form.notes.data,
    )
    return ok(payout.to_dict())


@payouts_bp.post("/payouts/scheduled")
@login_required
@roles_required("admin")
def payout_run_scheduled():
    form = validated(ScheduledRunForm())
    summary = get_services().payouts.process_due_scheduled_payouts(form.run_date.data, actor_id=current_user.id)
    return ok(summary)


@payouts_bp.get("/payouts")
@login_required
@roles_required("admin")
def payout_list():
    form = validated(PayoutFilterForm(formdata=request.args))
    return ok(_history(form))


@payouts_bp.get("/payouts/stats")
@login_required
@roles_required("admin")
def payout_stats():
    nurse_id = request.args.get("nurseId", type=int)
    return ok(get_services().payouts.stats(nurse_id))


@payouts_bp.get("/payouts/payable")
@login_required
@roles_required("admin")
def payout_payable():
    return ok(get_services().payouts.payable_jobs())


# -----------------
# Nurse
# -----------------

@payouts_bp.get("/nurse/payouts")
@login_required
@roles_required("nurse")
def nurse_payouts():
    form = validated(PayoutFilterForm(formdata=request.args))
    svc = get_services()
    return ok({
        "payouts": _history(form, nurse_id=current_user.id),
        "stats": svc.payouts.stats(current_user.id),
        "nextScheduledDate": svc.payouts.next_scheduled_date().isoformat(),
    })
