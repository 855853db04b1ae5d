# eventcare/blueprints/escrow/routes.py
from flask import request
from flask_login import login_required, current_user

from . import escrow_bp
from .forms import EscrowCreateForm, FeePreviewForm, RefundForm
from ..utils import ensure_job_owner, is_admin, ok, validated
from ...errors import AuthorizationError, InvalidEscrowStatus
from ...models.application import ApplicationStatus
from ...models.escrow import EscrowStatus
from ...security import roles_required
from ...services import get_services
from ...services.email_service import notify_escrow_funded


# -----------------
# Helpers
# -----------------

def _can_view(escrow) -> bool:
    job = escrow.job
    if is_admin() or job.organizer_id == current_user.id:
        return True
    return any(
        a.nurse_id == current_user.id and a.status == ApplicationStatus.ACCEPTED
        for a in job.applications
    )


# -----------------
# Fee preview (public)
# -----------------

@escrow_bp.get("")
def fee_preview():
    form = validated(FeePreviewForm(formdata=request.args))
    calc = get_services().fees.calculate_fees(form.amount.data, form.payment_method.data)
    return ok(calc.to_dict())


# -----------------
# Create / view
# -----------------

@escrow_bp.post("")
@login_required
@roles_required("organizer", "admin")
def escrow_create():
    form = validated(EscrowCreateForm())
    svc = get_services()
    job = svc.lifecycle.get(form.job_id.data)
    ensure_job_owner(job)
    escrow = svc.lifecycle.open_escrow(
        job.id,
        current_user.id,
        amount=form.amount.data,
        platform_fee=form.platform_fee.data,
    )
    return ok(escrow.to_dict(), 201)


@escrow_bp.get("/<int:escrow_id>")
@login_required
def escrow_view(escrow_id):
    escrow = get_services().ledger.get(escrow_id)
    if not _can_view(escrow):
        raise AuthorizationError("You cannot view this escrow transaction.")
    return ok(escrow.to_dict())


# -----------------
# Capture (mock gateway)
# -----------------

@escrow_bp.post("/<int:escrow_id>/process")
@login_required
def escrow_process(escrow_id):
    svc = get_services()
    escrow = svc.ledger.get(escrow_id)
    if escrow.job.organizer_id != current_user.id:
        raise AuthorizationError("Only the organizer of this job can pay into escrow.", code="NOT_JOB_OWNER")

    # a declined capture surfaces as its 502 error envelope; nothing was committed
    receipt = svc.lifecycle.capture_escrow(escrow_id, current_user.id).unwrap()

    escrow = svc.ledger.get(escrow_id)
    notify_escrow_funded(escrow)
    return ok({"success": True, "transactionId": receipt.transaction_id, "escrow": escrow.to_dict()})


# -----------------
# Refund (admin)
# -----------------

@escrow_bp.post("/<int:escrow_id>/refund")
@login_required
@roles_required("admin")
def escrow_refund(escrow_id):
    form = validated(RefundForm())
    svc = get_services()
    escrow = svc.ledger.get(escrow_id)
    if escrow.status != EscrowStatus.HOLDING:
        raise InvalidEscrowStatus("Only funds held in escrow can be refunded.",
                                  details={"escrowId": escrow_id, "status": escrow.status.value})
    job = svc.lifecycle.cancel(escrow.job_id, current_user.id, form.reason.data.strip(),
                               refund_amount=form.refund_amount.data)
    return ok({"escrow": svc.ledger.get(escrow_id).to_dict(), "job": job.to_dict()})
