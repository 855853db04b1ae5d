# eventcare/blueprints/jobs/routes.py
from flask_login import login_required, current_user

from . import jobs_bp
from .forms import ApplicationForm, JobForm, JobUpdateForm, ReasonForm
from ..utils import ensure_job_owner, is_admin, ok, validated
from ...errors import AuthorizationError, InvalidStateTransition
from ...models.application import ApplicationStatus
from ...models.escrow import EscrowStatus
from ...models.job import JobStatus
from ...security import roles_required
from ...services import get_services
from ...services.lifecycle import can_transition


# -----------------
# Helpers
# -----------------

def _is_accepted_nurse(job) -> bool:
    return any(
        a.nurse_id == current_user.id and a.status == ApplicationStatus.ACCEPTED
        for a in job.applications
    )


def _can_view(job) -> bool:
    if is_admin() or job.organizer_id == current_user.id:
        return True
    if job.status in (JobStatus.OPEN, JobStatus.APPLIED):
        return True
    return any(a.nurse_id == current_user.id for a in job.applications)


# -----------------
# Jobs
# -----------------

@jobs_bp.post("/jobs")
@login_required
@roles_required("organizer", "admin")
def job_create():
    form = validated(JobForm())
    job = get_services().lifecycle.create_job(
        current_user.id,
        title=form.title.data.strip(),
        description=form.description.data,
        headcount=form.headcount.data or 1,
        compensation=form.compensation.data,
        start_at=form.start_at.data,
        end_at=form.end_at.data,
        deadline=form.deadline.data,
    )
    return ok(job.to_dict(), 201)


@jobs_bp.get("/jobs/<int:job_id>")
@login_required
def job_view(job_id):
    job = get_services().lifecycle.get(job_id)
    if not _can_view(job):
        raise AuthorizationError("You cannot view this job.")
    data = job.to_dict()
    if is_admin() or job.organizer_id == current_user.id:
        data["applications"] = [a.to_dict() for a in job.applications]
        data["escrow"] = job.escrow.to_dict() if job.escrow else None
    return ok(data)


@jobs_bp.patch("/jobs/<int:job_id>")
@login_required
def job_update(job_id):
    svc = get_services()
    ensure_job_owner(svc.lifecycle.get(job_id))
    form = validated(JobUpdateForm())
    job = svc.lifecycle.update_job(
        job_id,
        current_user.id,
        title=form.title.data.strip() if form.title.data else None,
        description=form.description.data,
        headcount=form.headcount.data,
        compensation=form.compensation.data,
        start_at=form.start_at.data,
        end_at=form.end_at.data,
        deadline=form.deadline.data,
    )
    return ok(job.to_dict())


@jobs_bp.post("/jobs/<int:job_id>/publish")
@login_required
def job_publish(job_id):
    svc = get_services()
    ensure_job_owner(svc.lifecycle.get(job_id))
    return ok(svc.lifecycle.publish(job_id, current_user.id).to_dict())


@jobs_bp.post("/jobs/<int:job_id>/cancel")
@login_required
def job_cancel(job_id):
    svc = get_services()
    job = svc.lifecycle.get(job_id)
    ensure_job_owner(job)
    if not can_transition(job.status, JobStatus.CANCELLED):
        raise InvalidStateTransition(job.status, JobStatus.CANCELLED)
    if job.escrow is not None and job.escrow.status == EscrowStatus.HOLDING and not is_admin():
        raise AuthorizationError("Funds are held in escrow; an administrator has to refund them.",
                                 code="REFUND_REQUIRES_ADMIN")
    form = validated(ReasonForm())
    job = svc.lifecycle.cancel(job_id, current_user.id, form.reason.data or "")
    return ok(job.to_dict())


# -----------------
# Work
# -----------------

@jobs_bp.post("/jobs/<int:job_id>/check-in")
@login_required
@roles_required("nurse")
def job_check_in(job_id):
    job = get_services().lifecycle.record_check_in(job_id, current_user.id)
    return ok(job.to_dict())


@jobs_bp.post("/jobs/<int:job_id>/complete")
@login_required
def job_complete(job_id):
    svc = get_services()
    job = svc.lifecycle.get(job_id)
    if not (is_admin() or job.organizer_id == current_user.id or _is_accepted_nurse(job)):
        raise AuthorizationError("Only a party to this job can mark the work complete.")
    return ok(svc.lifecycle.complete_work(job_id, actor_id=current_user.id).to_dict())


# -----------------
# Applications
# -----------------

@jobs_bp.post("/jobs/<int:job_id>/applications")
@login_required
@roles_required("nurse")
def application_create(job_id):
    form = validated(ApplicationForm())
    application = get_services().applications.apply(
        job_id,
        current_user.id,
        message=(form.message.data or "").strip(),
        quote_amount=form.quote_amount.data,
    )
    return ok(application.to_dict(), 201)


@jobs_bp.get("/jobs/<int:job_id>/applications")
@login_required
def application_list(job_id):
    job = get_services().lifecycle.get(job_id)
    ensure_job_owner(job)
    return ok([a.to_dict() for a in job.applications])


@jobs_bp.post("/applications/<int:application_id>/accept")
@login_required
def application_accept(application_id):
    svc = get_services()
    application = svc.applications.get(application_id)
    ensure_job_owner(application.job)
    return ok(svc.applications.accept(application_id, current_user.id).to_dict())


@jobs_bp.post("/applications/<int:application_id>/reject")
@login_required
def application_reject(application_id):
    svc = get_services()
    application = svc.applications.get(application_id)
    ensure_job_owner(application.job)
    return ok(svc.applications.reject(application_id, current_user.id).to_dict())


@jobs_bp.post("/applications/<int:application_id>/withdraw")
@login_required
def application_withdraw(application_id):
    svc = get_services()
    application = svc.applications.get(application_id)
    if application.nurse_id != current_user.id:
        raise AuthorizationError("Only the applicant can withdraw an application.")
    return ok(svc.applications.withdraw(application_id, current_user.id).to_dict())
