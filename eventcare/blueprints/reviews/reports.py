# eventcare/blueprints/reviews/reports.py
from flask_login import login_required, current_user

from . import reviews_bp
from .forms import NurseActivityForm, OrganizerFeedbackForm
from ..utils import ensure_job_owner, ok, validated
from ...security import roles_required
from ...services import get_services


@reviews_bp.post("/reports/nurse-activity")
@login_required
@roles_required("nurse")
def report_nurse_activity():
    form = validated(NurseActivityForm())
    report = get_services().reports.create_nurse_activity_report(
        form.job_id.data,
        current_user.id,
        overall_summary=form.overall_summary.data,
        recommendations=form.recommendations.data,
        participant_count=form.participant_count.data,
        incidents=form.incidents.data,
        equipment_used=form.equipment_used.data,
    )
    return ok(report.to_dict(), 201)


@reviews_bp.post("/reports/organizer-feedback")
@login_required
@roles_required("organizer")
def report_organizer_feedback():
    form = validated(OrganizerFeedbackForm())
    feedback = get_services().reports.create_organizer_feedback(
        form.job_id.data,
        current_user.id,
        punctuality=form.punctuality.data,
        professionalism=form.professionalism.data,
        communication=form.communication.data,
        skill_level=form.skill_level.data,
        event_summary=form.event_summary.data,
        issues=form.issues.data,
        overtime_minutes=form.overtime_minutes.data or 0,
        # unchecked-checkbox semantics would read a missing key as False
        would_recommend=form.would_recommend.data if form.would_recommend.raw_data else True,
        additional_comments=form.additional_comments.data,
    )
    return ok(feedback.to_dict(), 201)


@reviews_bp.get("/jobs/<int:job_id>/reports")
@login_required
def job_reports(job_id):
    svc = get_services()
    ensure_job_owner(svc.lifecycle.get(job_id))
    return ok({
        "activityReports": [r.to_dict() for r in svc.reports.activity_reports(job_id)],
        "organizerFeedback": [f.to_dict() for f in svc.reports.feedback_for(job_id)],
    })
