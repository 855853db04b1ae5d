# eventcare/services/reports.py
from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError

from ..clock import utcnow
from ..errors import AuthorizationError, DuplicateReport, InvalidJobStatus, ValidationError
from ..models.application import Application, ApplicationStatus
from ..models.job import JobStatus
from ..models.report import ActivityEquipment, ActivityIncident, NurseActivityReport, OrganizerFeedback
from .uow import transaction

log = logging.getLogger(__name__)

REPORTABLE_STATUSES = (JobStatus.IN_PROGRESS, JobStatus.REVIEW_PENDING, JobStatus.READY_TO_PAY, JobStatus.PAID)
SEVERITIES = ("low", "medium", "high")


class ReportService:
    """Post-engagement reports: the nurse's activity report, the organizer's feedback."""

    def __init__(self, session, lifecycle, audit, clock=utcnow):
        self.session = session
        self.lifecycle = lifecycle
        self.audit = audit
        self.clock = clock

    def _reportable_job(self, job_id: int):
        job = self.lifecycle.get(job_id)
        if job.status not in REPORTABLE_STATUSES:
            raise InvalidJobStatus("Reports can be filed once work has started.",
                                   details={"status": job.status.value})
        return job

    def create_nurse_activity_report(self, job_id: int, nurse_id: int, *, overall_summary: str,
                                     recommendations: Optional[str] = None,
                                     participant_count: Optional[int] = None,
                                     incidents: Optional[Iterable[dict]] = None,
                                     equipment_used: Optional[Iterable[str]] = None) -> NurseActivityReport:
        job = self._reportable_job(job_id)
        accepted = (
            self.session.query(Application.id)
            .filter_by(job_id=job.id, nurse_id=nurse_id, status=ApplicationStatus.ACCEPTED)
            .first()
        )
        if accepted is None:
            raise AuthorizationError("Only the accepted nurse can file an activity report.",
                                     code="REPORT_NOT_AUTHORIZED")
        if not (overall_summary or "").strip():
            raise ValidationError("Overall summary is required.", details={"field": "overallSummary"})
        if participant_count is not None and participant_count < 0:
            raise ValidationError("Participant count cannot be negative.", details={"field": "participantCount"})

        exists = self.session.query(NurseActivityReport.id).filter_by(job_id=job.id, nurse_id=nurse_id).first()
        if exists:
            raise DuplicateReport("An activity report already exists for this job.")

        with transaction(self.session):
            report = NurseActivityReport(
                job_id=job.id,
                nurse_id=nurse_id,
                overall_summary=overall_summary.strip(),
                recommendations=recommendations,
                participant_count=participant_count,
                created_at=self.clock(),
            )
            for item in incidents or []:
                severity = (item.get("severity") or "low").lower()
                if severity not in SEVERITIES:
                    raise ValidationError("Unknown incident severity.", details={"severity": severity})
                if not (item.get("description") or "").strip():
                    raise ValidationError("Every incident needs a description.")
                report.incidents.append(ActivityIncident(
                    occurred_at=item.get("time"),
                    description=item["description"].strip(),
                    action_taken=item.get("actionTaken"),
                    severity=severity,
                ))
            for name in equipment_used or []:
                name = (name or "").strip()
                if name:
                    report.equipment.append(ActivityEquipment(name=name[:120]))
            self.session.add(report)
            try:
                self.session.flush()
            except IntegrityError:
                raise DuplicateReport("An activity report already exists for this job.") from None

        self.audit.record(actor_id=nurse_id, action="ACTIVITY_REPORT_CREATED", target=f"job:{job.id}",
                          metadata={"reportId": report.id, "incidentCount": len(report.incidents),
                                    "participantCount": participant_count})
        return report

    def create_organizer_feedback(self, job_id: int, organizer_id: int, *, punctuality: int,
                                  professionalism: int, communication: int, skill_level: int,
                                  event_summary: str, issues: Optional[str] = None,
                                  overtime_minutes: int = 0, would_recommend: bool = True,
                                  additional_comments: Optional[str] = None) -> OrganizerFeedback:
        job = self._reportable_job(job_id)
        if job.organizer_id != organizer_id:
            raise AuthorizationError("Only the organizer of this job can leave feedback.",
                                     code="FEEDBACK_NOT_AUTHORIZED")
        scores = dict(punctuality=punctuality, professionalism=professionalism,
                      communication=communication, skill_level=skill_level)
        for name, value in scores.items():
            if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
                raise ValidationError("Scores must be between 1 and 5.", code="INVALID_RATING",
                                      details={"field": name})
        if not (event_summary or "").strip():
            raise ValidationError("Event summary is required.", details={"field": "eventSummary"})
        if overtime_minutes and overtime_minutes < 0:
            raise ValidationError("Overtime cannot be negative.", details={"field": "overtimeMinutes"})

        exists = self.session.query(OrganizerFeedback.id).filter_by(job_id=job.id, organizer_id=organizer_id).first()
        if exists:
            raise DuplicateReport("Feedback already exists for this job.")

        with transaction(self.session):
            feedback = OrganizerFeedback(
                job_id=job.id,
                organizer_id=organizer_id,
                event_summary=event_summary.strip(),
                issues=issues,
                overtime_minutes=overtime_minutes or 0,
                would_recommend=bool(would_recommend),
                additional_comments=additional_comments,
                created_at=self.clock(),
                **scores,
            )
            self.session.add(feedback)
            try:
                self.session.flush()
            except IntegrityError:
                raise DuplicateReport("Feedback already exists for this job.") from None

        self.audit.record(actor_id=organizer_id, action="ORGANIZER_FEEDBACK_CREATED", target=f"job:{job.id}",
                          metadata={"feedbackId": feedback.id, "averagePerformance": feedback.average_performance,
                                    "wouldRecommend": feedback.would_recommend})
        return feedback

    def activity_reports(self, job_id: int) -> list[NurseActivityReport]:
        return (
            self.session.query(NurseActivityReport)
            .filter_by(job_id=job_id)
            .order_by(NurseActivityReport.id)
            .all()
        )

    def feedback_for(self, job_id: int) -> list[OrganizerFeedback]:
        return self.session.query(OrganizerFeedback).filter_by(job_id=job_id).order_by(OrganizerFeedback.id).all()
