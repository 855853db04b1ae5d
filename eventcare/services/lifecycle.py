# eventcare/services/lifecycle.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..clock import utcnow
from ..errors import (
    BusinessLogicError,
    InvalidEscrowStatus,
    InvalidJobStatus,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from ..models.application import Application, ApplicationStatus
from ..models.escrow import EscrowStatus, EscrowTransaction
from ..models.job import Job, JobStatus
from .payment_gateway import CaptureReceipt
from .result import Result
from .uow import transaction

log = logging.getLogger(__name__)

S = JobStatus

# Every legal move of a Job. Anything not listed raises InvalidStateTransition.
# A funded job cannot be cancelled while it is about to be staffed or being worked.
JOB_TRANSITIONS: dict[JobStatus, frozenset] = {
    S.DRAFT: frozenset({S.OPEN, S.CANCELLED}),
    S.OPEN: frozenset({S.APPLIED, S.CONTRACTED, S.CANCELLED}),
    S.APPLIED: frozenset({S.CONTRACTED, S.CANCELLED}),
    S.CONTRACTED: frozenset({S.ESCROW_HOLDING, S.CANCELLED}),
    S.ESCROW_HOLDING: frozenset({S.IN_PROGRESS}),
    S.IN_PROGRESS: frozenset({S.REVIEW_PENDING}),
    S.REVIEW_PENDING: frozenset({S.READY_TO_PAY, S.CANCELLED}),
    S.READY_TO_PAY: frozenset({S.PAID, S.CANCELLED}),
    S.PAID: frozenset(),
    S.CANCELLED: frozenset(),
}

EDITABLE_STATUSES = (S.DRAFT, S.OPEN)
EDITABLE_FIELDS = ("title", "description", "headcount", "compensation", "start_at", "end_at", "deadline")


def can_transition(src: JobStatus, dst: JobStatus) -> bool:
    return dst in JOB_TRANSITIONS.get(src, ())


class JobLifecycle:
    """Coarse-grained Job state machine.

    Each move is validated against ``JOB_TRANSITIONS`` and applied as a
    compare-and-set on the current status; states are never skipped.
    """

    def __init__(self, session, ledger, gateway, audit, clock=utcnow):
        self.session = session
        self.ledger = ledger
        self.gateway = gateway
        self.audit = audit
        self.clock = clock

    # -----------------
    # Reads
    # -----------------

    def get(self, job_id: int) -> Job:
        job = self.session.get(Job, job_id, populate_existing=True)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    # -----------------
    # Core transition
    # -----------------

    def transition(self, job_id: int, to: JobStatus, *, actor_id: Optional[int] = None,
                   reason: Optional[str] = None, **values) -> Job:
        with transaction(self.session):
            job = self.get(job_id)
            src = job.status
            if not can_transition(src, to):
                raise InvalidStateTransition(src, to)
            updated = (
                self.session.query(Job)
                .filter(Job.id == job_id, Job.status == src)
                .update({"status": to, "updated_at": self.clock(), **values}, synchronize_session=False)
            )
            if updated != 1:
                current = self.session.query(Job.status).filter(Job.id == job_id).scalar()
                raise InvalidStateTransition(current, to)
            self.session.refresh(job)

        log.info("Job %s: %s -> %s", job_id, src.value, to.value)
        meta = {"jobId": job_id, "from": src.value, "to": to.value}
        if reason:
            meta["reason"] = reason
        self.audit.record(actor_id=actor_id, action="JOB_STATUS_CHANGED", target=f"job:{job_id}", metadata=meta)
        return job

    # -----------------
    # Organizer-driven edits
    # -----------------

    def create_job(self, organizer_id: int, *, title: str, compensation: int,
                   description: Optional[str] = None, headcount: int = 1,
                   start_at: Optional[datetime] = None, end_at: Optional[datetime] = None,
                   deadline: Optional[datetime] = None) -> Job:
        if not compensation or compensation <= 0:
            raise ValidationError("Compensation must be a positive amount.", code="INVALID_COMPENSATION")
        with transaction(self.session):
            job = Job(
                organizer_id=organizer_id,
                title=title,
                description=description,
                headcount=headcount or 1,
                compensation=compensation,
                start_at=start_at,
                end_at=end_at,
                deadline=deadline,
                status=S.DRAFT,
            )
            self.session.add(job)
            self.session.flush()
        self.audit.record(actor_id=organizer_id, action="JOB_CREATED", target=f"job:{job.id}",
                          metadata={"jobTitle": title, "status": S.DRAFT.value})
        return job

    def update_job(self, job_id: int, actor_id: int, **changes) -> Job:
        with transaction(self.session):
            job = self.get(job_id)
            if job.status not in EDITABLE_STATUSES:
                raise InvalidJobStatus("Only draft or open jobs can be edited.",
                                       details={"status": job.status.value})
            applied = {}
            for name, value in changes.items():
                if name in EDITABLE_FIELDS and value is not None:
                    setattr(job, name, value)
                    applied[name] = value.isoformat() if isinstance(value, datetime) else value
            if job.status == S.OPEN and job.missing_fields():
                raise ValidationError("Published jobs must keep every mandatory field.",
                                      details={"missing": job.missing_fields()})
        self.audit.record(actor_id=actor_id, action="JOB_UPDATED", target=f"job:{job_id}",
                          metadata={"changes": applied, "status": job.status.value})
        return job

    def publish(self, job_id: int, actor_id: int) -> Job:
        job = self.get(job_id)
        missing = job.missing_fields()
        if missing:
            raise ValidationError("Job is missing mandatory fields.", code="JOB_INCOMPLETE",
                                  details={"missing": missing})
        return self.transition(job_id, S.OPEN, actor_id=actor_id)

    # -----------------
    # Application-driven moves
    # -----------------

    def mark_applied(self, job_id: int, actor_id: Optional[int] = None) -> Job:
        """First application on an open job."""
        job = self.get(job_id)
        if job.status != S.OPEN:
            return job
        return self.transition(job_id, S.APPLIED, actor_id=actor_id)

    def contract(self, job_id: int, application: Application, actor_id: Optional[int] = None) -> Job:
        job = self.get(job_id)
        if job.deadline and self.clock() > job.deadline:
            raise BusinessLogicError("The application deadline has passed.", code="DEADLINE_PASSED",
                                     details={"deadline": job.deadline.isoformat()})
        if application.status != ApplicationStatus.ACCEPTED:
            raise BusinessLogicError("Only an accepted application can contract a job.",
                                     code="APPLICATION_NOT_ACCEPTED")
        amount = application.quote_amount or job.compensation
        return self.transition(job_id, S.CONTRACTED, actor_id=actor_id, contract_amount=amount)

    # -----------------
    # Escrow-driven moves
    # -----------------

    def open_escrow(self, job_id: int, actor_id: int, *, amount: Optional[int] = None,
                    platform_fee: Optional[int] = None) -> EscrowTransaction:
        job = self.get(job_id)
        if job.status != S.CONTRACTED:
            raise InvalidJobStatus("Escrow can only be opened for a contracted job.",
                                   details={"status": job.status.value})
        gross = job.contract_amount or job.compensation
        if amount is not None and amount != gross:
            raise ValidationError("Escrow amount must equal the contracted amount.", code="AMOUNT_MISMATCH",
                                  details={"amount": amount, "contractAmount": gross})
        if platform_fee is not None and platform_fee != self.ledger.fees.platform_fee(gross):
            raise ValidationError("Platform fee does not match the configured rate.", code="FEE_MISMATCH",
                                  details={"platformFee": platform_fee,
                                           "expected": self.ledger.fees.platform_fee(gross)})
        return self.ledger.create(job_id, gross, actor_id=actor_id)

    def capture_escrow(self, escrow_id: int, actor_id: int) -> Result[CaptureReceipt]:
        """Run the mock capture; on success hold the funds and move the job.

        A declined capture leaves the escrow AWAITING and the job CONTRACTED
        and is returned, not raised; calling again is safe.
        """
        escrow = self.ledger.get(escrow_id)
        if escrow.status != EscrowStatus.AWAITING:
            raise InvalidEscrowStatus("This escrow has already been processed.",
                                      details={"escrowId": escrow_id, "status": escrow.status.value})
        job = self.get(escrow.job_id)
        if job.status != S.CONTRACTED:
            raise InvalidJobStatus("Funds can only be captured for a contracted job.",
                                   details={"status": job.status.value})

        outcome = self.gateway.capture(escrow)
        if not outcome.ok:
            self.audit.record(actor_id=actor_id, action="PAYMENT_CAPTURE_FAILED", target=f"escrow:{escrow_id}",
                              metadata={"escrowId": escrow_id, "jobId": job.id, "amount": escrow.gross_amount,
                                        "errorCode": outcome.error.code, "error": outcome.error.message})
            return outcome

        receipt = outcome.value
        with transaction(self.session):
            self.ledger.mark_holding(escrow_id, actor_id=actor_id, reference=receipt.transaction_id)
            self.transition(job.id, S.ESCROW_HOLDING, actor_id=actor_id)
        return outcome

    # -----------------
    # Work-driven moves
    # -----------------

    def record_check_in(self, job_id: int, nurse_id: int) -> Job:
        job = self.get(job_id)
        accepted = (
            self.session.query(Application)
            .filter_by(job_id=job_id, nurse_id=nurse_id, status=ApplicationStatus.ACCEPTED)
            .first()
        )
        if accepted is None:
            raise BusinessLogicError("Only the accepted nurse can check in.", code="NOT_ACCEPTED_NURSE",
                                     status_code=403)
        if job.status == S.IN_PROGRESS:
            return job
        return self.transition(job_id, S.IN_PROGRESS, actor_id=nurse_id, reason="check_in")

    def complete_work(self, job_id: int, actor_id: Optional[int] = None, reason: str = "manual") -> Job:
        return self.transition(job_id, S.REVIEW_PENDING, actor_id=actor_id, reason=reason)

    def complete_finished_jobs(self, now: Optional[datetime] = None) -> list[int]:
        """Scheduler signal: in-progress jobs whose end time has passed."""
        now = now or self.clock()
        due = (
            self.session.query(Job.id)
            .filter(Job.status == S.IN_PROGRESS, Job.end_at.isnot(None), Job.end_at <= now)
            .order_by(Job.id)
            .all()
        )
        moved = []
        for (job_id,) in due:
            try:
                self.complete_work(job_id, reason="schedule_ended")
                moved.append(job_id)
            except InvalidStateTransition as e:
                # completed manually between the select and the update
                log.info("Skip job %s: %s", job_id, e.message)
        return moved

    def cancel_expired_jobs(self, now: Optional[datetime] = None) -> list[int]:
        """Open jobs whose application deadline passed without a contract."""
        now = now or self.clock()
        expired = (
            self.session.query(Job.id)
            .filter(Job.status.in_((S.OPEN, S.APPLIED)), Job.deadline.isnot(None), Job.deadline < now)
            .order_by(Job.id)
            .all()
        )
        cancelled = []
        for (job_id,) in expired:
            try:
                self.transition(job_id, S.CANCELLED, reason="deadline_expired")
                cancelled.append(job_id)
            except InvalidStateTransition as e:
                log.info("Skip job %s: %s", job_id, e.message)
        return cancelled

    # -----------------
    # Settlement-driven moves
    # -----------------

    def mark_ready_to_pay(self, job_id: int) -> Job:
        return self.transition(job_id, S.READY_TO_PAY, reason="reviews_complete")

    def mark_paid(self, job_id: int, actor_id: Optional[int] = None) -> Job:
        return self.transition(job_id, S.PAID, actor_id=actor_id, reason="settled")

    # -----------------
    # Cancellation
    # -----------------

    def cancel(self, job_id: int, actor_id: Optional[int], reason: str = "",
               refund_amount: Optional[int] = None) -> Job:
        """Cancel a job; funds held in escrow go back through a refund (in full by default)."""
        job = self.get(job_id)
        if not can_transition(job.status, S.CANCELLED):
            raise InvalidStateTransition(job.status, S.CANCELLED)

        escrow = self.ledger.get_for_job(job_id)
        with transaction(self.session):
            if escrow is not None and escrow.status == EscrowStatus.HOLDING:
                self.ledger.refund(escrow.id, refund_amount or escrow.gross_amount, reason or "job cancelled",
                                   actor_id=actor_id)
            return self.transition(job_id, S.CANCELLED, actor_id=actor_id, reason=reason or None)
