# eventcare/services/payouts.py
from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ..clock import utcnow
from ..errors import (
    AppError,
    BusinessLogicError,
    DuplicatePayout,
    InvalidEscrowStatus,
    InvalidJobStatus,
    SystemFailure,
)
from ..models.application import Application, ApplicationStatus
from ..models.escrow import EscrowStatus, EscrowTransaction
from ..models.job import Job, JobStatus
from ..models.payout import Payout, PayoutMethod, PayoutStatus
from .fees import parse_method
from .result import Result
from .uow import transaction

log = logging.getLogger(__name__)

LIVE_STATUSES = (PayoutStatus.PENDING, PayoutStatus.COMPLETED)


# the last day every month has
MAX_PAYOUT_DAY = 28


def check_payout_day(day) -> int:
    day = int(day)
    if not 1 <= day <= MAX_PAYOUT_DAY:
        raise ValueError(f"Scheduled payout day must be between 1 and {MAX_PAYOUT_DAY}, got {day}.")
    return day


def next_scheduled_date(today: date, payout_day: int = 15) -> date:
    """Payout day of next month; one month later still when today is past it."""
    payout_day = check_payout_day(payout_day)
    months_ahead = 2 if today.day > payout_day else 1
    month_index = today.month - 1 + months_ahead
    return date(today.year + month_index // 12, month_index % 12 + 1, payout_day)


class PayoutScheduler:
    """Turns a held escrow into a Payout, instantly or on the monthly cycle."""

    def __init__(self, session, ledger, lifecycle, fees, audit, *,
                 notifier: Optional[Callable] = None, clock=utcnow, payout_day: int = 15):
        self.session = session
        self.ledger = ledger
        self.lifecycle = lifecycle
        self.fees = fees
        self.audit = audit
        self.notifier = notifier
        self.clock = clock
        self.payout_day = check_payout_day(payout_day)

    def next_scheduled_date(self, today: Optional[date] = None) -> date:
        return next_scheduled_date(today or self.clock().date(), self.payout_day)

    # -----------------
    # Scheduling
    # -----------------

    def schedule_payout(self, escrow_id: int, nurse_id: int, method, *,
                        actor_id: Optional[int] = None, notes: Optional[str] = None) -> Payout:
        method = parse_method(method)
        try:
            payout = self._schedule(escrow_id, nurse_id, method, actor_id=actor_id, notes=notes)
        except AppError as e:
            self.audit.record(
                actor_id=actor_id,
                action="PAYMENT_EXECUTION_FAILED",
                target=f"escrow:{escrow_id}",
                metadata={"escrowId": escrow_id, "nurseId": nurse_id, "paymentMethod": method.value,
                          "errorCode": e.code, "error": e.message},
            )
            raise

        action = "PAYMENT_EXECUTED" if payout.status == PayoutStatus.COMPLETED else "PAYOUT_SCHEDULED"
        self.audit.record(
            actor_id=actor_id,
            action=action,
            target=f"payout:{payout.id}",
            metadata={"escrowId": escrow_id, "nurseId": nurse_id, "paymentMethod": method.value,
                      "amount": payout.amount, "fee": payout.fee, "netAmount": payout.net_amount,
                      "scheduledFor": payout.scheduled_for.isoformat() if payout.scheduled_for else None},
        )
        if payout.status == PayoutStatus.COMPLETED:
            self._notify(payout)
        return payout

    def _schedule(self, escrow_id: int, nurse_id: int, method: PayoutMethod, *, actor_id=None,
                  notes=None, scheduled_for: Optional[date] = None) -> Payout:
        escrow = self.ledger.get(escrow_id)
        if escrow.status != EscrowStatus.HOLDING:
            raise InvalidEscrowStatus("Payouts can only be made from funds held in escrow.",
                                      details={"escrowId": escrow_id, "status": escrow.status.value})
        job = self.lifecycle.get(escrow.job_id)
        if job.status != JobStatus.READY_TO_PAY:
            raise InvalidJobStatus("The job is not ready to pay; reviews may be incomplete.",
                                   code="REVIEWS_INCOMPLETE", details={"status": job.status.value})
        accepted = (
            self.session.query(Application.id)
            .filter_by(job_id=job.id, nurse_id=nurse_id, status=ApplicationStatus.ACCEPTED)
            .first()
        )
        if accepted is None:
            raise BusinessLogicError("The nurse does not hold the accepted application for this job.",
                                     code="NURSE_NOT_FOUND")
        if self._live_payout(job.id) is not None:
            raise DuplicatePayout("A payout already exists for this job.", details={"jobId": job.id})

        amount = escrow.payable_amount
        fee = self.fees.payment_fee(amount, method)
        now = self.clock()

        with transaction(self.session):
            payout = Payout(
                job_id=job.id,
                escrow_id=escrow.id,
                nurse_id=nurse_id,
                amount=amount,
                fee=fee,
                net_amount=amount - fee,
                method=method,
                notes=notes,
                created_at=now,
            )
            if method == PayoutMethod.INSTANT:
                self.ledger.release(escrow.id, escrow.gross_amount, "payout executed (instant)",
                                    actor_id=actor_id)
                payout.status = PayoutStatus.COMPLETED
                payout.executed_at = now
            else:
                payout.status = PayoutStatus.PENDING
                payout.scheduled_for = scheduled_for or self.next_scheduled_date(now.date())
            self.session.add(payout)
            try:
                self.session.flush()
            except IntegrityError:
                raise DuplicatePayout("A payout already exists for this job.", details={"jobId": job.id}) from None
            if payout.status == PayoutStatus.COMPLETED:
                self.lifecycle.mark_paid(job.id, actor_id=actor_id)

        log.info("Payout %s job=%s method=%s status=%s net=%s",
                 payout.id, job.id, method.value, payout.status.value, payout.net_amount)
        return payout

    # -----------------
    # Batch settlement
    # -----------------

    def process_due_scheduled_payouts(self, today: Optional[date] = None,
                                      actor_id: Optional[int] = None) -> dict:
        """Settle every scheduled payout due by ``today``.

        Each payout is its own unit of work: one failure marks that payout
        FAILED and the run moves on. COMPLETED and FAILED payouts are never
        selected again, so re-running the batch is safe.
        """
        today = today or self.clock().date()
        due = (
            self.session.query(Payout.id)
            .filter(
                Payout.status == PayoutStatus.PENDING,
                Payout.method == PayoutMethod.SCHEDULED,
                Payout.scheduled_for <= today,
            )
            .order_by(Payout.scheduled_for, Payout.id)
            .all()
        )

        processed = failed = 0
        errors: list[str] = []
        for (payout_id,) in due:
            outcome = self._settle(payout_id, actor_id)
            if outcome.ok:
                if outcome.value is not None:
                    processed += 1
                continue
            if self._mark_failed(payout_id, outcome.error.message):
                failed += 1
                errors.append(f"Payout {payout_id}: {outcome.error.message}")

        summary = {"processed": processed, "failed": failed, "errors": errors}
        log.info("Scheduled payouts run %s: processed=%s failed=%s", today, processed, failed)
        self.audit.record(actor_id=actor_id, action="SCHEDULED_PAYMENTS_PROCESSED", target="payouts",
                          metadata={**summary, "runDate": today.isoformat(), "due": len(due)})
        return summary

    def settle_ready_jobs(self, actor_id: Optional[int] = None) -> dict:
        """Monthly cron: settle every READY_TO_PAY job at scheduled rates."""
        today = self.clock().date()
        jobs = (
            self.session.query(Job.id)
            .filter(Job.status == JobStatus.READY_TO_PAY)
            .order_by(Job.id)
            .all()
        )
        processed = 0
        total_amount = 0
        errors: list[str] = []

        for (job_id,) in jobs:
            escrow = self.ledger.get_for_job(job_id)
            if escrow is None:
                errors.append(f"Job {job_id}: no escrow transaction")
                continue
            payout = self._live_payout(job_id)
            if payout is None:
                nurse_id = (
                    self.session.query(Application.nurse_id)
                    .filter_by(job_id=job_id, status=ApplicationStatus.ACCEPTED)
                    .order_by(Application.id)
                    .scalar()
                )
                if nurse_id is None:
                    errors.append(f"Job {job_id}: no accepted application")
                    continue
                try:
                    # this run is the settlement cycle, so the payout is due today
                    payout = self._schedule(escrow.id, nurse_id, PayoutMethod.SCHEDULED, actor_id=actor_id,
                                            notes="monthly settlement", scheduled_for=today)
                except AppError as e:
                    errors.append(f"Job {job_id}: {e.message}")
                    continue
            elif payout.scheduled_for and payout.scheduled_for > today:
                continue

            outcome = self._settle(payout.id, actor_id)
            if outcome.ok:
                if outcome.value is not None:
                    processed += 1
                    total_amount += escrow.gross_amount
                continue
            self._mark_failed(payout.id, outcome.error.message)
            errors.append(f"Job {job_id}: {outcome.error.message}")

        summary = {"paymentsProcessed": processed, "totalAmount": total_amount, "errors": errors}
        self.audit.record(actor_id=actor_id, action="PROCESS_SCHEDULED_PAYMENTS", target="payments",
                          metadata={**summary, "totalJobsProcessed": len(jobs)})
        return summary

    def _settle(self, payout_id: int, actor_id: Optional[int]) -> Result[Optional[Payout]]:
        """Release escrow, complete the payout and mark the job paid, atomically.

        ``Result.success(None)`` means the payout was no longer pending.
        """
        try:
            with transaction(self.session):
                payout = self.session.get(Payout, payout_id, populate_existing=True, with_for_update=True)
                if payout is None or payout.status != PayoutStatus.PENDING:
                    return Result.success(None)
                escrow = self.ledger.get(payout.escrow_id)
                self.ledger.release(escrow.id, escrow.gross_amount, "scheduled payout", actor_id=actor_id)
                updated = (
                    self.session.query(Payout)
                    .filter(Payout.id == payout_id, Payout.status == PayoutStatus.PENDING)
                    .update({"status": PayoutStatus.COMPLETED, "executed_at": self.clock()},
                            synchronize_session=False)
                )
                if updated != 1:
                    raise BusinessLogicError("Payout changed while it was being settled.",
                                             code="PAYOUT_CONFLICT", status_code=409)
                self.lifecycle.mark_paid(payout.job_id, actor_id=actor_id)
                self.session.refresh(payout)
        except AppError as e:
            log.warning("Payout %s failed: %s", payout_id, e.message)
            return Result.failure(e)
        except Exception as e:
            log.exception("Payout %s failed unexpectedly", payout_id)
            return Result.failure(SystemFailure(str(e) or e.__class__.__name__, code="PAYOUT_SETTLEMENT_FAILED"))

        self.audit.record(actor_id=actor_id, action="SCHEDULED_PAYMENT_PROCESSED", target=f"payout:{payout_id}",
                          metadata={"nurseId": payout.nurse_id, "amount": payout.net_amount, "jobId": payout.job_id})
        self._notify(payout)
        return Result.success(payout)

    def _mark_failed(self, payout_id: int, reason: str) -> bool:
        """False when the payout left PENDING meanwhile (settled by a concurrent run)."""
        reason = reason or "unknown error"
        with transaction(self.session):
            updated = (
                self.session.query(Payout)
                .filter(Payout.id == payout_id, Payout.status == PayoutStatus.PENDING)
                .update({"status": PayoutStatus.FAILED, "failure_reason": reason}, synchronize_session=False)
            )
        if updated:
            self.audit.record(actor_id=None, action="SCHEDULED_PAYMENT_FAILED", target=f"payout:{payout_id}",
                              metadata={"failureReason": reason})
        return bool(updated)

    # -----------------
    # Reads
    # -----------------

    def _live_payout(self, job_id: int) -> Optional[Payout]:
        return (
            self.session.query(Payout)
            .filter(Payout.job_id == job_id, Payout.status.in_(LIVE_STATUSES))
            .first()
        )

    def history(self, *, nurse_id=None, job_id=None, status=None, limit: int = 50, offset: int = 0) -> list[Payout]:
        q = self.session.query(Payout)
        if nurse_id:
            q = q.filter(Payout.nurse_id == nurse_id)
        if job_id:
            q = q.filter(Payout.job_id == job_id)
        if status:
            q = q.filter(Payout.status == PayoutStatus(status))
        return q.order_by(Payout.created_at.desc(), Payout.id.desc()).limit(limit).offset(offset).all()

    def payable_jobs(self) -> list[dict]:
        """READY_TO_PAY jobs whose escrow still holds the funds and that have no live payout."""
        live = select(Payout.job_id).where(Payout.status.in_(LIVE_STATUSES))
        rows = (
            self.session.query(Job, EscrowTransaction)
            .join(EscrowTransaction, EscrowTransaction.job_id == Job.id)
            .filter(
                Job.status == JobStatus.READY_TO_PAY,
                EscrowTransaction.status == EscrowStatus.HOLDING,
                Job.id.not_in(live),
            )
            .order_by(Job.updated_at, Job.id)
            .all()
        )
        payable = []
        for job, escrow in rows:
            accepted = sorted((a for a in job.applications if a.status == ApplicationStatus.ACCEPTED),
                              key=lambda a: a.id)
            if not accepted:
                log.warning("Job %s is ready to pay without an accepted nurse", job.id)
                continue
            nurse = accepted[0].nurse
            payable.append({
                "job": job.to_dict(),
                "escrow": escrow.to_dict(),
                "nurse": {"id": nurse.id, "name": nurse.name},
                "organizer": {"id": job.organizer_id, "name": job.organizer.name if job.organizer else None},
                "amount": escrow.gross_amount,
                "payableAmount": escrow.payable_amount,
                "completedAt": job.updated_at.isoformat() if job.updated_at else None,
            })
        return payable

    def stats(self, nurse_id: Optional[int] = None) -> dict:
        base = self.session.query(Payout)
        if nurse_id:
            base = base.filter(Payout.nurse_id == nurse_id)
        counts = dict(
            base.with_entities(Payout.status, func.count(Payout.id)).group_by(Payout.status).all()
        )
        earned, fees, avg = (
            base.filter(Payout.status == PayoutStatus.COMPLETED)
            .with_entities(func.coalesce(func.sum(Payout.net_amount), 0),
                           func.coalesce(func.sum(Payout.fee), 0),
                           func.avg(Payout.net_amount))
            .one()
        )
        return {
            "totalEarnings": int(earned or 0),
            "totalFees": int(fees or 0),
            "completedPayments": counts.get(PayoutStatus.COMPLETED, 0),
            "pendingPayments": counts.get(PayoutStatus.PENDING, 0),
            "failedPayments": counts.get(PayoutStatus.FAILED, 0),
            "averageAmount": round(float(avg or 0.0), 1),
        }

    def _notify(self, payout: Payout) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(payout)
        except Exception:
            log.exception("payout notification failed payout=%s", payout.id)
