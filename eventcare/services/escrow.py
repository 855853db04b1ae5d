# eventcare/services/escrow.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..clock import utcnow
from ..errors import (
    AppError,
    DuplicateEscrow,
    EscrowConsistencyError,
    InvalidEscrowStatus,
    NotFoundError,
    ValidationError,
)
from ..models.escrow import ESCROW_TRANSITIONS, EscrowStatus, EscrowTransaction
from ..models.job import Job
from .uow import transaction

log = logging.getLogger(__name__)


class EscrowLedger:
    """Owns every status change of an EscrowTransaction.

    AWAITING -> HOLDING -> RELEASED | REFUNDED, nothing else. Each change is
    a compare-and-set UPDATE on the current status, so of two concurrent
    writers only one observes the expected status; the other gets
    ``InvalidEscrowStatus``.
    """

    def __init__(self, session, fees, audit, clock=utcnow):
        self.session = session
        self.fees = fees
        self.audit = audit
        self.clock = clock

    # -----------------
    # Reads
    # -----------------

    def get(self, escrow_id: int, *, lock: bool = False) -> EscrowTransaction:
        escrow = self.session.get(
            EscrowTransaction, escrow_id, populate_existing=True, with_for_update=lock or None
        )
        if escrow is None:
            raise NotFoundError("Escrow", escrow_id)
        return escrow

    def get_for_job(self, job_id: int) -> Optional[EscrowTransaction]:
        return self.session.query(EscrowTransaction).filter_by(job_id=job_id).one_or_none()

    # -----------------
    # Mutations
    # -----------------

    def create(self, job_id: int, gross_amount: int, *, actor_id: Optional[int] = None) -> EscrowTransaction:
        target = f"job:{job_id}"
        try:
            with transaction(self.session):
                if self.session.get(Job, job_id) is None:
                    raise NotFoundError("Job", job_id)
                if self.get_for_job(job_id) is not None:
                    raise DuplicateEscrow("An escrow transaction already exists for this job.",
                                          details={"jobId": job_id})
                platform_fee = self.fees.platform_fee(gross_amount)
                escrow = EscrowTransaction(
                    job_id=job_id,
                    gross_amount=gross_amount,
                    platform_fee=platform_fee,
                    status=EscrowStatus.AWAITING,
                    created_at=self.clock(),
                )
                self.session.add(escrow)
                try:
                    self.session.flush()
                except IntegrityError:
                    # lost the race against a concurrent create for the same job
                    raise DuplicateEscrow("An escrow transaction already exists for this job.",
                                          details={"jobId": job_id}) from None
        except AppError as e:
            self._audit_failure("ESCROW_CREATE_FAILED", target, actor_id, e,
                                {"jobId": job_id, "amount": gross_amount})
            raise

        log.info("Escrow created id=%s job=%s gross=%s fee=%s", escrow.id, job_id, gross_amount, platform_fee)
        self.audit.record(
            actor_id=actor_id,
            action="ESCROW_CREATED",
            target=f"escrow:{escrow.id}",
            metadata={"escrowId": escrow.id, "jobId": job_id, "amount": gross_amount,
                      "platformFee": platform_fee, "status": escrow.status.value},
        )
        return escrow

    def mark_holding(self, escrow_id: int, *, actor_id: Optional[int] = None,
                     reference: Optional[str] = None) -> EscrowTransaction:
        target = f"escrow:{escrow_id}"
        try:
            with transaction(self.session):
                escrow = self.get(escrow_id, lock=True)
                self._ensure_status(escrow, EscrowStatus.AWAITING, EscrowStatus.HOLDING)
                escrow = self._swap(escrow_id, EscrowStatus.AWAITING, EscrowStatus.HOLDING,
                                    held_at=self.clock(), capture_reference=reference)
        except AppError as e:
            self._audit_failure("ESCROW_HOLD_FAILED", target, actor_id, e, {"escrowId": escrow_id})
            raise

        self.audit.record(
            actor_id=actor_id,
            action="PAYMENT_PROCESSED",
            target=target,
            metadata={"escrowId": escrow_id, "amount": escrow.gross_amount,
                      "transactionId": reference, "status": escrow.status.value},
        )
        return escrow

    def release(self, escrow_id: int, release_amount: int, reason: str, *,
                actor_id: Optional[int] = None) -> EscrowTransaction:
        target = f"escrow:{escrow_id}"
        try:
            with transaction(self.session):
                escrow = self.get(escrow_id, lock=True)
                self._ensure_status(escrow, EscrowStatus.HOLDING, EscrowStatus.RELEASED)
                if release_amount != escrow.gross_amount:
                    log.error("Escrow %s release amount %s != held %s", escrow_id, release_amount, escrow.gross_amount)
                    raise EscrowConsistencyError(
                        "Release amount does not match the amount held in escrow.",
                        details={"escrowId": escrow_id, "releaseAmount": release_amount,
                                 "grossAmount": escrow.gross_amount, "platformFee": escrow.platform_fee},
                    )
                escrow = self._swap(escrow_id, EscrowStatus.HOLDING, EscrowStatus.RELEASED,
                                    released_at=self.clock(), release_reason=(reason or "")[:255])
        except AppError as e:
            self._audit_failure("ESCROW_RELEASE_FAILED", target, actor_id, e,
                                {"escrowId": escrow_id, "releaseAmount": release_amount, "reason": reason})
            raise

        log.info("Escrow released id=%s amount=%s", escrow_id, release_amount)
        self.audit.record(
            actor_id=actor_id,
            action="ESCROW_RELEASED",
            target=target,
            metadata={"escrowId": escrow_id, "jobId": escrow.job_id, "releaseAmount": release_amount,
                      "platformFee": escrow.platform_fee, "reason": reason},
        )
        return escrow

    def refund(self, escrow_id: int, refund_amount: int, reason: str, *,
               actor_id: Optional[int] = None) -> EscrowTransaction:
        target = f"escrow:{escrow_id}"
        try:
            with transaction(self.session):
                escrow = self.get(escrow_id, lock=True)
                self._ensure_status(escrow, EscrowStatus.HOLDING, EscrowStatus.REFUNDED)
                if isinstance(refund_amount, bool) or not isinstance(refund_amount, int) \
                        or not 0 < refund_amount <= escrow.gross_amount:
                    raise ValidationError(
                        "Refund amount must be positive and no more than the amount held.",
                        code="INVALID_REFUND_AMOUNT",
                        details={"refundAmount": refund_amount, "grossAmount": escrow.gross_amount},
                    )
                escrow = self._swap(escrow_id, EscrowStatus.HOLDING, EscrowStatus.REFUNDED,
                                    refunded_at=self.clock(), refund_amount=refund_amount,
                                    refund_reason=(reason or "")[:255])
        except AppError as e:
            self._audit_failure("ESCROW_REFUND_FAILED", target, actor_id, e,
                                {"escrowId": escrow_id, "refundAmount": refund_amount, "reason": reason})
            raise

        log.info("Escrow refunded id=%s amount=%s", escrow_id, refund_amount)
        self.audit.record(
            actor_id=actor_id,
            action="ESCROW_REFUNDED",
            target=target,
            metadata={"escrowId": escrow_id, "jobId": escrow.job_id,
                      "refundAmount": refund_amount, "reason": reason},
        )
        return escrow

    # -----------------
    # Helpers
    # -----------------

    @staticmethod
    def _ensure_status(escrow: EscrowTransaction, expected: EscrowStatus, new: EscrowStatus) -> None:
        if escrow.status != expected or new not in ESCROW_TRANSITIONS[escrow.status]:
            raise InvalidEscrowStatus(
                f"Escrow is {escrow.status.value}; {new.value} requires {expected.value}.",
                details={"escrowId": escrow.id, "status": escrow.status.value, "expected": expected.value},
            )

    def _swap(self, escrow_id: int, expected: EscrowStatus, new: EscrowStatus, **values) -> EscrowTransaction:
        updated = (
            self.session.query(EscrowTransaction)
            .filter(EscrowTransaction.id == escrow_id, EscrowTransaction.status == expected)
            .update({"status": new, **values}, synchronize_session=False)
        )
        if updated != 1:
            current = (
                self.session.query(EscrowTransaction.status)
                .filter(EscrowTransaction.id == escrow_id)
                .scalar()
            )
            raise InvalidEscrowStatus(
                f"Escrow changed concurrently (now {getattr(current, 'value', current)}).",
                details={"escrowId": escrow_id, "expected": expected.value,
                         "status": getattr(current, "value", current)},
            )
        escrow = self.session.get(EscrowTransaction, escrow_id)
        self.session.refresh(escrow)
        return escrow

    def _audit_failure(self, action: str, target: str, actor_id, error: AppError, metadata: dict) -> None:
        log.warning("%s %s: %s", action, target, error.message)
        self.audit.record(
            actor_id=actor_id,
            action=action,
            target=target,
            metadata={**metadata, "errorCode": error.code, "error": error.message},
        )
