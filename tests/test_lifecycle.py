from datetime import timedelta

import pytest

from eventcare.clock import utcnow
from eventcare.errors import (
    BusinessLogicError,
    InvalidJobStatus,
    InvalidStateTransition,
    ValidationError,
)
from eventcare.models.audit import AuditLog
from eventcare.models.escrow import EscrowStatus
from eventcare.models.job import JobStatus
from eventcare.services.lifecycle import JOB_TRANSITIONS, can_transition
from eventcare.services.payment_gateway import MockPaymentGateway

from conftest import contract_job, holding_job, make_job, make_user


def test_transition_table_is_closed():
    assert set(JOB_TRANSITIONS) == set(JobStatus)
    assert JOB_TRANSITIONS[JobStatus.PAID] == frozenset()
    assert JOB_TRANSITIONS[JobStatus.CANCELLED] == frozenset()
    assert not can_transition(JobStatus.DRAFT, JobStatus.PAID)
    assert can_transition(JobStatus.REVIEW_PENDING, JobStatus.READY_TO_PAY)


def test_illegal_transition_raises(services, organizer):
    job = make_job(services, organizer, publish=False)
    with pytest.raises(InvalidStateTransition) as exc:
        services.lifecycle.transition(job.id, JobStatus.PAID)
    assert exc.value.from_status == JobStatus.DRAFT
    assert exc.value.to_status == JobStatus.PAID
    assert services.lifecycle.get(job.id).status == JobStatus.DRAFT


def test_publish_requires_mandatory_fields(services, organizer):
    job = make_job(services, organizer, publish=False, deadline=None)
    with pytest.raises(ValidationError) as exc:
        services.lifecycle.publish(job.id, organizer.id)
    assert exc.value.code == "JOB_INCOMPLETE"
    assert "deadline" in exc.value.details["missing"]


def test_update_only_while_draft_or_open(services, organizer, nurse):
    job = make_job(services, organizer)
    updated = services.lifecycle.update_job(job.id, organizer.id, title="Night shift")
    assert updated.title == "Night shift"

    contract_job_, _ = contract_job(services, organizer, nurse)
    with pytest.raises(InvalidJobStatus):
        services.lifecycle.update_job(contract_job_.id, organizer.id, title="Too late")


def test_first_application_moves_job_to_applied(services, organizer, nurse):
    job = make_job(services, organizer)
    services.applications.apply(job.id, nurse.id)
    assert services.lifecycle.get(job.id).status == JobStatus.APPLIED


def test_contract_uses_quote_amount(services, organizer, nurse):
    job, _ = contract_job(services, organizer, nurse, compensation=10000, quote_amount=12000)
    assert job.status == JobStatus.CONTRACTED
    assert job.contract_amount == 12000


def test_open_escrow_checks_amount_and_fee(services, organizer, nurse):
    job, _ = contract_job(services, organizer, nurse)
    with pytest.raises(ValidationError) as exc:
        services.lifecycle.open_escrow(job.id, organizer.id, amount=9999)
    assert exc.value.code == "AMOUNT_MISMATCH"
    with pytest.raises(ValidationError) as exc:
        services.lifecycle.open_escrow(job.id, organizer.id, amount=10000, platform_fee=500)
    assert exc.value.code == "FEE_MISMATCH"

    escrow = services.lifecycle.open_escrow(job.id, organizer.id, amount=10000, platform_fee=1000)
    assert escrow.status == EscrowStatus.AWAITING


def test_open_escrow_requires_contract(services, organizer):
    job = make_job(services, organizer)
    with pytest.raises(InvalidJobStatus):
        services.lifecycle.open_escrow(job.id, organizer.id)


def test_capture_moves_escrow_and_job_together(services, organizer, nurse):
    job, escrow = holding_job(services, organizer, nurse)
    assert job.status == JobStatus.ESCROW_HOLDING
    assert escrow.status == EscrowStatus.HOLDING
    assert escrow.capture_reference.startswith("mock_tx_")


def test_failed_capture_leaves_state_and_is_retryable(services, session, organizer, nurse):
    job, _ = contract_job(services, organizer, nurse)
    escrow = services.lifecycle.open_escrow(job.id, organizer.id)

    services.lifecycle.gateway = MockPaymentGateway(fail=True)
    outcome = services.lifecycle.capture_escrow(escrow.id, organizer.id)
    assert not outcome.ok
    assert outcome.error.code == "PAYMENT_CAPTURE_FAILED"
    assert outcome.error.status_code == 502
    assert services.lifecycle.get(job.id).status == JobStatus.CONTRACTED
    assert services.ledger.get(escrow.id).status == EscrowStatus.AWAITING
    assert session.query(AuditLog).filter_by(action="PAYMENT_CAPTURE_FAILED").count() == 1

    services.lifecycle.gateway = MockPaymentGateway()
    assert services.lifecycle.capture_escrow(escrow.id, organizer.id).ok
    assert services.lifecycle.get(job.id).status == JobStatus.ESCROW_HOLDING


def test_check_in_only_for_accepted_nurse(services, session, organizer, nurse):
    job, _ = holding_job(services, organizer, nurse)
    stranger = make_user(session, "nurse")
    with pytest.raises(BusinessLogicError) as exc:
        services.lifecycle.record_check_in(job.id, stranger.id)
    assert exc.value.code == "NOT_ACCEPTED_NURSE"

    assert services.lifecycle.record_check_in(job.id, nurse.id).status == JobStatus.IN_PROGRESS
    # second check-in is a no-op
    assert services.lifecycle.record_check_in(job.id, nurse.id).status == JobStatus.IN_PROGRESS


def test_check_in_before_capture_is_rejected(services, organizer, nurse):
    job, _ = contract_job(services, organizer, nurse)
    with pytest.raises(InvalidStateTransition):
        services.lifecycle.record_check_in(job.id, nurse.id)


def test_complete_finished_jobs(services, organizer, nurse):
    job, _ = holding_job(services, organizer, nurse)
    services.lifecycle.record_check_in(job.id, nurse.id)

    assert services.lifecycle.complete_finished_jobs(now=utcnow()) == []
    moved = services.lifecycle.complete_finished_jobs(now=job.end_at + timedelta(minutes=1))
    assert moved == [job.id]
    assert services.lifecycle.get(job.id).status == JobStatus.REVIEW_PENDING


def test_cancel_expired_jobs(services, organizer):
    job = make_job(services, organizer)
    assert services.lifecycle.cancel_expired_jobs(now=utcnow()) == []
    cancelled = services.lifecycle.cancel_expired_jobs(now=job.deadline + timedelta(seconds=1))
    assert cancelled == [job.id]
    assert services.lifecycle.get(job.id).status == JobStatus.CANCELLED


def test_cancel_refunds_held_escrow(services, organizer, nurse):
    job, escrow = holding_job(services, organizer, nurse)
    services.lifecycle.record_check_in(job.id, nurse.id)
    services.lifecycle.complete_work(job.id, actor_id=organizer.id)

    cancelled = services.lifecycle.cancel(job.id, organizer.id, "no-show dispute")
    assert cancelled.status == JobStatus.CANCELLED
    escrow = services.ledger.get(escrow.id)
    assert escrow.status == EscrowStatus.REFUNDED
    assert escrow.refund_amount == 10000


@pytest.mark.parametrize("checked_in", [False, True])
def test_funded_job_cannot_be_cancelled_before_work_ends(services, organizer, nurse, checked_in):
    job, escrow = holding_job(services, organizer, nurse)
    if checked_in:
        services.lifecycle.record_check_in(job.id, nurse.id)
    status = services.lifecycle.get(job.id).status

    assert not can_transition(status, JobStatus.CANCELLED)
    with pytest.raises(InvalidStateTransition) as exc:
        services.lifecycle.cancel(job.id, organizer.id, "mid-shift", refund_amount=5000)
    assert exc.value.from_status == status
    with pytest.raises(InvalidStateTransition):
        services.lifecycle.transition(job.id, JobStatus.CANCELLED)

    assert services.lifecycle.get(job.id).status == status
    assert services.ledger.get(escrow.id).status == EscrowStatus.HOLDING


def test_cancel_keeps_awaiting_escrow(services, organizer, nurse):
    job, _ = contract_job(services, organizer, nurse)
    escrow = services.lifecycle.open_escrow(job.id, organizer.id)
    services.lifecycle.cancel(job.id, organizer.id)
    assert services.ledger.get(escrow.id).status == EscrowStatus.AWAITING


def test_cancelled_job_is_terminal(services, organizer):
    job = make_job(services, organizer)
    services.lifecycle.cancel(job.id, organizer.id)
    with pytest.raises(InvalidStateTransition):
        services.lifecycle.cancel(job.id, organizer.id)


def test_every_transition_is_audited(services, session, organizer):
    job = make_job(services, organizer)
    rows = session.query(AuditLog).filter_by(target=f"job:{job.id}").order_by(AuditLog.id).all()
    assert [r.action for r in rows] == ["JOB_CREATED", "JOB_STATUS_CHANGED"]
    assert rows[1].meta == {"jobId": job.id, "from": "DRAFT", "to": "OPEN"}
