# eventcare/services/__init__.py
from dataclasses import dataclass

from flask import current_app, g, has_request_context
from sqlalchemy.orm import sessionmaker

from ..extensions import db
from .applications import ApplicationService
from .audit import AuditSink
from .email_service import notify_payout_completed
from .escrow import EscrowLedger
from .fees import FeeCalculator
from .lifecycle import JobLifecycle
from .payment_gateway import MockPaymentGateway
from .payouts import PayoutScheduler
from .reports import ReportService
from .reviews import ReviewGate, ReviewService


@dataclass
class Services:
    fees: FeeCalculator
    audit: AuditSink
    ledger: EscrowLedger
    gateway: MockPaymentGateway
    lifecycle: JobLifecycle
    applications: ApplicationService
    gate: ReviewGate
    reviews: ReviewService
    payouts: PayoutScheduler
    reports: ReportService


def build_services(session=None, config=None, *, gateway=None, audit_session_factory=None) -> Services:
    """Wire every domain service around one business session.

    The audit sink gets a session factory of its own bound to the same engine.
    """
    session = session or db.session
    config = config or current_app.config

    fees = FeeCalculator.from_config(config)
    audit = AuditSink(audit_session_factory or sessionmaker(bind=db.engine), business_session=session)
    ledger = EscrowLedger(session, fees, audit)
    gateway = gateway or MockPaymentGateway.from_config(config)
    lifecycle = JobLifecycle(session, ledger, gateway, audit)
    gate = ReviewGate(session, lifecycle)
    return Services(
        fees=fees,
        audit=audit,
        ledger=ledger,
        gateway=gateway,
        lifecycle=lifecycle,
        applications=ApplicationService(session, lifecycle, audit),
        gate=gate,
        reviews=ReviewService(session, lifecycle, gate, audit),
        payouts=PayoutScheduler(session, ledger, lifecycle, fees, audit,
                                notifier=notify_payout_completed,
                                payout_day=config.get("SCHEDULED_PAYOUT_DAY", 15)),
        reports=ReportService(session, lifecycle, audit),
    )


def get_services() -> Services:
    """Services for the current request (built once per request)."""
    if not has_request_context():
        return build_services()
    if "services" not in g:
        g.services = build_services()
    return g.services
