"""
Pytest fixtures for EventCare.

Each test gets its own file-backed SQLite database: the audit sink writes
through a second connection, which an in-memory database would not share.
"""

import itertools
from datetime import timedelta

import pytest

from eventcare import create_app
from eventcare.clock import utcnow
from eventcare.config import Config
from eventcare.extensions import db
from eventcare.models.user import User
from eventcare.services import build_services

CRON_SECRET = "cron-test-secret"

_seq = itertools.count(1)


@pytest.fixture
def app(tmp_path):
    class TestConfig(Config):
        TESTING = True
        SECRET_KEY = "test"
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'eventcare-test.db'}"
        LOG_DIR = str(tmp_path / "logs")
        LOG_JSON = False
        SENTRY_DSN = ""
        MAIL_SUPPRESS_SEND = True
        MAIL_DEFAULT_SENDER = "noreply@eventcare.test"
        CRON_SECRET = CRON_SECRET
        PAYMENT_GATEWAY_FAIL = False
        PLATFORM_FEE_RATE = "0.10"
        INSTANT_PAYMENT_FEE_RATE = "0.03"
        SCHEDULED_PAYMENT_FEE_RATE = "0.01"
        PAYMENT_FEE_MINIMUM = None
        PAYMENT_FEE_MAXIMUM = None
        SCHEDULED_PAYOUT_DAY = 15

    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def ctx(app):
    """Application context for service-level tests.

    Route tests must not hold this open: ``g`` (and Flask-Login's cached user)
    lives on the app context and would leak between requests.
    """
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def session(ctx):
    return db.session


@pytest.fixture
def services(app, session):
    return build_services(session, app.config)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seed(app):
    """Run setup code in a throwaway app context; return plain values only."""
    def run(fn):
        with app.app_context():
            try:
                return fn(build_services(db.session, app.config))
            finally:
                db.session.remove()
    return run


# ---------------------
# Factories
# ---------------------

def make_user(session, role="organizer", name=None):
    n = next(_seq)
    user = User(name=name or f"{role.title()} {n}", email=f"{role}{n}@example.test", role=role)
    session.add(user)
    session.commit()
    return user


def make_job(services, organizer, *, compensation=10000, publish=True, **overrides):
    now = utcnow()
    fields = dict(
        title="Marathon first-aid station",
        description="Staff the km 21 aid tent.",
        headcount=1,
        compensation=compensation,
        start_at=now + timedelta(days=2),
        end_at=now + timedelta(days=2, hours=8),
        deadline=now + timedelta(days=1),
    )
    fields.update(overrides)
    job = services.lifecycle.create_job(organizer.id, **fields)
    if publish:
        job = services.lifecycle.publish(job.id, organizer.id)
    return job


def contract_job(services, organizer, nurse, *, compensation=10000, quote_amount=None):
    job = make_job(services, organizer, compensation=compensation)
    application = services.applications.apply(job.id, nurse.id, message="Happy to help",
                                              quote_amount=quote_amount)
    services.applications.accept(application.id, organizer.id)
    return services.lifecycle.get(job.id), application


def holding_job(services, organizer, nurse, *, compensation=10000):
    job, _ = contract_job(services, organizer, nurse, compensation=compensation)
    escrow = services.lifecycle.open_escrow(job.id, organizer.id)
    services.lifecycle.capture_escrow(escrow.id, organizer.id).unwrap()
    return services.lifecycle.get(job.id), services.ledger.get(escrow.id)


def ready_to_pay_job(services, organizer, nurse, *, compensation=10000):
    job, escrow = holding_job(services, organizer, nurse, compensation=compensation)
    services.lifecycle.record_check_in(job.id, nurse.id)
    services.lifecycle.complete_work(job.id, actor_id=organizer.id)
    services.reviews.create(job.id, organizer.id, target_id=nurse.id, rating=5, tags=["punctual"])
    services.reviews.create(job.id, nurse.id, target_id=organizer.id, rating=4)
    return services.lifecycle.get(job.id), services.ledger.get(escrow.id)


def bearer(user_or_token):
    token = getattr(user_or_token, "api_token", user_or_token)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def organizer(session):
    return make_user(session, "organizer")


@pytest.fixture
def nurse(session):
    return make_user(session, "nurse")


@pytest.fixture
def admin(session):
    return make_user(session, "admin")
