# eventcare/services/applications.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..clock import utcnow
from ..errors import BusinessLogicError, DuplicateApplication, InvalidJobStatus, NotFoundError
from ..models.application import Application, ApplicationStatus
from ..models.job import JobStatus
from .uow import transaction

log = logging.getLogger(__name__)

OPEN_FOR_APPLICATIONS = (JobStatus.OPEN, JobStatus.APPLIED)


class ApplicationService:
    def __init__(self, session, lifecycle, audit, clock=utcnow):
        self.session = session
        self.lifecycle = lifecycle
        self.audit = audit
        self.clock = clock

    def get(self, application_id: int) -> Application:
        app_ = self.session.get(Application, application_id, populate_existing=True)
        if app_ is None:
            raise NotFoundError("Application", application_id)
        return app_

    def accepted_for(self, job_id: int) -> list[Application]:
        return (
            self.session.query(Application)
            .filter_by(job_id=job_id, status=ApplicationStatus.ACCEPTED)
            .order_by(Application.id)
            .all()
        )

    def apply(self, job_id: int, nurse_id: int, *, message: str = "",
              quote_amount: Optional[int] = None) -> Application:
        job = self.lifecycle.get(job_id)
        if job.status not in OPEN_FOR_APPLICATIONS:
            raise InvalidJobStatus("Job is not open for applications.", details={"status": job.status.value})
        if job.deadline and self.clock() > job.deadline:
            raise BusinessLogicError("The application deadline has passed.", code="DEADLINE_PASSED")
        if quote_amount is not None and quote_amount <= 0:
            raise BusinessLogicError("Quote must be a positive amount.", code="INVALID_QUOTE")

        existing = (
            self.session.query(Application)
            .filter(Application.job_id == job_id,
                    Application.nurse_id == nurse_id,
                    Application.status != ApplicationStatus.WITHDRAWN)
            .first()
        )
        if existing is not None:
            raise DuplicateApplication("You have already applied to this job.",
                                       details={"applicationId": existing.id})

        with transaction(self.session):
            application = Application(job_id=job_id, nurse_id=nurse_id, message=message,
                                      quote_amount=quote_amount, status=ApplicationStatus.PENDING)
            self.session.add(application)
            try:
                self.session.flush()
            except IntegrityError:
                raise DuplicateApplication("You have already applied to this job.") from None
            self.lifecycle.mark_applied(job_id, actor_id=nurse_id)

        self.audit.record(actor_id=nurse_id, action="APPLICATION_CREATED", target=f"application:{application.id}",
                          metadata={"jobId": job_id, "quoteAmount": quote_amount})
        return application

    def accept(self, application_id: int, actor_id: int) -> Application:
        """Accepting one application contracts the job; other bids stay as they are."""
        application = self.get(application_id)
        self._ensure_pending(application)
        if self.accepted_for(application.job_id):
            raise BusinessLogicError("This job already has an accepted application.",
                                     code="APPLICATION_ALREADY_ACCEPTED", status_code=409)

        with transaction(self.session):
            application.status = ApplicationStatus.ACCEPTED
            application.decided_at = self.clock()
            self.session.flush()
            self.lifecycle.contract(application.job_id, application, actor_id=actor_id)

        self.audit.record(actor_id=actor_id, action="APPLICATION_ACCEPTED", target=f"application:{application.id}",
                          metadata={"jobId": application.job_id, "nurseId": application.nurse_id})
        return application

    def reject(self, application_id: int, actor_id: int) -> Application:
        return self._decide(application_id, actor_id, ApplicationStatus.REJECTED, "APPLICATION_REJECTED")

    def withdraw(self, application_id: int, actor_id: int) -> Application:
        application = self.get(application_id)
        if application.status == ApplicationStatus.ACCEPTED:
            raise BusinessLogicError("An accepted application cannot be withdrawn; cancel the job instead.",
                                     code="APPLICATION_ALREADY_ACCEPTED", status_code=409)
        return self._decide(application_id, actor_id, ApplicationStatus.WITHDRAWN, "APPLICATION_WITHDRAWN")

    def _decide(self, application_id: int, actor_id: int, status: ApplicationStatus, action: str) -> Application:
        application = self.get(application_id)
        self._ensure_pending(application)
        with transaction(self.session):
            application.status = status
            application.decided_at = self.clock()
        self.audit.record(actor_id=actor_id, action=action, target=f"application:{application.id}",
                          metadata={"jobId": application.job_id})
        return application

    @staticmethod
    def _ensure_pending(application: Application) -> None:
        if application.status != ApplicationStatus.PENDING:
            raise BusinessLogicError("Application is not pending.", code="APPLICATION_NOT_PENDING",
                                     details={"status": application.status.value})
