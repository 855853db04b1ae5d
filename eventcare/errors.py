# eventcare/errors.py
from __future__ import annotations

import enum
from typing import Any, Optional


class ErrorType(str, enum.Enum):
    VALIDATION = "VALIDATION"
    AUTHORIZATION = "AUTHORIZATION"
    NOT_FOUND = "NOT_FOUND"
    BUSINESS_LOGIC = "BUSINESS_LOGIC"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE"
    SYSTEM = "SYSTEM"


class AppError(Exception):
    """Base for every error the API reports in its error envelope."""

    type = ErrorType.SYSTEM
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None,
                 status_code: Optional[int] = None,
                 details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


# ---------------------
# Taxonomy
# ---------------------

class ValidationError(AppError):
    type = ErrorType.VALIDATION
    code = "VALIDATION_FAILED"
    status_code = 400


class NotFoundError(AppError):
    type = ErrorType.NOT_FOUND
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, ident=None, **kw):
        msg = f"{resource} with ID {ident} not found" if ident is not None else f"{resource} not found"
        kw.setdefault("code", f"{resource.upper()}_NOT_FOUND")
        super().__init__(msg, **kw)


class BusinessLogicError(AppError):
    type = ErrorType.BUSINESS_LOGIC
    code = "BUSINESS_RULE_VIOLATION"
    status_code = 400


class AuthorizationError(AppError):
    type = ErrorType.AUTHORIZATION
    code = "FORBIDDEN"
    status_code = 403


class ExternalServiceError(AppError):
    type = ErrorType.EXTERNAL_SERVICE
    code = "EXTERNAL_SERVICE_FAILED"
    status_code = 502


class SystemFailure(AppError):
    type = ErrorType.SYSTEM
    code = "SYSTEM_ERROR"
    status_code = 500


# ---------------------
# Domain errors
# ---------------------

class InvalidStateTransition(BusinessLogicError):
    code = "INVALID_STATE_TRANSITION"
    status_code = 409

    def __init__(self, from_status, to_status, **kw):
        self.from_status = from_status
        self.to_status = to_status
        src = getattr(from_status, "value", from_status)
        dst = getattr(to_status, "value", to_status)
        kw.setdefault("details", {"from": src, "to": dst})
        super().__init__(f"Job cannot move from {src} to {dst}", **kw)


class InvalidJobStatus(BusinessLogicError):
    code = "INVALID_JOB_STATUS"


class DuplicateEscrow(BusinessLogicError):
    code = "ESCROW_ALREADY_EXISTS"
    status_code = 409


class InvalidEscrowStatus(BusinessLogicError):
    code = "INVALID_ESCROW_STATUS"
    status_code = 409


class EscrowConsistencyError(SystemFailure):
    """Amounts disagree with what the ledger recorded; never retried."""
    code = "ESCROW_CONSISTENCY_ERROR"


class DuplicatePayout(BusinessLogicError):
    code = "PAYOUT_ALREADY_EXISTS"
    status_code = 409


class DuplicateApplication(BusinessLogicError):
    code = "APPLICATION_ALREADY_EXISTS"
    status_code = 409


class DuplicateReview(BusinessLogicError):
    code = "REVIEW_ALREADY_EXISTS"
    status_code = 409


class ReviewLocked(BusinessLogicError):
    code = "REVIEW_LOCKED"
    status_code = 409


class DuplicateReport(BusinessLogicError):
    code = "REPORT_ALREADY_EXISTS"
    status_code = 409
