# eventcare/services/audit.py
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from ..clock import utcnow
from ..models.audit import AuditLog
from .uow import defer, in_transaction

log = logging.getLogger(__name__)
fallback = logging.getLogger("eventcare.audit.fallback")


class AuditSink:
    """Write-only audit trail.

    Rows are written through a session of their own, so an audit failure can
    never roll back the business transaction. Failures land on the fallback
    logger and are not raised. Inside a unit of work the event is held back
    until the unit ends (at-least-once, not exactly-once).
    """

    def __init__(self, session_factory: Callable, business_session=None):
        self._session_factory = session_factory
        self._business_session = business_session

    def record(self, *, actor_id: Optional[int], action: str, target: str,
               metadata: Optional[dict[str, Any]] = None) -> None:
        event = {
            "actor_id": actor_id,
            "action": action,
            "target": target,
            "meta": dict(metadata or {}),
            "created_at": utcnow(),
        }
        bs = self._business_session
        if bs is not None and in_transaction(bs):
            defer(bs, lambda committed: self._write(event, committed))
            return
        self._write(event, True)

    def _write(self, event: dict, committed: bool) -> None:
        if not committed:
            event["meta"]["rolled_back"] = True
        session = None
        try:
            session = self._session_factory()
            session.add(AuditLog(**event))
            session.commit()
        except Exception as e:
            fallback.error(
                "audit write failed: %s | actor=%s action=%s target=%s meta=%s",
                e, event["actor_id"], event["action"], event["target"], event["meta"],
            )
            if session is not None:
                try:
                    session.rollback()
                except Exception:
                    fallback.exception("audit session rollback failed")
        finally:
            if session is not None:
                session.close()
