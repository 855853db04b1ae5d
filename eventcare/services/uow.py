# eventcare/services/uow.py
from __future__ import annotations

import logging
from contextlib import contextmanager

log = logging.getLogger(__name__)

_DEPTH = "eventcare.uow_depth"
_AFTER = "eventcare.uow_after"


def in_transaction(session) -> bool:
    return session.info.get(_DEPTH, 0) > 0


def defer(session, callback) -> None:
    """Run ``callback(committed: bool)`` once the outermost unit of work ends."""
    session.info.setdefault(_AFTER, []).append(callback)


@contextmanager
def transaction(session):
    """Re-entrant unit of work over one session.

    The outermost block commits (or rolls back on any exception); nested
    blocks join it, so a multi-step mutation commits all-or-nothing.
    """
    depth = session.info.get(_DEPTH, 0)
    session.info[_DEPTH] = depth + 1
    committed = False
    try:
        yield session
        if depth == 0:
            session.commit()
            committed = True
    except Exception:
        if depth == 0:
            session.rollback()
        raise
    finally:
        session.info[_DEPTH] = depth
        if depth == 0:
            _run_deferred(session, committed)


def _run_deferred(session, committed: bool) -> None:
    callbacks = session.info.pop(_AFTER, [])
    for cb in callbacks:
        try:
            cb(committed)
        except Exception:
            log.exception("deferred callback failed after unit of work")
