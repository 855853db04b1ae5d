# eventcare/services/email_service.py
from flask import current_app
from flask_mail import Message
from ..extensions import mail
import logging

log = logging.getLogger(__name__)


def send_email(*, to, subject, body, html=None) -> bool:
    """Best-effort plain-text mail. Never raises; returns whether it went out."""
    try:
        if not to:
            log.warning("send_email: missing recipient")
            return False
        recipients = [to] if isinstance(to, str) else list(to)

        sender = current_app.config.get("MAIL_DEFAULT_SENDER") or current_app.config.get("MAIL_USERNAME")
        if not sender:
            log.error("send_email: no sender configured")
            return False

        msg = Message(subject=subject, recipients=recipients, sender=sender)
        msg.body = body
        if html:
            msg.html = html

        if current_app.config.get("MAIL_SUPPRESS_SEND"):
            log.info("[MAIL_SUPPRESS_SEND=1] would send: %s | %s", recipients, subject)
            return True

        mail.send(msg)
        log.info("Email sent to %s | subject=%s", recipients, subject)
        return True
    except Exception as e:
        log.exception("send_email failed: %s", e)
        return False


def _yen(amount) -> str:
    return f"¥{int(amount or 0):,}"


def notify_escrow_funded(escrow) -> bool:
    job = getattr(escrow, "job", None)
    organizer = getattr(job, "organizer", None)
    if not organizer or not organizer.email:
        return False
    return send_email(
        to=organizer.email,
        subject=f"Payment held in escrow - Job #{job.id}",
        body=(
            f"Hi {organizer.display_name},\n\n"
            f"We have captured {_yen(escrow.gross_amount)} for \"{job.title}\".\n"
            f"The funds stay in escrow until the work is complete and both sides have reviewed.\n\n"
            f"Reference: {escrow.capture_reference or '-'}\n"
        ),
    )


def notify_payout_completed(payout) -> bool:
    nurse = getattr(payout, "nurse", None)
    if not nurse or not nurse.email:
        return False
    job = getattr(payout, "job", None)
    return send_email(
        to=nurse.email,
        subject=f"Payout sent - Job #{payout.job_id}",
        body=(
            f"Hi {nurse.display_name},\n\n"
            f"Your payout for \"{getattr(job, 'title', payout.job_id)}\" has been sent.\n\n"
            f"Amount: {_yen(payout.amount)}\n"
            f"Transfer fee ({payout.method.value}): {_yen(payout.fee)}\n"
            f"Net: {_yen(payout.net_amount)}\n"
        ),
    )
