import os
import smtplib
import ssl
import logging
import socket
from smtplib import SMTPServerDisconnected, SMTPAuthenticationError
import certifi
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Dict

from jinja2 import Environment, FileSystemLoader, select_autoescape

from claimflow.core.config import settings
from claimflow.services.currency import format_currency


logger = logging.getLogger("uvicorn.error")

CLAIM_STATUS_LABELS = {
    "approved": "approved by your supervisor",
    "rejected": "rejected",
    "finance_approved": "approved by finance",
    "executive_approved": "given final approval",
    "paid": "paid",
}


def _get_env() -> Environment:
    templates_dir = Path(__file__).resolve().parent.parent.parent / "templates" / "email"
    return Environment(loader=FileSystemLoader(str(templates_dir)), autoescape=select_autoescape(["html", "xml"]))


def render_template(template_name: str, context: Dict[str, Any]) -> str:
    return _get_env().get_template(template_name).render(**context)


def build_message(subject: str, to: str, html_body: str, text_body: str | None = None) -> EmailMessage:
    msg = EmailMessage()
    from_email = os.getenv("FROM_EMAIL", os.getenv("SMTP_USER", "no-reply@claimflow.io"))
    from_name = os.getenv("FROM_NAME", "ClaimFlow")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to
    if text_body:
        msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")
    return msg


def send_email_smtp(message: EmailMessage) -> None:
    host = os.getenv("SMTP_HOST", "smtp.gmail.com")
    port = int(os.getenv("SMTP_PORT", "587"))
    user = os.getenv("SMTP_USER", "")
    password = os.getenv("SMTP_PASSWORD", "").replace(" ", "")
    timeout = float(os.getenv("SMTP_TIMEOUT", "10"))
    use_ssl = port == 465 or os.getenv("SMTP_USE_SSL", "false").lower() in {"1", "true", "yes"}

    if not user or not password:
        raise RuntimeError("SMTP credentials missing: set SMTP_USER and SMTP_PASSWORD env vars")

    context = ssl.create_default_context(cafile=certifi.where())
    try:
        if use_ssl:
            with smtplib.SMTP_SSL(host, port, timeout=timeout, context=context) as server:
                server.login(user, password)
                server.send_message(message)
            return
        with smtplib.SMTP(host, port, timeout=timeout) as server:
            server.ehlo()
            server.starttls(context=context)
            server.ehlo()
            server.login(user, password)
            server.send_message(message)
    except SMTPAuthenticationError as exc:
        raise RuntimeError(f"SMTP auth failed ({exc.smtp_code})") from exc
    except (SMTPServerDisconnected, ssl.SSLError, socket.timeout) as exc:
        raise RuntimeError(f"SMTP connection failed: {type(exc).__name__}: {exc}") from exc


def _deliver(message: EmailMessage) -> bool:
    # Notifications must never break the request that triggered them
    if not settings.EMAIL_NOTIFICATIONS:
        return False
    try:
        send_email_smtp(message)
        return True
    except (RuntimeError, OSError, smtplib.SMTPException) as exc:
        logger.warning("Email to %s not sent: %s", message["To"], exc)
        return False


def send_claim_status_email(*, to: str, employee_name: str, claim_id: str, status: str, amount: float, reason: str | None = None) -> bool:
    label = CLAIM_STATUS_LABELS.get(status, status)
    context = {
        "employee_name": employee_name or "there",
        "claim_id": claim_id,
        "status_label": label,
        "amount": format_currency(amount),
        "reason": reason,
        "claims_url": f"{settings.FRONTEND_BASE_URL.rstrip('/')}/claims",
    }
    text = f"Hello {context['employee_name']},\n\nYour claim {claim_id} ({context['amount']}) has been {label}."
    if reason:
        text += f"\nReason: {reason}"
    msg = build_message(
        subject=f"Claim {claim_id} {label}",
        to=to,
        html_body=render_template("claim_status.html", context),
        text_body=text,
    )
    return _deliver(msg)


def send_leave_status_email(*, to: str, employee_name: str, leave_id: str, leave_type: str, status: str, reason: str | None = None) -> bool:
    context = {
        "employee_name": employee_name or "there",
        "leave_id": leave_id,
        "leave_type": leave_type,
        "status": status,
        "reason": reason,
        "leaves_url": f"{settings.FRONTEND_BASE_URL.rstrip('/')}/leaves",
    }
    text = f"Hello {context['employee_name']},\n\nYour {leave_type} request {leave_id} was {status}."
    if reason:
        text += f"\nReason: {reason}"
    msg = build_message(
        subject=f"{leave_type} request {status}",
        to=to,
        html_body=render_template("leave_status.html", context),
        text_body=text,
    )
    return _deliver(msg)
