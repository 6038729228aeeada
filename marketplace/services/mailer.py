"""
Mailer: outbound SMTP for OTP codes and admin notifications.

smtplib is blocking, so sends run in a worker thread. Delivery failures are
logged and reported as ``False``; callers decide whether that matters.
"""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from marketplace.config import settings

logger = logging.getLogger(__name__)


def _build_message(recipient: str, subject: str, text_body: str, html_body: str | None = None) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["From"] = settings.smtp_from
    msg["To"] = recipient
    msg["Subject"] = subject
    msg.attach(MIMEText(text_body, "plain"))
    if html_body:
        msg.attach(MIMEText(html_body, "html"))
    return msg


def _send_sync(msg: MIMEMultipart) -> None:
    if settings.smtp_use_ssl:
        server = smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=30)
    else:
        server = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30)
        server.starttls()
    try:
        if settings.smtp_username:
            server.login(settings.smtp_username, settings.smtp_password or "")
        server.send_message(msg)
    finally:
        try:
            server.quit()
        except smtplib.SMTPException as e:
            logger.warning("Error closing SMTP connection: %s", e)


async def send_email(recipient: str, subject: str, text_body: str, html_body: str | None = None) -> bool:
    if not settings.smtp_host:
        logger.warning("SMTP not configured; dropping email to %s (%s)", recipient, subject)
        return False
    try:
        await asyncio.to_thread(_send_sync, _build_message(recipient, subject, text_body, html_body))
        logger.info("Email sent to %s: %s", recipient, subject)
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Email to %s failed: %s", recipient, e)
        return False


async def send_otp_email(recipient: str, otp: str) -> bool:
    minutes = settings.otp_ttl_seconds // 60
    text = (
        f"Your password reset code is {otp}.\n"
        f"It expires in {minutes} minutes. If you did not request a reset, ignore this email."
    )
    html = (
        f"<p>Your password reset code is <b>{otp}</b>.</p>"
        f"<p>It expires in {minutes} minutes. If you did not request a reset, ignore this email.</p>"
    )
    return await send_email(recipient, "Password reset code", text, html)


async def notify_admin(subject: str, message: str) -> bool:
    """Send an alert to the configured admin address."""
    if not settings.admin_email:
        return False
    return await send_email(settings.admin_email, subject, message)
