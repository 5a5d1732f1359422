"""
Outgoing mail for the account flows (verification and password reset).

When ``settings.SMTP_HOST`` is unset the message is only logged, which is
what development and the test-suite rely on.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from starlette.concurrency import run_in_threadpool

from devblog.config import settings

logger = logging.getLogger(__name__)

EMAIL_VERIFICATION_TEMPLATE = """\
<!DOCTYPE html>
<html>
<body>
    <h2>Welcome to DevBlog!</h2>
    <p>Please click the link below to verify your email address:</p>
    <p><a href="{url}">Verify Email</a></p>
    <p>If the link doesn't work, copy and paste this address into your browser:</p>
    <p>{url}</p>
</body>
</html>
"""

PASSWORD_RESET_TEMPLATE = """\
<!DOCTYPE html>
<html>
<body>
    <h2>Password Reset Request</h2>
    <p>You requested to reset your password. Click the link below to set a new password:</p>
    <p><a href="{url}">Reset Password</a></p>
    <p>This link will expire in {ttl} minutes.</p>
    <p>If you didn't request this, please ignore this email.</p>
</body>
</html>
"""


def _send_smtp(recipient: str, subject: str, html: str) -> None:
    msg = MIMEMultipart()
    msg["From"] = settings.MAIL_FROM
    msg["To"] = recipient
    msg["Subject"] = subject
    msg.attach(MIMEText(html, "html"))

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
        server.starttls()
        if settings.SMTP_USER:
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD or "")
        server.send_message(msg)


async def send_mail(recipient: str, subject: str, html: str) -> bool:
    """
    Send one HTML message; returns False when delivery failed.

    A failed delivery never fails the request that triggered it: the user
    can always ask for the mail again.
    """
    if not settings.SMTP_HOST:
        logger.info("Mail to %s (%s) not sent, SMTP_HOST unset", recipient, subject)
        logger.debug("Mail body:\n%s", html)
        return True

    try:
        await run_in_threadpool(_send_smtp, recipient, subject, html)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Error sending mail to %s: %s", recipient, exc)
        return False
    logger.info("Mail sent to %s (%s)", recipient, subject)
    return True


async def send_verification_email(recipient: str, token: str) -> bool:
    url = f"{settings.FRONTEND_URL}/verify-email?token={token}"
    return await send_mail(
        recipient, "Verify your email address", EMAIL_VERIFICATION_TEMPLATE.format(url=url)
    )


async def send_password_reset_email(recipient: str, token: str) -> bool:
    url = f"{settings.FRONTEND_URL}/reset-password?token={token}"
    html = PASSWORD_RESET_TEMPLATE.format(url=url, ttl=settings.RESET_TOKEN_TTL_MINUTES)
    return await send_mail(recipient, "Reset your password", html)
