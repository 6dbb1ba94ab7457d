# Copyright (C) 2024 TenantKit Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Email sending service. Logs (without the body) when SMTP is not configured."""

import html
import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from fastapi.concurrency import run_in_threadpool

from tenantkit_server.config import settings

logger = logging.getLogger(__name__)


def smtp_configured() -> bool:
    return bool(settings.smtp_host and settings.smtp_user)


def wrap_body_html(plain_body: str) -> str:
    """Wrap plain text body in minimal HTML."""
    body_escaped = html.escape(plain_body).replace("\n", "<br>\n")
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: system-ui, sans-serif; color: #333; max-width: 560px;">
<div style="white-space: pre-wrap;">{body_escaped}</div>
</body>
</html>"""


def _deliver(to: str, msg: MIMEText | MIMEMultipart) -> None:
    """Blocking SMTP exchange. Run off the event loop."""
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
        server.starttls()
        server.login(settings.smtp_user, settings.smtp_password or "")
        server.sendmail(settings.smtp_from, [to], msg.as_string())


async def send_email(to: str, subject: str, body: str, html_part: bool = True) -> bool:
    """Send an email (plain, plus HTML alternative). Returns False if not sent."""
    if not smtp_configured():
        logger.info("Email not sent (SMTP not configured): To=%s Subject=%s", to, subject)
        return False
    if html_part:
        msg = MIMEMultipart("alternative")
        msg.attach(MIMEText(body, "plain"))
        msg.attach(MIMEText(wrap_body_html(body), "html"))
    else:
        msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = settings.smtp_from
    msg["To"] = to
    try:
        await run_in_threadpool(_deliver, to, msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.exception("Failed to send email to %s: %s", to, e)
        return False
    return True


async def send_invitation_email(
    to: str,
    invite_url: str,
    organization_name: str,
    expires_at: datetime,
) -> bool:
    """Deliver an invitation link. The link is the only copy of the raw token."""
    body = (
        f"You have been invited to join {organization_name}.\n\n"
        f"Sign in with {to} and open the link below to accept:\n\n{invite_url}\n\n"
        f"The link expires on {expires_at:%Y-%m-%d %H:%M} UTC and can be used once."
    )
    return await send_email(to, f"You're invited to {organization_name}", body)
