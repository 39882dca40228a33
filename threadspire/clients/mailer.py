"""
SMTP mailer for account emails (password reset).

smtplib is blocking, so each send runs in a worker thread.
"""
import asyncio
import logging
import smtplib
from email.mime.text import MIMEText

from threadspire.config import Settings

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, settings: Settings):
        self._settings = settings

    def _build_message(self, to: str, subject: str, body: str) -> MIMEText:
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self._settings.mail_from
        msg["To"] = to
        return msg

    def _send_sync(self, to: str, subject: str, body: str) -> None:
        s = self._settings
        msg = self._build_message(to, subject, body)
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=10) as server:
            if s.smtp_use_tls:
                server.starttls()
            if s.smtp_user and s.smtp_password:
                server.login(s.smtp_user, s.smtp_password)
            server.sendmail(s.mail_from, [to], msg.as_string())

    async def send(self, to: str, subject: str, body: str) -> None:
        await asyncio.to_thread(self._send_sync, to, subject, body)
        logger.info("Sent '%s' email to %s", subject, to)

    async def send_password_reset(self, to: str, token: str) -> None:
        link = f"{self._settings.app_url}/auth/reset-password?token={token}"
        body = (
            "Someone asked to reset the password for your ThreadSpire account.\n\n"
            f"Follow this link to choose a new password:\n{link}\n\n"
            "If this wasn't you, you can ignore this email."
        )
        await self.send(to, "Reset your ThreadSpire password", body)
