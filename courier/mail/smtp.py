"""SMTP delivery through aiosmtplib."""

from __future__ import annotations

from email.message import EmailMessage

import aiosmtplib

from courier.core.logging import get_logger
from courier.core.models.delivery import SmtpConfig
from courier.mail.templates import OutgoingEmail

logger = get_logger('smtp')


def create_email_message(email: OutgoingEmail, from_address: str) -> EmailMessage:
    """Build a MIME message: text part (when present) with an HTML alternative."""
    msg = EmailMessage()
    msg['From'] = from_address
    msg['To'] = email.to
    msg['Subject'] = email.subject
    if email.text:
        msg.set_content(email.text)
        msg.add_alternative(email.html, subtype='html')
    else:
        msg.set_content(email.html, subtype='html')
    return msg


class SmtpSender:
    """Opens one SMTP connection per message; login only with full credentials."""

    def __init__(self, config: SmtpConfig) -> None:
        self.config = config

    def _client(self) -> aiosmtplib.SMTP:
        # secure=True means implicit TLS; otherwise STARTTLS is negotiated when offered.
        return aiosmtplib.SMTP(
            hostname=self.config.host,
            port=self.config.port,
            use_tls=self.config.secure,
            timeout=self.config.timeout_seconds,
        )

    async def _login(self, smtp: aiosmtplib.SMTP) -> None:
        if self.config.has_credentials and self.config.password is not None:
            await smtp.login(self.config.user or '', self.config.password.get_secret_value())

    async def _close(self, smtp: aiosmtplib.SMTP) -> None:
        try:
            await smtp.quit()
        except aiosmtplib.SMTPException as e:
            logger.debug(f'SMTP QUIT failed, closing transport: {e}')
            smtp.close()

    async def verify(self) -> None:
        """Connect (and authenticate) once so misconfiguration fails at startup."""
        smtp = self._client()
        await smtp.connect()
        try:
            await self._login(smtp)
            await smtp.noop()
        finally:
            await self._close(smtp)
        logger.info(f'SMTP connection verified ({self.config.host}:{self.config.port})')

    async def send(self, email: OutgoingEmail) -> None:
        message = create_email_message(email, self.config.from_address)
        smtp = self._client()
        await smtp.connect()
        try:
            await self._login(smtp)
            await smtp.send_message(message)
        finally:
            await self._close(smtp)
        logger.info(f'Sent email to {email.to}: {email.subject!r} (message {email.message_id})')
