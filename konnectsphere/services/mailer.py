"""
SMTP transport for transactional email.
"""
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from konnectsphere.core import config

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        sender_name: Optional[str] = None,
        timeout: int = 20,
    ) -> None:
        self.host = host if host is not None else config.SMTP_HOST
        self.port = port or config.SMTP_PORT
        self.user = user if user is not None else config.SMTP_USER
        self.password = password if password is not None else config.SMTP_PASS
        self.sender = sender or config.SMTP_FROM
        self.sender_name = sender_name or config.SMTP_FROM_NAME
        self.timeout = timeout

        if self.host:
            logger.info(f"SMTP configured: host={self.host}, port={self.port}, user_set={bool(self.user)}")
        else:
            logger.info("SMTP_HOST not configured; emails will be logged instead of sent")

    def build_message(self, to: str, subject: str, text: str, html: Optional[str] = None) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = f"{self.sender_name} <{self.sender}>" if self.sender_name else self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text)
        if html:
            msg.add_alternative(html, subtype="html")
        return msg

    def send(self, to: str, subject: str, text: str, html: Optional[str] = None) -> bool:
        """
        Send an email. Returns True once the SMTP server accepts it.

        Without SMTP_HOST the message is logged and treated as sent so local
        development and tests still see what would have gone out.

        Raises:
            smtplib.SMTPException / OSError: On transport failures
        """
        if not self.host:
            logger.info(f"[DEV-MAIL] to={to}, subject={subject}")
            logger.debug(f"[DEV-MAIL] body:\n{text}")
            return True

        msg = self.build_message(to, subject, text, html)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.ehlo()
            try:
                server.starttls()
                server.ehlo()
            except smtplib.SMTPNotSupportedError as tls_err:
                logger.warning(f"SMTP STARTTLS not supported ({tls_err}); continuing without TLS")

            if self.user and self.password:
                server.login(self.user, self.password)

            server.send_message(msg)

        logger.info(f"SMTP mail accepted: to={to}, subject={subject}")
        return True
