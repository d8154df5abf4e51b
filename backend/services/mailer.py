"""SMTP mail transport for one-time passcodes."""

import logging
import smtplib
import ssl
from email.mime.text import MIMEText

from backend.core import config

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    pass


class Mailer:
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        use_tls: bool = True,
        timeout: int = 30,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, to: str, subject: str, body: str) -> None:
        msg = MIMEText(body, "plain")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to

        try:
            if self.port == 465:
                server = smtplib.SMTP_SSL(self.host, self.port, context=ssl.create_default_context(), timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            try:
                if self.use_tls and self.port != 465:
                    server.starttls(context=ssl.create_default_context())
                if self.username:
                    server.login(self.username, self.password)
                server.sendmail(self.sender, [to], msg.as_string())
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send '%s' email to %s: %s", subject, to, exc)
            raise MailDeliveryError(str(exc)) from exc

        logger.info("Sent '%s' email to %s", subject, to)


def get_mailer() -> Mailer:
    return Mailer(
        host=config.SMTP_HOST,
        port=config.SMTP_PORT,
        username=config.SMTP_USERNAME,
        password=config.SMTP_PASSWORD,
        sender=config.EMAIL_FROM_ADDRESS,
        use_tls=config.SMTP_USE_TLS,
    )
